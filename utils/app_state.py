"""Accessors for the shared clients attached to `app.state` by the lifespan."""

from typing import Any

from fastapi import Request

from utils.errors import ProviderNotConfiguredError


def get_service(request: Request, name: str, provider: str) -> Any:
    """Return `app.state.<name>` or raise a 503 naming the missing provider."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise ProviderNotConfiguredError(provider)
    return service


def get_optional(request: Request, name: str) -> Any:
    return getattr(request.app.state, name, None)
