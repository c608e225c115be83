"""Error taxonomy shared by routes, controllers, and provider adapters.

Every error raised on purpose derives from `AppError`, which carries an
`ErrorCode`, an HTTP status, and a user-facing message. Provider failures are
wrapped in `UpstreamProviderError` and mapped to a status by inspecting the
message text, mirroring how the upstream SDKs report rate limits, key problems,
and policy rejections.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

LOGGER = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


class ErrorCode(str, Enum):
    """Stable identifiers for error categories."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    UPSTREAM_PROVIDER_FAILED = "UPSTREAM_PROVIDER_FAILED"
    UPSTREAM_NOT_CONFIGURED = "UPSTREAM_NOT_CONFIGURED"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    POLLING_TIMEOUT = "POLLING_TIMEOUT"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"


class AppError(Exception):
    """Base class for errors that know how to render themselves as HTTP."""

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def public_message(self) -> str:
        """Message safe to return to API callers."""
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


class ValidationError(AppError):
    """A required input field is missing or malformed."""

    code = ErrorCode.VALIDATION_FAILED
    status_code = 400


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class ProviderNotConfiguredError(AppError):
    """A route needs a provider whose credentials are absent."""

    code = ErrorCode.UPSTREAM_NOT_CONFIGURED
    status_code = 503

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"{provider} is not configured")


class UpstreamProviderError(AppError):
    """A third-party API call failed.

    The HTTP status is derived from the message with `classify_provider_error`
    so callers never need to pick one.
    """

    code = ErrorCode.UPSTREAM_PROVIDER_FAILED

    def __init__(self, provider: str, message: str, details: Optional[str] = None) -> None:
        self.provider = provider
        super().__init__(message, details)
        self.status_code, self._public_message = classify_provider_error(message)

    def __str__(self) -> str:
        return f"{self.provider}: {super().__str__()}"

    def public_message(self) -> str:
        return self._public_message

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class SignatureVerificationError(AppError):
    """Webhook payload signature did not verify."""

    code = ErrorCode.SIGNATURE_INVALID
    status_code = 400

    def public_message(self) -> str:
        return "Invalid signature"


class PollingTimeoutError(AppError):
    """An asynchronous external job did not finish within its attempt budget."""

    code = ErrorCode.POLLING_TIMEOUT
    status_code = 500


# Ordered: the first matching substring decides the status.
_PROVIDER_ERROR_RULES: Tuple[Tuple[Tuple[str, ...], int, str], ...] = (
    (("rate limit",), 429, "Rate limit exceeded. Please try again in a moment."),
    (("api key",), 401, "Authentication error. Please check your API configuration."),
    (
        ("content policy", "moderation"),
        400,
        "The requested content violates our content policy. Please try a different prompt.",
    ),
    (("model",), 400, "Model not available. Please check your API access and model configuration."),
    (("search", "vector store"), 503, "Search is currently unavailable. Please try again later."),
)


def classify_provider_error(message: str) -> Tuple[int, str]:
    """Map a provider error message to `(status_code, user_message)`."""
    lowered = (message or "").lower()
    for needles, status, user_message in _PROVIDER_ERROR_RULES:
        if any(needle in lowered for needle in needles):
            return status, user_message
    return 500, GENERIC_ERROR_MESSAGE


def wrap_provider_error(provider: str, exc: BaseException) -> UpstreamProviderError:
    """Convert an SDK/HTTP exception into an `UpstreamProviderError`."""
    if isinstance(exc, UpstreamProviderError):
        return exc
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    return UpstreamProviderError(provider, str(message))


def register_error_handlers(app: FastAPI) -> None:
    """Render every error as `{"error": ...}` JSON without leaking internals."""

    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            LOGGER.error("Request to %s failed: %s", request.url.path, exc)
        else:
            LOGGER.info("Request to %s rejected: %s", request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message()})

    @app.exception_handler(HTTPException)
    async def _http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _payload_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request body")
        detail = f"{location}: {message}" if location else message
        return JSONResponse(status_code=400, content={"error": detail})

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception):
        LOGGER.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR_MESSAGE})
