"""Diagnostic `x-quelle-*` headers attached to provider-backed responses."""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits


def new_request_id() -> str:
    """Return an id shaped like `quelle_<epoch ms>_<9 chars>`."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"quelle_{int(time.time() * 1000)}_{suffix}"


@dataclass
class RequestMetadata:
    """Timing and attribution for one provider request."""

    model: str
    provider: str
    request_id: str = field(default_factory=new_request_id)
    started: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)

    def headers(self, processing_ms: Optional[int] = None) -> Dict[str, str]:
        processing_ms = self.elapsed_ms() if processing_ms is None else processing_ms
        return {
            "x-quelle-request-id": self.request_id,
            "x-quelle-processing-ms": str(processing_ms),
            "x-quelle-model": self.model,
            "x-quelle-provider": self.provider,
        }

    def body(self, processing_ms: Optional[int] = None) -> Dict[str, Any]:
        """Return the `metadata` block echoed in JSON bodies."""
        return {
            "requestId": self.request_id,
            "processingTime": self.elapsed_ms() if processing_ms is None else processing_ms,
            "model": self.model,
            "provider": self.provider,
        }

    def log(self, processing_ms: Optional[int] = None) -> None:
        LOGGER.info(
            "request %s model=%s provider=%s took %sms",
            self.request_id,
            self.model,
            self.provider,
            self.elapsed_ms() if processing_ms is None else processing_ms,
        )
