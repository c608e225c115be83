"""Environment-driven configuration for the API gateway.

Values are read once from the process environment (after `load_dotenv()` in
`main.py`) and exposed through a frozen `Settings` dataclass. Provider keys are
optional at this layer; the lifespan decides which ones are mandatory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(key: str, default: int) -> int:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{key} must be an integer, got {raw!r}") from exc


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{key} must be a number, got {raw!r}") from exc


def _env_list(key: str, default: str = "") -> List[str]:
    raw = _env(key, default) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime configuration snapshot."""

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_text_model: str = "o4-mini-2025-04-16"
    openai_vision_model: str = "gpt-4o-mini"
    openai_image_model: str = "gpt-image-1"
    openai_vector_store_ids: List[str] = field(default_factory=list)

    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-sonnet-20241022"

    replicate_api_token: Optional[str] = None
    did_api_key: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    public_base_url: str = "http://localhost:3000"

    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    history_limit: int = 20
    reference_image_limit: int = 5
    session_idle_timeout_seconds: float = 1800.0

    did_poll_interval_seconds: float = 2.0
    did_poll_max_attempts: int = 30
    replicate_poll_interval_seconds: float = 1.0
    replicate_poll_max_attempts: int = 60

    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        return cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            openai_model=_env("OPENAI_MODEL", cls.openai_model),
            openai_text_model=_env("OPENAI_TEXT_MODEL", cls.openai_text_model),
            openai_vision_model=_env("OPENAI_VISION_MODEL", cls.openai_vision_model),
            openai_image_model=_env("OPENAI_IMAGE_MODEL", cls.openai_image_model),
            openai_vector_store_ids=_env_list("OPENAI_VECTOR_STORE_IDS"),
            anthropic_api_key=_env("ANTHROPIC_API_KEY"),
            anthropic_model=_env("ANTHROPIC_MODEL", cls.anthropic_model),
            replicate_api_token=_env("REPLICATE_API_TOKEN"),
            did_api_key=_env("DID_API_KEY"),
            elevenlabs_api_key=_env("ELEVENLABS_API_KEY"),
            stripe_secret_key=_env("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
            public_base_url=_env("PUBLIC_BASE_URL", cls.public_base_url),
            supabase_url=_env("SUPABASE_URL"),
            supabase_service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            history_limit=_env_int("HISTORY_LIMIT", cls.history_limit),
            reference_image_limit=_env_int("REFERENCE_IMAGE_LIMIT", cls.reference_image_limit),
            session_idle_timeout_seconds=_env_float(
                "SESSION_IDLE_TIMEOUT_SECONDS", cls.session_idle_timeout_seconds
            ),
            did_poll_interval_seconds=_env_float("DID_POLL_INTERVAL_SECONDS", cls.did_poll_interval_seconds),
            did_poll_max_attempts=_env_int("DID_POLL_MAX_ATTEMPTS", cls.did_poll_max_attempts),
            replicate_poll_interval_seconds=_env_float(
                "REPLICATE_POLL_INTERVAL_SECONDS", cls.replicate_poll_interval_seconds
            ),
            replicate_poll_max_attempts=_env_int("REPLICATE_POLL_MAX_ATTEMPTS", cls.replicate_poll_max_attempts),
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", "*"),
            log_level=(_env("LOG_LEVEL", cls.log_level) or cls.log_level).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings.from_env()
