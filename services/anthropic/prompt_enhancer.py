"""Creative prompt enhancement with Anthropic Claude."""

import logging
import time
from typing import Any, Optional

from anthropic import AsyncAnthropic

from services.orchestrator.prompts import enhancement_system_prompt, enhancement_user_prompt
from utils.errors import UpstreamProviderError, ValidationError, wrap_provider_error

LOGGER = logging.getLogger(__name__)
PROVIDER = "anthropic"


def _first_text(message: Any) -> str:
    for block in getattr(message, "content", None) or []:
        text = getattr(block, "text", None)
        if text:
            return text.strip()
    return ""


class PromptEnhancer:
    """Rewrite a raw request into a richer generation prompt."""

    def __init__(
        self,
        client: AsyncAnthropic,
        *,
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 500,
    ) -> None:
        if client is None:
            raise ValueError("Anthropic client must be provided.")
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def enhance(self, message: str, context: Optional[str] = None) -> str:
        """Return the enhanced prompt; an empty completion counts as a failure."""
        if not message or not message.strip():
            raise ValidationError("Prompt is required")
        start = time.time()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=enhancement_system_prompt(),
                messages=[{"role": "user", "content": enhancement_user_prompt(message.strip(), context)}],
            )
        except Exception as exc:
            LOGGER.error("Claude prompt enhancement failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        LOGGER.info("Claude enhancement latency: %.3fs", time.time() - start)

        enhanced = _first_text(response)
        if not enhanced:
            raise UpstreamProviderError(PROVIDER, "Prompt enhancement returned no text")
        return enhanced
