"""Image analysis with OpenAI vision models."""

import logging
import time
from typing import Optional

from openai import AsyncOpenAI

from services.openai.media_inputs import build_vision_inputs
from services.openai.response_parser import extract_text, extract_usage
from services.openai.text_provider import TextResult
from utils.errors import wrap_provider_error
from utils.media_validation import normalize_image_input

LOGGER = logging.getLogger(__name__)
PROVIDER = "openai"
DEFAULT_VISION_PROMPT = "What is in this image?"


class VisionService:
    """Answer a question about one image."""

    def __init__(self, client: AsyncOpenAI, *, model: str = "gpt-4o-mini") -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model

    async def analyze(
        self,
        *,
        prompt: Optional[str] = None,
        image_url: Optional[str] = None,
        image_base64: Optional[str] = None,
        mime_type: str = "image/jpeg",
        max_tokens: int = 300,
        model: Optional[str] = None,
    ) -> TextResult:
        """Describe the image given as URL, data URL, or raw base64."""
        source = normalize_image_input(image_url, image_base64, mime_type)
        inputs = build_vision_inputs((prompt or "").strip() or DEFAULT_VISION_PROMPT, source)
        start = time.time()
        try:
            response = await self.client.responses.create(
                model=model or self.model,
                input=inputs,
                max_output_tokens=max_tokens,
            )
        except Exception as exc:
            LOGGER.error("OpenAI vision request failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        LOGGER.info("OpenAI vision latency: %.3fs", time.time() - start)
        content, _ = extract_text(response)
        return TextResult(content=content, usage=extract_usage(response), response_id=getattr(response, "id", None))
