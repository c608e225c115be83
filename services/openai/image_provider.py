"""Image generation and image-to-image editing with the OpenAI Images API."""

import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from openai import AsyncOpenAI

from utils.errors import UpstreamProviderError, ValidationError, wrap_provider_error
from utils.media_validation import decode_data_url, decode_base64_image, is_remote_url, to_data_url

LOGGER = logging.getLogger(__name__)
PROVIDER = "openai"
MAX_PROMPT_LENGTH = 4000
GPT_IMAGE_QUALITIES = ("low", "medium", "high", "auto")
DALLE_QUALITIES = ("standard", "hd")


@dataclass
class ImageResult:
    """Generated image as base64 plus the metadata callers surface."""

    image_base64: str
    model: str
    prompt: str
    revised_prompt: Optional[str] = None
    output_format: str = "png"

    @property
    def mime_type(self) -> str:
        return "image/jpeg" if self.output_format in ("jpg", "jpeg") else f"image/{self.output_format}"

    @property
    def data_url(self) -> str:
        return to_data_url(self.image_base64, self.mime_type)

    def structured_data(self) -> Dict[str, Any]:
        return {
            "description": self.prompt,
            "enhanced_prompt": self.prompt,
            "revised_prompt": self.revised_prompt,
            "model": self.model,
            "format": self.output_format,
        }


def clamp_prompt(prompt: str) -> str:
    """Trim and cap a prompt at the Images API limit."""
    final = (prompt or "").strip()
    if not final:
        raise ValidationError("Prompt is required")
    if len(final) > MAX_PROMPT_LENGTH:
        LOGGER.warning("Prompt too long (%d chars), truncating to %d", len(final), MAX_PROMPT_LENGTH)
        final = final[: MAX_PROMPT_LENGTH - 3] + "..."
    return final


class OpenAIImageProvider:
    """Create images from prompts, optionally seeded by a reference image."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = "gpt-image-1",
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.http_client = http_client

    def _request_options(self, model: str, size: str, quality: Optional[str], output_format: str) -> Dict[str, Any]:
        options: Dict[str, Any] = {"model": model, "size": size, "n": 1}
        if model.startswith("dall-e"):
            options["response_format"] = "b64_json"
            options["quality"] = quality if quality in DALLE_QUALITIES else "standard"
        else:
            options["output_format"] = output_format
            if quality in GPT_IMAGE_QUALITIES:
                options["quality"] = quality
        return options

    def _to_result(self, response: Any, model: str, prompt: str, output_format: str) -> ImageResult:
        data = getattr(response, "data", None) or []
        if not data:
            raise UpstreamProviderError(PROVIDER, "No image data returned from OpenAI")
        image = data[0]
        b64 = getattr(image, "b64_json", None)
        if not b64:
            raise UpstreamProviderError(PROVIDER, "OpenAI image response did not include base64 data")
        return ImageResult(
            image_base64=b64,
            model=model,
            prompt=prompt,
            revised_prompt=getattr(image, "revised_prompt", None),
            output_format=output_format,
        )

    async def generate(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        size: str = "1024x1024",
        quality: Optional[str] = None,
        output_format: str = "png",
    ) -> ImageResult:
        """Text-to-image generation."""
        final_prompt = clamp_prompt(prompt)
        model = model or self.model
        options = self._request_options(model, size, quality, output_format)
        start = time.time()
        try:
            response = await self.client.images.generate(prompt=final_prompt, **options)
        except Exception as exc:
            LOGGER.error("OpenAI image generation failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        LOGGER.info("OpenAI image generation latency: %.3fs", time.time() - start)
        return self._to_result(response, model, final_prompt, "png" if model.startswith("dall-e") else output_format)

    async def edit(
        self,
        prompt: str,
        reference_image: str,
        *,
        size: str = "1024x1024",
        quality: Optional[str] = None,
    ) -> ImageResult:
        """Image-to-image generation seeded by `reference_image` (URL, data URL, or base64)."""
        final_prompt = clamp_prompt(prompt)
        mime_type, image_bytes = await self._load_reference(reference_image)
        image_file = io.BytesIO(image_bytes)
        image_file.name = "reference." + ("jpg" if mime_type.endswith("jpeg") else mime_type.split("/")[-1])

        options: Dict[str, Any] = {"model": self.model, "size": size, "n": 1}
        if quality in GPT_IMAGE_QUALITIES:
            options["quality"] = quality
        start = time.time()
        try:
            response = await self.client.images.edit(image=image_file, prompt=final_prompt, **options)
        except Exception as exc:
            LOGGER.error("OpenAI image edit failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        LOGGER.info("OpenAI image edit latency: %.3fs", time.time() - start)
        return self._to_result(response, self.model, final_prompt, "png")

    async def _load_reference(self, reference_image: str) -> tuple:
        if reference_image.startswith("data:"):
            return decode_data_url(reference_image)
        if is_remote_url(reference_image):
            try:
                if self.http_client is not None:
                    response = await self.http_client.get(reference_image)
                else:
                    async with httpx.AsyncClient(timeout=30.0) as client:
                        response = await client.get(reference_image)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise UpstreamProviderError("reference-image", f"Failed to download reference image: {exc}") from exc
            mime_type = response.headers.get("content-type", "image/png").split(";", 1)[0].strip()
            return mime_type, response.content
        return "image/png", decode_base64_image(reference_image)
