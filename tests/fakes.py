"""AsyncMock-backed provider fakes returning the adapters' normalised result types."""

from unittest.mock import AsyncMock

from services.openai.image_provider import ImageResult
from services.openai.text_provider import TextResult

# 1x1 transparent PNG
PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def make_text_provider(content: str = "Hello there!", **result_fields) -> AsyncMock:
    provider = AsyncMock()
    provider.text_model = "o4-mini-2025-04-16"
    provider.respond.return_value = TextResult(
        content=content, usage={"input_tokens": 5, "output_tokens": 3, "total_tokens": 8}, **result_fields
    )
    return provider


def make_enhancer(enhanced: str = "A golden retriever in warm light, photorealistic") -> AsyncMock:
    enhancer = AsyncMock()
    enhancer.model = "claude-3-5-sonnet-20241022"
    enhancer.enhance.return_value = enhanced
    return enhancer


def make_image_provider() -> AsyncMock:
    """Image fake whose results carry the prompt they were called with."""
    provider = AsyncMock()
    provider.model = "gpt-image-1"

    async def _result(prompt, *args, **kwargs):
        return ImageResult(image_base64=PNG_B64, model="gpt-image-1", prompt=prompt)

    async def _edit(prompt, reference_image, **kwargs):
        return await _result(prompt)

    provider.generate.side_effect = _result
    provider.edit.side_effect = _edit
    return provider
