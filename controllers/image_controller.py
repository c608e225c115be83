"""Controller for standalone image generation."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from services.openai.image_provider import OpenAIImageProvider
from services.replicate.image_provider import ReplicateImageProvider
from utils.app_state import get_service
from utils.errors import ValidationError
from utils.media_validation import to_data_url
from utils.response_headers import RequestMetadata

LOGGER = logging.getLogger(__name__)


def uses_replicate(model: Optional[str]) -> bool:
    """Replicate model ids look like `owner/name[:version]`; OpenAI ids never contain a slash."""
    return bool(model) and "/" in model


async def generate_image(
    request: Request,
    prompt: Optional[str],
    *,
    model: Optional[str] = None,
    size: str = "1024x1024",
    quality: Optional[str] = None,
    output_format: str = "png",
    options: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt is required")

    if uses_replicate(model):
        replicate: ReplicateImageProvider = get_service(request, "replicate_provider", "Replicate")
        metadata = RequestMetadata(model=model, provider="replicate")
        image = await replicate.generate(prompt, model=model, size=size, quality=quality, **(options or {}))
        body: Dict[str, Any] = {"imageUrl": image.image_url, "model": image.model, "predictionId": image.prediction_id}
        if image.image_base64:
            body["imageData"] = to_data_url(image.image_base64, image.mime_type)
    else:
        openai_images: OpenAIImageProvider = get_service(request, "image_provider", "OpenAI")
        metadata = RequestMetadata(model=model or openai_images.model, provider="openai")
        image = await openai_images.generate(
            prompt, model=metadata.model, size=size, quality=quality, output_format=output_format
        )
        body = {"imageUrl": image.data_url, "revisedPrompt": image.revised_prompt, "model": image.model}

    metadata.log()
    body["metadata"] = metadata.body()
    return JSONResponse(body, headers=metadata.headers())
