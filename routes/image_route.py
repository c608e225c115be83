"""FastAPI routes for standalone image generation."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.image_controller import generate_image
from utils.errors import AppError, GENERIC_ERROR_MESSAGE

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/image-gen", tags=["image-gen"])


class ImageGenPayload(BaseModel):
    prompt: Optional[str] = None
    model: Optional[str] = None
    size: str = "1024x1024"
    quality: Optional[str] = None
    format: str = "png"
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None


@router.post("", summary="Generate an image with OpenAI or a Replicate model")
async def image_gen_route(request: Request, payload: ImageGenPayload):
    options = {}
    if payload.negative_prompt:
        options["negative_prompt"] = payload.negative_prompt
    if payload.seed is not None:
        options["seed"] = payload.seed
    try:
        return await generate_image(
            request,
            payload.prompt,
            model=payload.model,
            size=payload.size,
            quality=payload.quality,
            output_format=payload.format,
            options=options,
        )
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Image generation failed")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE) from exc
