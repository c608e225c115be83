"""FastAPI routes for direct text, vision, and prompt-enhancement calls."""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.openai_controller import analyze_image, complete_text, enhance_prompt
from utils.errors import AppError, GENERIC_ERROR_MESSAGE

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/openai", tags=["openai"])


class TextPayload(BaseModel):
    messages: Optional[List[Any]] = None
    model: Optional[str] = None
    maxTokens: int = 1000
    temperature: Optional[float] = None
    stream: bool = False


class VisionPayload(BaseModel):
    imageUrl: Optional[str] = None
    imageBase64: Optional[str] = None
    prompt: Optional[str] = None
    mimeType: str = "image/jpeg"
    maxTokens: int = 300


class EnhancementPayload(BaseModel):
    prompt: Optional[str] = None
    context: Optional[str] = None


@router.post("/text")
async def text_route(request: Request, payload: TextPayload):
    try:
        return await complete_text(
            request,
            payload.messages,
            model=payload.model,
            max_tokens=payload.maxTokens,
            temperature=payload.temperature,
            stream=payload.stream,
        )
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Text completion failed")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE) from exc


@router.post("/vision")
async def vision_route(request: Request, payload: VisionPayload):
    try:
        return await analyze_image(
            request,
            image_url=payload.imageUrl,
            image_base64=payload.imageBase64,
            prompt=payload.prompt,
            mime_type=payload.mimeType,
            max_tokens=payload.maxTokens,
        )
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Image analysis failed")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE) from exc


@router.post("/prompt-enhancement")
async def prompt_enhancement_route(request: Request, payload: EnhancementPayload):
    try:
        return await enhance_prompt(request, payload.prompt, payload.context)
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Prompt enhancement failed")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE) from exc
