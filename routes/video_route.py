"""FastAPI routes for avatar videos and D-ID talk lookups."""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.video_controller import generate_video, get_talk, list_talks
from utils.errors import AppError, GENERIC_ERROR_MESSAGE

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["video"])


class ScenePayload(BaseModel):
    script: str
    sourceUrl: str
    voiceId: Optional[str] = None
    emotion: Optional[str] = None


class VideoPayload(BaseModel):
    scenes: List[ScenePayload]
    userId: Optional[str] = None
    stability: float = 0.5
    similarity: float = 0.75
    model: Optional[str] = None
    ssml: bool = False


@router.post("/video-generator")
async def video_generator_route(request: Request, payload: VideoPayload):
    try:
        return await generate_video(
            request,
            [scene.model_dump() for scene in payload.scenes],
            user_id=payload.userId,
            stability=payload.stability,
            similarity=payload.similarity,
            voice_model=payload.model,
            ssml=payload.ssml,
        )
    except (HTTPException, AppError):
        raise
    except Exception as exc:
        LOGGER.exception("Video generation failed")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE) from exc


@router.get("/did-talk")
async def did_talk_route(request: Request, id: Optional[str] = None):
    return await get_talk(request, id)


@router.get("/did-talks")
async def did_talks_route(request: Request):
    return await list_talks(request)
