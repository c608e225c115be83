"""Controller for multi-scene talking-avatar videos and D-ID lookups."""

import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
from fastapi import Request

from services.did.talk_client import DIDTalkClient, build_talk_payload
from services.did.video_stitcher import VideoStitcher
from services.image_store import ImageStore
from utils.app_state import get_service
from utils.errors import ValidationError

LOGGER = logging.getLogger(__name__)


async def generate_video(
    request: Request,
    scenes: List[Dict[str, Any]],
    *,
    user_id: Optional[str] = None,
    stability: float = 0.5,
    similarity: float = 0.75,
    voice_model: Optional[str] = None,
    ssml: bool = False,
) -> Dict[str, Any]:
    """Render every scene with D-ID, stitch them in order, and upload the result."""
    if not scenes:
        raise ValidationError("At least one scene is required")
    did: DIDTalkClient = get_service(request, "did_client", "D-ID")
    store: ImageStore = get_service(request, "image_store", "Supabase")
    stitcher: VideoStitcher = get_service(request, "video_stitcher", "ffmpeg")

    payloads = []
    for index, scene in enumerate(scenes):
        try:
            payloads.append(
                build_talk_payload(
                    scene.get("sourceUrl"),
                    scene.get("script"),
                    voice_id=scene.get("voiceId"),
                    emotion=scene.get("emotion") or "neutral",
                    stability=stability,
                    similarity=similarity,
                    ssml=ssml,
                    **({"voice_model": voice_model} if voice_model else {}),
                )
            )
        except ValidationError as exc:
            raise ValidationError(f"Scene {index + 1}: {exc.message}") from exc

    with tempfile.TemporaryDirectory(prefix="ugc-scenes-") as temp_dir:
        directory = Path(temp_dir)
        scene_paths = []
        for index, payload in enumerate(payloads):
            talk_id = await did.create_talk(payload)
            result_url = await did.wait_for_talk(talk_id)
            video = await did.download(result_url)
            scene_paths.append(await stitcher.write_scene(directory, index, video))
            LOGGER.info("Scene %d/%d rendered (talk %s)", index + 1, len(payloads), talk_id)

        if len(scene_paths) == 1:
            final_path = scene_paths[0]
        else:
            final_path = await stitcher.stitch(scene_paths, directory / "final.mp4")
        async with aiofiles.open(final_path, "rb") as handle:
            video_bytes = await handle.read()
        video_url = await store.save_video(user_id, video_bytes)

    return {"success": True, "videoUrl": video_url, "scenes": len(payloads)}


async def get_talk(request: Request, talk_id: Optional[str]) -> Dict[str, Any]:
    if not talk_id:
        raise ValidationError("Missing id")
    did: DIDTalkClient = get_service(request, "did_client", "D-ID")
    return await did.get_talk(talk_id)


async def list_talks(request: Request) -> Dict[str, Any]:
    did: DIDTalkClient = get_service(request, "did_client", "D-ID")
    return {"talks": await did.list_talks()}
