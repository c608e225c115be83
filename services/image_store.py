"""Upload generated media to Supabase storage.

Generated images are stored with a PNG thumbnail next to them under
`user-<id>/<chat id>/` in the `generated-content` bucket; stitched videos go to
the `videos` bucket. Callers receive public URLs.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from services.thumbnail_generator import ThumbnailGenerator
from utils.media_validation import decode_data_url
from utils.supabase_init import SupabaseClientInitializer

LOGGER = logging.getLogger(__name__)

IMAGE_BUCKET = "generated-content"
VIDEO_BUCKET = "videos"
_EXTENSIONS = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png", "image/webp": "webp", "image/gif": "gif"}


@dataclass
class StoredImage:
    image_url: str
    thumbnail_url: str
    path: str


class ImageStore:
    """Persist images and videos produced for a user."""

    def __init__(self, supabase: SupabaseClientInitializer, thumbnails: Optional[ThumbnailGenerator] = None) -> None:
        self._supabase = supabase
        self._thumbnails = thumbnails or ThumbnailGenerator()

    async def _upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        client = await self._supabase.client()
        storage = client.storage.from_(bucket)
        await storage.upload(path, data, {"content-type": content_type, "upsert": "true"})
        return await storage.get_public_url(path)

    async def save_generated_image(self, user_id: str, chat_id: str, data_url: str) -> StoredImage:
        """Upload a data-URL image plus its thumbnail and return both public URLs.

        Raises:
            ValidationError: If `data_url` is not a supported image data URL.
        """
        mime_type, image_bytes = decode_data_url(data_url)
        ext = _EXTENSIONS.get(mime_type, "png")
        image_id = uuid.uuid4().hex
        folder = f"user-{user_id}/{chat_id}"
        path = f"{folder}/{image_id}.{ext}"

        # Pillow work is blocking -> run in thread
        thumbnail = await asyncio.to_thread(self._thumbnails.create_thumbnail, image_bytes)

        image_url = await self._upload(IMAGE_BUCKET, path, image_bytes, mime_type)
        thumbnail_url = await self._upload(IMAGE_BUCKET, f"{folder}/{image_id}_thumb.png", thumbnail, "image/png")
        LOGGER.info("Stored generated image %s (%d bytes)", path, len(image_bytes))
        return StoredImage(image_url=image_url, thumbnail_url=thumbnail_url, path=path)

    async def save_video(self, user_id: Optional[str], video_bytes: bytes) -> str:
        path = f"user-{user_id or 'anonymous'}/ugc-{uuid.uuid4()}.mp4"
        url = await self._upload(VIDEO_BUCKET, path, video_bytes, "video/mp4")
        LOGGER.info("Stored stitched video %s (%d bytes)", path, len(video_bytes))
        return url
