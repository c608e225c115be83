"""Validation helpers for image payloads passed as URLs, data URLs, or base64."""

import base64
import binascii
import re
from typing import Optional, Tuple

from utils.errors import ValidationError

ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
}

_DATA_URL = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


def is_remote_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def decode_data_url(value: str) -> Tuple[str, bytes]:
    """Split a `data:image/...;base64,` URL into `(mime_type, raw_bytes)`."""
    match = _DATA_URL.match(value.strip())
    if not match:
        raise ValidationError("Image must be a base64 data URL")
    mime_type = match.group("mime").lower()
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Unsupported image content type: {mime_type}")
    return mime_type, decode_base64_image(match.group("data"))


def decode_base64_image(data: str | bytes) -> bytes:
    """Decode base64 image data, rejecting empty or malformed input."""
    if isinstance(data, str):
        data = data.strip().encode("utf-8")
    if not data:
        raise ValidationError("Image data is empty")
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image data is not valid base64") from exc
    if not raw:
        raise ValidationError("Image data is empty")
    return raw


def to_data_url(image_base64: str, mime_type: str = "image/png") -> str:
    """Wrap base64 image data in a data URL unless it already is one."""
    if image_base64.startswith("data:"):
        return image_base64
    return f"data:{mime_type};base64,{image_base64}"


def normalize_image_input(image_url: Optional[str], image_base64: Optional[str], mime_type: str = "image/jpeg") -> str:
    """Return a URL usable as vision input from either an http(s) URL or base64 data."""
    if image_url and image_url.strip():
        image_url = image_url.strip()
        if is_remote_url(image_url):
            return image_url
        decode_data_url(image_url)
        return image_url
    if image_base64 and image_base64.strip():
        if image_base64.startswith("data:"):
            decode_data_url(image_base64)
            return image_base64.strip()
        if mime_type.lower() not in ALLOWED_IMAGE_TYPES:
            raise ValidationError(f"Unsupported image content type: {mime_type}")
        decode_base64_image(image_base64)
        return to_data_url(image_base64.strip(), mime_type.lower())
    raise ValidationError("Either imageUrl or imageBase64 is required")
