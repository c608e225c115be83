"""Controllers for the direct OpenAI and prompt-enhancement endpoints."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse

from services.anthropic.prompt_enhancer import PromptEnhancer
from services.openai.text_provider import OpenAITextProvider, validate_messages
from services.openai.vision_service import VisionService
from utils.app_state import get_service
from utils.errors import AppError, GENERIC_ERROR_MESSAGE, ValidationError
from utils.response_headers import RequestMetadata

LOGGER = logging.getLogger(__name__)


def _sse(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


async def _event_stream(
    provider: OpenAITextProvider, messages: List[Dict[str, str]], metadata: RequestMetadata, **options: Any
) -> AsyncIterator[str]:
    try:
        async for chunk in provider.stream(messages, **options):
            yield _sse(chunk)
    except AppError as exc:
        LOGGER.error("Streaming request %s failed: %s", metadata.request_id, exc)
        yield _sse({"error": exc.public_message(), "done": True})
        return
    except Exception:
        LOGGER.exception("Streaming request %s failed", metadata.request_id)
        yield _sse({"error": GENERIC_ERROR_MESSAGE, "done": True})
        return
    metadata.log()
    yield _sse({"metadata": metadata.body()})


async def complete_text(
    request: Request,
    messages: Any,
    *,
    model: Optional[str] = None,
    max_tokens: int = 1000,
    temperature: Optional[float] = None,
    stream: bool = False,
):
    """Chat completion, either as one JSON body or as server-sent events."""
    cleaned = validate_messages(messages)
    provider: OpenAITextProvider = get_service(request, "text_provider", "OpenAI")
    metadata = RequestMetadata(model=model or provider.text_model, provider="openai")
    options = {"model": metadata.model, "max_tokens": max_tokens, "temperature": temperature}

    if stream:
        headers = {**metadata.headers(0), "Cache-Control": "no-cache", "Connection": "keep-alive"}
        return StreamingResponse(
            _event_stream(provider, cleaned, metadata, **options), media_type="text/event-stream", headers=headers
        )

    result = await provider.complete(cleaned, **options)
    metadata.log()
    body = {"content": result.content, "usage": result.usage, "metadata": metadata.body()}
    return JSONResponse(body, headers=metadata.headers())


async def analyze_image(
    request: Request,
    *,
    image_url: Optional[str] = None,
    image_base64: Optional[str] = None,
    prompt: Optional[str] = None,
    mime_type: str = "image/jpeg",
    max_tokens: int = 300,
) -> JSONResponse:
    if not image_url and not image_base64:
        raise ValidationError("Either imageUrl or imageBase64 is required")
    vision: VisionService = get_service(request, "vision_service", "OpenAI")
    metadata = RequestMetadata(model=vision.model, provider="openai")
    result = await vision.analyze(
        prompt=prompt, image_url=image_url, image_base64=image_base64, mime_type=mime_type, max_tokens=max_tokens
    )
    metadata.log()
    body = {"content": result.content, "usage": result.usage, "metadata": metadata.body()}
    return JSONResponse(body, headers=metadata.headers())


async def enhance_prompt(request: Request, prompt: Optional[str], context: Optional[str] = None) -> JSONResponse:
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt is required")
    enhancer: PromptEnhancer = get_service(request, "prompt_enhancer", "Anthropic")
    metadata = RequestMetadata(model=enhancer.model, provider="anthropic")
    enhanced = await enhancer.enhance(prompt, context=context)
    metadata.log()
    body = {"originalPrompt": prompt, "enhancedPrompt": enhanced, "metadata": metadata.body()}
    return JSONResponse(body, headers=metadata.headers())
