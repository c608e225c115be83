"""Text completion, streaming, and tool-assisted responses on OpenAI."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from models.envelope_models import FileSearchCall, FunctionCall, WebSearchCall
from services.openai.response_parser import (
    citation_sources,
    extract_text,
    extract_usage,
    parse_file_search_calls,
    parse_structured_output,
    parse_web_search_calls,
)
from utils.errors import ValidationError, wrap_provider_error

LOGGER = logging.getLogger(__name__)
PROVIDER = "openai"


@dataclass
class TextResult:
    """Normalised outcome of one text-provider call."""

    content: str
    usage: Optional[Dict[str, Any]] = None
    structured_data: Optional[Dict[str, Any]] = None
    response_id: Optional[str] = None
    sources: List[Dict[str, Any]] = field(default_factory=list)
    function_calls: List[FunctionCall] = field(default_factory=list)
    web_search_calls: List[WebSearchCall] = field(default_factory=list)
    file_search_calls: List[FileSearchCall] = field(default_factory=list)


def validate_messages(messages: Any) -> List[Dict[str, str]]:
    """Check a chat `messages` array and normalise each entry."""
    if not isinstance(messages, list) or not messages:
        raise ValidationError("Messages array is required")
    cleaned = []
    for index, message in enumerate(messages):
        if not isinstance(message, dict):
            raise ValidationError(f"Message {index} must be an object")
        role = message.get("role")
        content = message.get("content")
        if role not in ("system", "developer", "user", "assistant"):
            raise ValidationError(f"Message {index} has an invalid role")
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(f"Message {index} must have text content")
        cleaned.append({"role": role, "content": content})
    return cleaned


def _function_calls(response: Any) -> List[FunctionCall]:
    calls = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "function_call":
            continue
        try:
            arguments = json.loads(getattr(item, "arguments", "{}") or "{}")
        except ValueError:
            arguments = {"raw": getattr(item, "arguments", "")}
        calls.append(FunctionCall(function_name=getattr(item, "name", ""), arguments=arguments))
    return calls


class OpenAITextProvider:
    """Wrap the Chat Completions and Responses APIs behind normalised calls."""

    def __init__(self, client: AsyncOpenAI, *, model: str = "gpt-4o", text_model: str = "o4-mini-2025-04-16") -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.text_model = text_model

    async def complete(
        self,
        messages: Sequence[Dict[str, str]],
        *,
        model: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
    ) -> TextResult:
        """Single chat completion for the plain text route."""
        kwargs: Dict[str, Any] = {
            "model": model or self.text_model,
            "messages": list(messages),
            "max_completion_tokens": max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        start = time.time()
        try:
            completion = await self.client.chat.completions.create(**kwargs)
        except Exception as exc:
            LOGGER.error("OpenAI chat completion failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        LOGGER.info("OpenAI completion latency: %.3fs", time.time() - start)

        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise wrap_provider_error(PROVIDER, RuntimeError("Completion returned no choices"))
        content = getattr(choices[0].message, "content", None) or ""
        return TextResult(content=content, usage=extract_usage(completion), response_id=getattr(completion, "id", None))

    async def stream(
        self,
        messages: Sequence[Dict[str, str]],
        *,
        model: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield `{content, done, usage}` chunks; the last chunk has `done=True`."""
        kwargs: Dict[str, Any] = {
            "model": model or self.text_model,
            "messages": list(messages),
            "max_completion_tokens": max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        try:
            stream = await self.client.chat.completions.create(**kwargs)
            usage = None
            async for chunk in stream:
                if getattr(chunk, "usage", None) is not None:
                    usage = extract_usage(chunk)
                for choice in getattr(chunk, "choices", None) or []:
                    delta = getattr(getattr(choice, "delta", None), "content", None)
                    if delta:
                        yield {"content": delta, "done": False, "usage": None}
        except Exception as exc:
            LOGGER.error("OpenAI streaming completion failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        yield {"content": "", "done": True, "usage": usage}

    async def respond(
        self,
        input_items: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        include: Optional[List[str]] = None,
        text_format: Optional[Dict[str, Any]] = None,
        max_output_tokens: int = 2000,
        model: Optional[str] = None,
    ) -> TextResult:
        """Responses API call used by the orchestrator's chat and search paths."""
        kwargs: Dict[str, Any] = {
            "model": model or self.model,
            "input": input_items,
            "max_output_tokens": max_output_tokens,
        }
        if tools:
            kwargs["tools"] = tools
        if include:
            kwargs["include"] = include
        if text_format:
            kwargs["text"] = {"format": text_format}

        start = time.time()
        try:
            response = await self.client.responses.create(**kwargs)
        except Exception as exc:
            LOGGER.error("OpenAI Responses API call failed: %s", exc)
            raise wrap_provider_error(PROVIDER, exc) from exc
        LOGGER.info("OpenAI response latency: %.3fs", time.time() - start)

        error = getattr(response, "error", None)
        if error:
            raise wrap_provider_error(PROVIDER, RuntimeError(getattr(error, "message", None) or str(error)))

        raw_text, annotations = extract_text(response)
        content, structured = parse_structured_output(raw_text) if text_format else (raw_text, None)
        return TextResult(
            content=content,
            usage=extract_usage(response),
            structured_data=structured,
            response_id=getattr(response, "id", None),
            sources=citation_sources(annotations),
            function_calls=_function_calls(response),
            web_search_calls=parse_web_search_calls(response),
            file_search_calls=parse_file_search_calls(response),
        )
