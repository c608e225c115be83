"""Helpers to extract text, usage, and tool-call records from OpenAI responses.

The SDK returns pydantic objects, while tests and raw HTTP callers hand over
plain dicts; `_field` reads either.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from models.envelope_models import FileSearchCall, WebSearchCall

LOGGER = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _output_items(response: Any, item_type: str) -> List[Any]:
    return [item for item in _field(response, "output", None) or [] if _field(item, "type") == item_type]


def extract_text(response: Any) -> Tuple[str, List[Any]]:
    """Return the first output_text and its annotations from a Responses API result."""
    for item in _output_items(response, "message"):
        for content in _field(item, "content", None) or []:
            content_type = _field(content, "type")
            if content_type == "output_text":
                return _field(content, "text", "") or "", list(_field(content, "annotations", None) or [])
            if content_type == "refusal":
                refusal = _field(content, "refusal", "") or ""
                return f"I apologize, but I cannot fulfill this request: {refusal}", []
    return _field(response, "output_text", "") or "", []


def parse_structured_output(text: str) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Split a JSON-schema answer into display content and the parsed object."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return text, None
    if not isinstance(data, dict):
        return text, None
    return str(data.get("content") or text), data


def extract_usage(response: Any) -> Optional[Dict[str, Optional[int]]]:
    """Return token usage information from the response, if present."""
    usage = _field(response, "usage")
    if usage is None:
        return None
    input_tokens = _field(usage, "input_tokens", _field(usage, "prompt_tokens"))
    output_tokens = _field(usage, "output_tokens", _field(usage, "completion_tokens"))
    total = _field(usage, "total_tokens")
    if total is None and input_tokens is not None and output_tokens is not None:
        total = input_tokens + output_tokens
    return {"input_tokens": input_tokens, "output_tokens": output_tokens, "total_tokens": total}


def parse_web_search_calls(response: Any) -> List[WebSearchCall]:
    calls = []
    for item in _output_items(response, "web_search_call"):
        action = _field(item, "action")
        if action is not None and not isinstance(action, dict):
            action = action.model_dump() if hasattr(action, "model_dump") else {"type": _field(action, "type")}
        calls.append(
            WebSearchCall(
                id=_field(item, "id"),
                status=_field(item, "status"),
                action=action,
                query=_field(item, "query") or (action or {}).get("query"),
                domains=_field(item, "domains") or (action or {}).get("domains"),
            )
        )
    return calls


def parse_file_search_calls(response: Any) -> List[FileSearchCall]:
    calls = []
    for item in _output_items(response, "file_search_call"):
        results = _field(item, "results", None) or _field(item, "search_results", None)
        if results is not None:
            results = [r.model_dump() if hasattr(r, "model_dump") else r for r in results]
        calls.append(
            FileSearchCall(
                id=_field(item, "id"),
                status=_field(item, "status"),
                queries=list(_field(item, "queries", None) or []),
                search_results=results,
            )
        )
    return calls


def citation_sources(annotations: List[Any]) -> List[Dict[str, Any]]:
    """Flatten url/file citation annotations into source records."""
    sources: List[Dict[str, Any]] = []
    for annotation in annotations:
        kind = _field(annotation, "type")
        if kind == "url_citation":
            sources.append({"url": _field(annotation, "url"), "title": _field(annotation, "title")})
        elif kind == "file_citation":
            sources.append({"fileId": _field(annotation, "file_id"), "filename": _field(annotation, "filename")})
    return sources
