"""Response envelopes returned by the orchestrator.

Envelopes form a tagged union on `type`: `TextEnvelope` for chat and search
answers, `ImageEnvelope` for generated images. Each serialises to the camelCase
JSON shape the frontend consumes and drops optional fields that are empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class WebSearchCall:
    id: Optional[str]
    status: Optional[str]
    action: Optional[Dict[str, Any]] = None
    query: Optional[str] = None
    domains: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "action": self.action,
            "query": self.query,
            "domains": self.domains,
        }


@dataclass(frozen=True)
class FileSearchCall:
    id: Optional[str]
    status: Optional[str]
    queries: List[str] = field(default_factory=list)
    search_results: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "queries": list(self.queries),
            "searchResults": self.search_results,
        }


@dataclass(frozen=True)
class FunctionCall:
    function_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    result: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"functionName": self.function_name, "arguments": self.arguments, "result": self.result}


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value not in (None, [], {}, "")}


@dataclass(frozen=True)
class TextEnvelope:
    """Answer produced by the chat, web search, or file search path."""

    content: str
    enhanced_prompt: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    function_calls: Tuple[FunctionCall, ...] = ()
    web_search_calls: Tuple[WebSearchCall, ...] = ()
    file_search_calls: Tuple[FileSearchCall, ...] = ()
    usage: Optional[Dict[str, Any]] = None

    type: str = field(default="text", init=False)

    def to_dict(self) -> Dict[str, Any]:
        data = _compact(
            {
                "enhancedPrompt": self.enhanced_prompt,
                "structuredData": self.structured_data,
                "functionCalls": [call.to_dict() for call in self.function_calls],
                "webSearchCalls": [call.to_dict() for call in self.web_search_calls],
                "fileSearchCalls": [call.to_dict() for call in self.file_search_calls],
                "usage": self.usage,
            }
        )
        return {"type": self.type, "content": self.content, **data}


@dataclass(frozen=True)
class ImageEnvelope:
    """Answer produced by the enhance-then-generate image path."""

    content: str
    image_url: str
    enhanced_prompt: str
    structured_data: Optional[Dict[str, Any]] = None
    usage: Optional[Dict[str, Any]] = None

    type: str = field(default="image", init=False)

    def __post_init__(self) -> None:
        if not self.image_url:
            raise ValueError("ImageEnvelope requires an image_url")
        if not self.enhanced_prompt:
            raise ValueError("ImageEnvelope requires an enhanced_prompt")

    def to_dict(self) -> Dict[str, Any]:
        data = _compact({"structuredData": self.structured_data, "usage": self.usage})
        return {
            "type": self.type,
            "content": self.content,
            "imageUrl": self.image_url,
            "enhancedPrompt": self.enhanced_prompt,
            **data,
        }


Envelope = Union[TextEnvelope, ImageEnvelope]
