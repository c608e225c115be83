"""Conversation domain models for the chat flow orchestrator."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

VALID_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ConversationTurn:
	"""One role-tagged message in a conversation."""

	role: str
	content: str
	timestamp: float = field(default_factory=lambda: time.time())

	def __post_init__(self) -> None:
		if self.role not in VALID_ROLES:
			raise ValueError(f"Unsupported role {self.role!r}")

	def as_message(self) -> Dict[str, str]:
		return {"role": self.role, "content": self.content}

	def to_dict(self) -> Dict[str, Any]:
		return asdict(self)


@dataclass(frozen=True)
class ReferenceImage:
	"""Image locator usable as generation context (URL or data URL)."""

	url: str
	description: str = ""
	added_at: float = field(default_factory=lambda: time.time())

	def to_dict(self) -> Dict[str, Any]:
		return {"url": self.url, "description": self.description, "addedAt": self.added_at}


class Route(str, Enum):
	CHAT = "chat"
	IMAGE_GENERATE = "image_generate"
	WEB_SEARCH = "web_search"
	FILE_SEARCH = "file_search"


@dataclass(frozen=True)
class RoutingDecision:
	"""Which capability one message is dispatched to, plus derived parameters."""

	route: Route
	matched_rule: Optional[str] = None
	image_prompt: Optional[str] = None
	lifestyle: bool = False

	@property
	def is_image(self) -> bool:
		return self.route is Route.IMAGE_GENERATE
