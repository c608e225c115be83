"""In-memory store of orchestrator sessions keyed by chat or session id."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from services.orchestrator.chat_flow import ChatFlowOrchestrator

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"


@dataclass
class ConversationSession:
	"""One orchestrator plus the lock that serialises its mutations."""

	session_id: str
	orchestrator: ChatFlowOrchestrator
	last_used: float
	lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def session_key(chat_id: Optional[str] = None, session_id: Optional[str] = None) -> str:
	"""Resolve the session key for a request: chat id, then session id, then the default."""
	for candidate in (chat_id, session_id):
		if candidate and str(candidate).strip():
			return str(candidate).strip()
	return DEFAULT_SESSION_ID


class ConversationSessionStore:
	"""Create, reuse, and expire orchestrator sessions."""

	def __init__(
		self,
		factory: Callable[[], ChatFlowOrchestrator],
		idle_timeout_seconds: float = 1800.0,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._factory = factory
		self._idle_timeout = idle_timeout_seconds
		self._clock = clock
		self._sessions: Dict[str, ConversationSession] = {}

	def get_or_create(self, session_id: str) -> ConversationSession:
		"""Return the live session for `session_id`, creating it on first use."""
		now = self._clock()
		self.evict_idle(now)
		session = self._sessions.get(session_id)
		if session is None:
			session = ConversationSession(session_id=session_id, orchestrator=self._factory(), last_used=now)
			self._sessions[session_id] = session
			LOGGER.info("Created conversation session %s", session_id)
		session.last_used = now
		return session

	def get(self, session_id: str) -> Optional[ConversationSession]:
		"""Return an existing live session without creating one."""
		now = self._clock()
		self.evict_idle(now)
		session = self._sessions.get(session_id)
		if session is not None:
			session.last_used = now
		return session

	def evict_idle(self, now: Optional[float] = None) -> List[str]:
		"""Drop sessions idle longer than the timeout; skip ones whose lock is held."""
		now = self._clock() if now is None else now
		expired = [
			key
			for key, session in self._sessions.items()
			if now - session.last_used > self._idle_timeout and not session.lock.locked()
		]
		for key in expired:
			del self._sessions[key]
			LOGGER.info("Evicted idle conversation session %s", key)
		return expired

	def __contains__(self, session_id: str) -> bool:
		return session_id in self._sessions

	def __len__(self) -> int:
		return len(self._sessions)
