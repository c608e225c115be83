"""Capacity-bounded, insertion-ordered collections used by the orchestrator."""

from __future__ import annotations

from collections import deque
from typing import Deque, Generic, Iterable, Iterator, List, Optional, TypeVar

from models.conversation_models import ConversationTurn, ReferenceImage

T = TypeVar("T")


class BoundedBuffer(Generic[T]):
    """FIFO buffer that evicts its oldest entry once `capacity` is reached."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)

    def append(self, item: T) -> None:
        self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        self._items.extend(items)

    def latest(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def recent(self, limit: int) -> List[T]:
        """Return up to `limit` newest items, oldest first."""
        if limit <= 0:
            return []
        return list(self._items)[-limit:]

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> List[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))


class ConversationHistory(BoundedBuffer[ConversationTurn]):
    """Rolling window of user/assistant turns."""

    def add(self, role: str, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content)
        self.append(turn)
        return turn

    def as_messages(self, limit: Optional[int] = None) -> List[dict]:
        turns = self.snapshot() if limit is None else self.recent(limit)
        return [turn.as_message() for turn in turns]


class ReferenceImageSet(BoundedBuffer[ReferenceImage]):
    """Recent images that can seed image-to-image generation."""

    def add(self, url: str, description: str = "") -> ReferenceImage:
        image = ReferenceImage(url=url, description=description)
        self.append(image)
        return image

    def effective(self, override: Optional[str] = None) -> Optional[str]:
        """Resolve the reference image for a turn: explicit override, else most recent."""
        if override:
            return override
        latest = self.latest()
        return latest.url if latest else None
