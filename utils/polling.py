"""Bounded polling for asynchronous jobs run by external providers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from utils.errors import PollingTimeoutError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollingPolicy:
    """Fixed-interval polling with a hard attempt ceiling.

    Attributes:
        interval_seconds: Delay before each probe.
        max_attempts: Number of probes before giving up.
        sleep: Awaitable sleep function; tests inject a no-op.
    """

    interval_seconds: float
    max_attempts: int
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be non-negative")

    async def run(self, probe: Callable[[], Awaitable[Optional[T]]], *, description: str = "job") -> T:
        """Call `probe` until it returns a non-None value.

        Raises:
            PollingTimeoutError: If every attempt returned None.
        """
        for attempt in range(1, self.max_attempts + 1):
            await self.sleep(self.interval_seconds)
            result = await probe()
            if result is not None:
                LOGGER.info("%s finished after %d attempt(s)", description, attempt)
                return result
        raise PollingTimeoutError(
            f"{description} timed out",
            details=f"no result after {self.max_attempts} attempts at {self.interval_seconds}s",
        )
