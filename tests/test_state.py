"""
Tests for bounded buffers, the polling policy, and the session store.
"""

import asyncio

import pytest

from services.orchestrator.history import BoundedBuffer, ConversationHistory, ReferenceImageSet
from services.orchestrator.session_store import DEFAULT_SESSION_ID, ConversationSessionStore, session_key
from utils.errors import PollingTimeoutError
from utils.polling import PollingPolicy


async def _no_sleep(_seconds):
    return None


class TestBoundedBuffer:
    def test_fifo_eviction(self):
        buffer = BoundedBuffer(3)
        for item in range(5):
            buffer.append(item)
        assert buffer.snapshot() == [2, 3, 4]
        assert buffer.latest() == 4

    def test_recent(self):
        buffer = BoundedBuffer(5)
        buffer.extend([1, 2, 3])
        assert buffer.recent(2) == [2, 3]
        assert buffer.recent(0) == []

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            BoundedBuffer(0)

    def test_history_rejects_unknown_role(self):
        history = ConversationHistory(5)
        with pytest.raises(ValueError):
            history.add("system", "nope")
        assert len(history) == 0

    def test_history_messages(self):
        history = ConversationHistory(5)
        history.add("user", "hi")
        history.add("assistant", "hello")
        assert history.as_messages(limit=1) == [{"role": "assistant", "content": "hello"}]

    def test_reference_override_wins(self):
        images = ReferenceImageSet(2)
        images.add("data:image/png;base64,AAA")
        assert images.effective("https://x.test/a.png") == "https://x.test/a.png"
        assert images.effective() == "data:image/png;base64,AAA"
        images.clear()
        assert images.effective() is None


class TestPollingPolicy:
    """Bounded retries with an injectable sleep."""

    def test_returns_first_result(self):
        answers = iter([None, None, "done"])
        calls = []

        async def probe():
            calls.append(1)
            return next(answers)

        policy = PollingPolicy(interval_seconds=2.0, max_attempts=5, sleep=_no_sleep)
        assert asyncio.run(policy.run(probe)) == "done"
        assert len(calls) == 3

    def test_times_out_after_budget(self):
        calls = []

        async def probe():
            calls.append(1)
            return None

        policy = PollingPolicy(interval_seconds=1.0, max_attempts=4, sleep=_no_sleep)
        with pytest.raises(PollingTimeoutError) as info:
            asyncio.run(policy.run(probe, description="render"))
        assert len(calls) == 4
        assert info.value.status_code == 500
        assert "render timed out" in str(info.value)

    def test_sleeps_between_attempts(self):
        slept = []

        async def record(seconds):
            slept.append(seconds)

        async def probe():
            return None if len(slept) < 2 else 1

        asyncio.run(PollingPolicy(0.5, 3, sleep=record).run(probe))
        assert slept == [0.5, 0.5]

    @pytest.mark.parametrize("interval,attempts", [(1.0, 0), (-1.0, 3)])
    def test_invalid_budget(self, interval, attempts):
        with pytest.raises(ValueError):
            PollingPolicy(interval, attempts)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSessionStore:
    """Sessions keyed by chat id, evicted lazily after idling."""

    def _store(self, clock, timeout=60.0):
        created = []

        def factory():
            created.append(object())
            return created[-1]

        return ConversationSessionStore(factory, idle_timeout_seconds=timeout, clock=clock), created

    def test_session_key_precedence(self):
        assert session_key("chat-1", "sess-1") == "chat-1"
        assert session_key(None, "sess-1") == "sess-1"
        assert session_key("  ", None) == DEFAULT_SESSION_ID

    def test_reuses_session(self):
        store, created = self._store(FakeClock())
        first = store.get_or_create("a")
        second = store.get_or_create("a")
        assert first is second
        assert len(created) == 1

    def test_sessions_are_isolated(self):
        store, _ = self._store(FakeClock())
        assert store.get_or_create("a").orchestrator is not store.get_or_create("b").orchestrator

    def test_idle_sessions_evicted(self):
        clock = FakeClock()
        store, created = self._store(clock, timeout=60.0)
        store.get_or_create("a")
        clock.now += 61
        assert store.get("a") is None
        store.get_or_create("a")
        assert len(created) == 2

    def test_access_refreshes_idle_timer(self):
        clock = FakeClock()
        store, _ = self._store(clock, timeout=60.0)
        store.get_or_create("a")
        clock.now += 50
        store.get("a")
        clock.now += 50
        assert "a" in store

    def test_locked_session_not_evicted(self):
        clock = FakeClock()
        store, _ = self._store(clock, timeout=10.0)
        session = store.get_or_create("busy")

        async def hold():
            async with session.lock:
                clock.now += 100
                return store.evict_idle()

        assert asyncio.run(hold()) == []
        assert "busy" in store
