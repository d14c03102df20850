"""Tests for SessionMemory and KeyedLock."""

import asyncio
import uuid

import pytest

from raggy.ai.memory.session import SessionMemory, Turn
from raggy.core.concurrency import KeyedLock


class TestSessionMemory:
    """Tests for the per-conversation turn cache."""

    @pytest.fixture
    def memory(self):
        return SessionMemory(max_conversations=3)

    def test_unknown_conversation_is_empty(self, memory):
        assert memory.get("c1") == []

    def test_append_keeps_order(self, memory):
        memory.append("c1", "user", "hi")
        memory.append("c1", "assistant", "hello")

        assert memory.get("c1") == [Turn("user", "hi"), Turn("assistant", "hello")]

    def test_get_returns_a_copy(self, memory):
        memory.append("c1", "user", "hi")
        memory.get("c1").append(Turn("user", "sneaky"))

        assert len(memory.get("c1")) == 1

    def test_uuid_and_str_keys_match(self, memory):
        cid = uuid.uuid4()
        memory.append(cid, "user", "hi")

        assert str(cid) in memory
        assert memory.get(str(cid)) == [Turn("user", "hi")]

    def test_lru_eviction(self, memory):
        """The least recently used conversation is evicted first."""
        for cid in ("c1", "c2", "c3"):
            memory.append(cid, "user", cid)
        memory.get("c1")
        memory.append("c4", "user", "c4")

        assert "c2" not in memory
        assert "c1" in memory
        assert len(memory) == 3

    def test_replace_and_invalidate(self, memory):
        memory.append("c1", "user", "old")
        memory.replace("c1", [("user", "a"), ("assistant", "b")])

        assert [t.text for t in memory.get("c1")] == ["a", "b"]

        memory.invalidate("c1")
        assert "c1" not in memory

    async def test_load_rehydrates(self, memory):
        async def loader():
            return [("user", "q"), ("assistant", "a")]

        turns = await memory.load("c1", loader)

        assert turns == [Turn("user", "q"), Turn("assistant", "a")]
        assert memory.get("c1") == turns

    def test_turn_to_dict(self):
        assert Turn("user", "hi").to_dict() == {"role": "user", "content": "hi"}


class TestKeyedLock:
    """Tests for per-key serialization."""

    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        events = []

        async def worker(name):
            async with locks.acquire("k"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    async def test_different_keys_run_in_parallel(self):
        locks = KeyedLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with locks.acquire("a"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await inside.wait()

        async with locks.acquire("b"):
            assert locks.locked("a")
            assert locks.locked("b")

        release.set()
        await task

    async def test_registry_is_cleaned_up(self):
        locks = KeyedLock()
        async with locks.acquire("k"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.locked("k")

    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.acquire("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    async def test_memory_lock_is_keyed_by_conversation(self):
        memory = SessionMemory(max_conversations=10)
        cid = uuid.uuid4()

        async with memory.lock(cid):
            assert memory._locks.locked(str(cid))
