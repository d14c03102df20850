"""
Session Memory

Per-conversation ordered turn log, kept in process memory.

This is a derived cache of the Message table, never the system of
record. Entries are evicted least-recently-used once
SESSION_MEMORY_MAX_CONVERSATIONS is reached, and are lost on restart;
callers rehydrate them from the database with load().

Writers for one conversation are serialized through lock():

    async with memory.lock(conversation_id):
        turns = memory.get(conversation_id)
        ...
        memory.append(conversation_id, "user", question)
        memory.append(conversation_id, "assistant", answer)
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from raggy.core.concurrency import KeyedLock
from raggy.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    """One message of a conversation as the model sees it."""
    role: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.text}


TurnLoader = Callable[[], Awaitable[Iterable[Tuple[str, str]]]]


class SessionMemory:
    """
    Bounded LRU map: conversation id -> list of turns.

    Entries are created lazily on first access and are append-only
    until replaced or invalidated.
    """

    def __init__(self, max_conversations: Optional[int] = None):
        self.max_conversations = max_conversations or settings.SESSION_MEMORY_MAX_CONVERSATIONS
        self._entries: "OrderedDict[str, List[Turn]]" = OrderedDict()
        self._locks = KeyedLock()

    @staticmethod
    def _key(conversation_id) -> str:
        return str(conversation_id)

    def lock(self, conversation_id):
        """Async context manager serializing writers of one conversation."""
        return self._locks.acquire(self._key(conversation_id))

    def __contains__(self, conversation_id) -> bool:
        return self._key(conversation_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, conversation_id) -> List[Turn]:
        key = self._key(conversation_id)
        entry = self._entries.get(key)
        if entry is None:
            entry = []
            self._entries[key] = entry
            self._evict()
        else:
            self._entries.move_to_end(key)
        return entry

    def _evict(self) -> None:
        while len(self._entries) > self.max_conversations:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted session memory of conversation {evicted}")

    def get(self, conversation_id) -> List[Turn]:
        """Ordered turns of a conversation (a copy)."""
        return list(self._entry(conversation_id))

    def append(self, conversation_id, role: str, text: str) -> None:
        self._entry(conversation_id).append(Turn(role=role, text=text))

    def replace(self, conversation_id, turns: Iterable[Tuple[str, str]]) -> None:
        """Replace an entry wholesale with (role, text) pairs."""
        key = self._key(conversation_id)
        self._entries[key] = [Turn(role=role, text=text) for role, text in turns]
        self._entries.move_to_end(key)
        self._evict()

    async def load(self, conversation_id, loader: TurnLoader) -> List[Turn]:
        """Rehydrate an entry from the store and return its turns."""
        turns = list(await loader())
        self.replace(conversation_id, turns)
        logger.debug(
            f"Rehydrated session memory of conversation {conversation_id} "
            f"({len(turns)} turns)"
        )
        return self.get(conversation_id)

    def invalidate(self, conversation_id) -> None:
        self._entries.pop(self._key(conversation_id), None)

    def clear(self) -> None:
        self._entries.clear()


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_session_memory: Optional[SessionMemory] = None


def get_session_memory() -> SessionMemory:
    global _session_memory

    if _session_memory is None:
        _session_memory = SessionMemory()

    return _session_memory


def reset_session_memory() -> None:
    global _session_memory
    _session_memory = None
