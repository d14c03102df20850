"""Conversation memory."""

from raggy.ai.memory.session import (
    SessionMemory,
    Turn,
    get_session_memory,
    reset_session_memory,
)

__all__ = [
    "SessionMemory",
    "Turn",
    "get_session_memory",
    "reset_session_memory",
]
