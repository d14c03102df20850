"""
Conversation Repository

Conversations belong to one user. Activity order is updated_at, which
the chat service bumps on every message it writes.

Writes to one conversation are serialized across processes with a
PostgreSQL advisory lock (``exclusive``).
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from raggy.repositories.base import BaseRepository
from raggy.models.conversation import Conversation
from raggy.models.message import Message


def advisory_lock_key(conversation_id: UUID) -> int:
    """Signed 64-bit advisory lock key: the first 8 bytes of the id."""
    return int.from_bytes(conversation_id.bytes[:8], "big", signed=True)


class ConversationRepository(BaseRepository[Conversation]):

    def __init__(self, db: AsyncSession):
        super().__init__(Conversation, db)

    async def get_with_messages(self, conversation_id: UUID) -> Optional[Conversation]:
        """Conversation with its messages eagerly loaded, oldest first."""
        result = await self.db.execute(
            select(self.model)
            .options(selectinload(self.model.messages))
            .where(self.model.id == conversation_id)
        )
        return result.scalar_one_or_none()

    @asynccontextmanager
    async def exclusive(self, conversation_id: UUID) -> AsyncIterator[None]:
        """
        Hold the conversation's advisory lock for the duration of the block.

        The lock is a transaction-level PostgreSQL advisory lock taken on a
        connection of its own, so commits made through this repository's
        session inside the block do not release it. The block costs one
        extra pooled connection while it runs.

        Other databases get no lock: SQLite deployments are single process
        and the in-process lock of the caller is enough.
        """
        bind = self.db.bind
        if bind is None or bind.dialect.name != "postgresql":
            yield
            return

        # Released when the connection closes and its transaction rolls back
        async with bind.connect() as conn:
            await conn.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": advisory_lock_key(conversation_id)},
            )
            yield

    # =================
    # Per user
    # =================
    async def get_user_conversations(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Conversation]:
        """A user's conversations, most recently active first."""
        return await self.find(
            self.model.user_id == user_id,
            order_by=(self.model.updated_at.desc(), self.model.created_at.desc()),
            skip=skip,
            limit=limit,
        )

    async def count_user_conversations(self, user_id: str) -> int:
        return await self.count(self.model.user_id == user_id)

    # =================
    # Message activity
    # =================
    async def get_last_message_time(self, conversation_id: UUID) -> Optional[datetime]:
        """created_at of the newest message, None for an empty conversation."""
        result = await self.db.execute(
            select(func.max(Message.created_at))
            .where(Message.conversation_id == conversation_id)
        )
        return result.scalar()
