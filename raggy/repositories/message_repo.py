"""
Message Repository

Messages are always read in created_at order; the chat service assigns
created_at so that order is the order of arrival.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from raggy.repositories.base import BaseRepository
from raggy.models.conversation import Conversation
from raggy.models.message import Message, MessageRole


class MessageRepository(BaseRepository[Message]):

    def __init__(self, db: AsyncSession):
        super().__init__(Message, db)

    # =================
    # One conversation
    # =================
    async def get_conversation_messages(
        self,
        conversation_id: UUID,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Messages of a conversation, oldest first."""
        return await self.find(
            self.model.conversation_id == conversation_id,
            order_by=(self.model.created_at.asc(),),
            limit=limit,
        )

    async def count_conversation_messages(self, conversation_id: UUID) -> int:
        return await self.count(self.model.conversation_id == conversation_id)

    async def create_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        created_at: Optional[datetime] = None,
    ) -> Message:
        """
        Args:
            created_at: Explicit creation time; the database clock is used
                when omitted
        """
        values = dict(conversation_id=conversation_id, role=role, content=content)
        if created_at is not None:
            values["created_at"] = created_at
        return await self.create(**values)

    # =================
    # Across a user's conversations
    # =================
    def _user_messages(self, user_id: str):
        return (
            select(self.model)
            .join(Conversation, Conversation.id == self.model.conversation_id)
            .where(Conversation.user_id == user_id)
            .where(self.model.role == MessageRole.USER)
        )

    async def get_user_message(self, message_id: UUID, user_id: str) -> Optional[Message]:
        """A user-role message, only if it sits in one of the user's conversations."""
        result = await self.db.execute(
            self._user_messages(user_id).where(self.model.id == message_id)
        )
        return result.scalar_one_or_none()

    async def get_user_messages_since(
        self,
        user_id: str,
        since: Optional[datetime] = None,
    ) -> List[Message]:
        """
        User-role messages across all of a user's conversations, oldest first.

        Args:
            since: Exclusive lower bound on created_at (None = everything)
        """
        stmt = self._user_messages(user_id)
        if since is not None:
            stmt = stmt.where(self.model.created_at > since)

        result = await self.db.execute(stmt.order_by(self.model.created_at.asc()))
        return list(result.scalars().all())
