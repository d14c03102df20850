"""
Chat Service

Orchestrates the conversational flow:
1. Lock the conversation (in-process lock, then an advisory lock held
   across processes for the whole exchange)
2. Rehydrate session memory from the message table if it is stale
3. Save the user message and queue attribute extraction for it
4. Run the retrieval chain (rewrite → retrieve → generate)
5. Save the assistant message and append both turns to memory

Message timestamps are assigned here, under the conversation lock, so
they are strictly increasing within a conversation and match arrival
order.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from raggy.ai.llm.langchain_client import GenerationGateway, get_generation_gateway
from raggy.ai.memory.session import SessionMemory, Turn, get_session_memory
from raggy.ai.prompts.chat_prompts import build_welcome_prompt
from raggy.ai.rag.chain import ChainResult, RetrievalChain
from raggy.core.config import settings
from raggy.core.exceptions import NotFoundError
from raggy.models.conversation import Conversation
from raggy.models.message import Message, MessageRole
from raggy.repositories.conversation_repo import ConversationRepository
from raggy.repositories.message_repo import MessageRepository
from raggy.repositories.user_repo import UserRepository
from raggy.schemas.conversation import (
    ChatResponse,
    ConversationCreate,
    ConversationCreateResponse,
    ConversationResponse,
    ConversationUpdate,
    ConversationWithMessages,
    MessageResponse,
)
from raggy.services.user_service import missing_attributes
from raggy.tasks import on_user_message_created
from raggy.utils.timestamps import next_after

logger = logging.getLogger(__name__)

UserMessageHook = Callable[[str, UUID], Awaitable[object]]


class ChatService:
    """
    Service for chat operations.

    Handles:
    - Conversation CRUD
    - Message management
    - Answering through the retrieval chain
    - Session memory upkeep
    """

    def __init__(
        self,
        db: AsyncSession,
        memory: Optional[SessionMemory] = None,
        chain: Optional[RetrievalChain] = None,
        gateway: Optional[GenerationGateway] = None,
        on_user_message: Optional[UserMessageHook] = None,
    ):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.message_repo = MessageRepository(db)
        self.user_repo = UserRepository(db)
        self.memory = memory or get_session_memory()
        self._chain = chain
        self._gateway = gateway
        self.on_user_message = on_user_message or on_user_message_created

    @property
    def chain(self) -> RetrievalChain:
        if self._chain is None:
            self._chain = RetrievalChain(gateway=self._gateway)
        return self._chain

    @property
    def gateway(self) -> GenerationGateway:
        if self._gateway is None:
            self._gateway = get_generation_gateway()
        return self._gateway

    # ============================================================
    # CONVERSATION MANAGEMENT
    # ============================================================

    async def create_conversation(self, data: ConversationCreate) -> ConversationCreateResponse:
        """
        Create a conversation, creating its user on first sight.

        A user's first conversation opens with a generated welcome
        message unless the caller sends a first message or opts out.
        Welcome generation failures are logged, never raised.
        """
        await self.user_repo.get_or_create(data.user_id)
        is_first = await self.conversation_repo.count_user_conversations(data.user_id) == 0

        conversation = await self.conversation_repo.create(
            user_id=data.user_id,
            title=data.title,
        )
        logger.info(f"Conversation {conversation.id} created for user {data.user_id}")

        welcome = None
        if (
            is_first
            and settings.WELCOME_MESSAGE_ENABLED
            and not data.first_message
            and not data.skip_welcome_message
        ):
            welcome = await self._create_welcome_message(conversation)

        answer = None
        if data.first_message and data.first_message.strip():
            answer = await self.send_message(conversation.id, data.first_message.strip())

        return ConversationCreateResponse(
            conversation=await self._build_conversation_response(conversation),
            welcome_message=MessageResponse.model_validate(welcome) if welcome else None,
            answer=answer,
        )

    async def get_conversation(self, conversation_id: UUID) -> ConversationWithMessages:
        """Get a conversation with its messages, oldest first."""
        conversation = await self.conversation_repo.get_with_messages(conversation_id)

        if not conversation:
            raise NotFoundError(f"Conversation {conversation_id} not found")

        messages = list(conversation.messages)
        return ConversationWithMessages(
            id=conversation.id,
            user_id=conversation.user_id,
            title=conversation.title,
            summary=conversation.summary,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            message_count=len(messages),
            last_message_at=messages[-1].created_at if messages else None,
            messages=[MessageResponse.model_validate(m) for m in messages],
        )

    async def list_conversations(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ConversationResponse], int]:
        """List a user's conversations, most recently active first."""
        conversations = await self.conversation_repo.get_user_conversations(
            user_id,
            skip=skip,
            limit=limit,
        )
        total = await self.conversation_repo.count_user_conversations(user_id)

        responses = [await self._build_conversation_response(c) for c in conversations]
        return responses, total

    async def update_conversation(
        self,
        conversation_id: UUID,
        data: ConversationUpdate,
    ) -> ConversationResponse:
        updates = data.model_dump(exclude_unset=True)
        conversation = await self.conversation_repo.update(conversation_id, **updates)

        if not conversation:
            raise NotFoundError(f"Conversation {conversation_id} not found")

        return await self._build_conversation_response(conversation)

    async def delete_conversation(self, conversation_id: UUID) -> None:
        async with self._exclusive(conversation_id):
            deleted = await self.conversation_repo.delete(conversation_id)
            self.memory.invalidate(conversation_id)

        if not deleted:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        logger.info(f"Conversation {conversation_id} deleted")

    # ============================================================
    # MESSAGES
    # ============================================================

    async def get_messages(self, conversation_id: UUID) -> List[Message]:
        await self._get_conversation_or_404(conversation_id)
        return await self.message_repo.get_conversation_messages(conversation_id)

    async def get_message(self, message_id: UUID) -> Message:
        message = await self.message_repo.get_by_id(message_id)
        if not message:
            raise NotFoundError(f"Message {message_id} not found")
        return message

    async def delete_message(self, message_id: UUID) -> None:
        message = await self.get_message(message_id)
        conversation_id = message.conversation_id

        async with self._exclusive(conversation_id):
            await self.message_repo.delete(message_id)
            self.memory.invalidate(conversation_id)

        logger.info(f"Message {message_id} deleted from conversation {conversation_id}")

    async def create_raw_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
    ) -> Message:
        """
        Store one message as-is, without generating an answer.

        A user-role message still triggers attribute extraction.
        """
        async with self._exclusive(conversation_id):
            conversation = await self._get_conversation_or_404(conversation_id)
            message = await self._persist_message(conversation, role, content)

            # Keep a cached entry in step; a stale one is rebuilt on next use
            if conversation_id in self.memory:
                self.memory.append(conversation_id, role.value, content)

        if role == MessageRole.USER:
            await self._notify_user_message(conversation.user_id, message.id)

        return message

    # ============================================================
    # ANSWERING - The Main Chat Method
    # ============================================================

    async def answer(
        self,
        query: str,
        conversation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Answer a query.

        Without a conversation the chain runs stateless and nothing is
        stored. With one, both turns are persisted and remembered.

        Raises:
            NotFoundError: Unknown conversation, or not owned by user_id
            ExternalServiceError: Embedding or generation failed
            PersistenceError: Vector store failed
        """
        if conversation_id is None:
            result = await self.chain.run(query)
            return result.answer

        exchange = await self.send_message(conversation_id, query, user_id=user_id)
        return exchange.assistant_message.content

    async def send_message(
        self,
        conversation_id: UUID,
        content: str,
        user_id: Optional[str] = None,
    ) -> ChatResponse:
        """
        Send a message in a conversation and get the assistant's answer.

        Exchanges in the same conversation are serialized, so each one
        sees every earlier exchange in its history.
        """
        # Extraction is queued once the lock is released, even if answering fails
        created = None

        try:
            async with self._exclusive(conversation_id):
                conversation = await self._get_conversation_or_404(conversation_id)

                if user_id is not None and conversation.user_id != user_id:
                    raise NotFoundError(f"Conversation {conversation_id} not found")

                owner_id = conversation.user_id
                history = await self._load_history(conversation_id)

                # Step 1: Save user message
                user_message = await self._persist_message(conversation, MessageRole.USER, content)
                created = (owner_id, user_message.id)

                try:
                    # Step 2: Rewrite, retrieve, generate
                    result: ChainResult = await self.chain.run(content, history=history)

                    # Step 3: Save assistant message
                    assistant_message = await self._persist_message(
                        conversation,
                        MessageRole.ASSISTANT,
                        result.answer,
                    )
                except Exception:
                    self.memory.invalidate(conversation_id)
                    raise

                # Step 4: Remember both turns
                self.memory.append(conversation_id, MessageRole.USER.value, content)
                self.memory.append(conversation_id, MessageRole.ASSISTANT.value, result.answer)
        finally:
            if created is not None:
                await self._notify_user_message(*created)

        logger.info(
            f"Conversation {conversation_id}: answered with "
            f"{len(result.chunks)} chunks (run {result.run_id})"
        )

        return ChatResponse(
            user_message=MessageResponse.model_validate(user_message),
            assistant_message=MessageResponse.model_validate(assistant_message),
            search_query=result.search_query,
        )

    # ============================================================
    # HELPER METHODS
    # ============================================================

    async def _get_conversation_or_404(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conversation_repo.get_by_id(conversation_id)
        if not conversation:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    @asynccontextmanager
    async def _exclusive(self, conversation_id: UUID) -> AsyncIterator[None]:
        """
        Serialize writes to one conversation: the in-process lock first,
        then the cross-process advisory lock, both held until the block ends.
        """
        async with self.memory.lock(conversation_id):
            async with self.conversation_repo.exclusive(conversation_id):
                yield

    async def _load_history(self, conversation_id: UUID) -> List[Turn]:
        """
        Turns of the conversation so far.

        The cached entry is used when its length matches the stored
        message count; otherwise it is rebuilt from the message table.
        """
        stored = await self.message_repo.count_conversation_messages(conversation_id)

        if conversation_id in self.memory:
            turns = self.memory.get(conversation_id)
            if len(turns) == stored:
                return turns
            logger.info(
                f"Session memory of conversation {conversation_id} is stale "
                f"({len(turns)} turns, {stored} messages), rehydrating"
            )

        async def loader():
            messages = await self.message_repo.get_conversation_messages(conversation_id)
            return [(m.role.value, m.content) for m in messages]

        return await self.memory.load(conversation_id, loader)

    async def _persist_message(
        self,
        conversation: Conversation,
        role: MessageRole,
        content: str,
    ) -> Message:
        """Write a message with a timestamp after the conversation's last one."""
        last = await self.conversation_repo.get_last_message_time(conversation.id)
        created_at = next_after(last)

        conversation.updated_at = created_at
        return await self.message_repo.create_message(
            conversation_id=conversation.id,
            role=role,
            content=content,
            created_at=created_at,
        )

    async def _notify_user_message(self, user_id: str, message_id: UUID) -> None:
        try:
            await self.on_user_message(user_id, message_id)
        except Exception as e:
            logger.error(f"Could not queue attribute extraction for message {message_id}: {e}")

    async def _create_welcome_message(self, conversation: Conversation) -> Optional[Message]:
        user = await self.user_repo.get_by_id(conversation.user_id)

        try:
            text = await self.gateway.generate(build_welcome_prompt(missing_attributes(user)))
        except Exception as e:
            logger.warning(f"Welcome message for conversation {conversation.id} failed: {e}")
            return None

        if not text:
            return None

        async with self._exclusive(conversation.id):
            conversation = await self._get_conversation_or_404(conversation.id)
            message = await self._persist_message(conversation, MessageRole.ASSISTANT, text)

        logger.info(f"Welcome message added to conversation {conversation.id}")
        return message

    async def _build_conversation_response(self, conversation: Conversation) -> ConversationResponse:
        message_count = await self.message_repo.count_conversation_messages(conversation.id)
        last_message_at = await self.conversation_repo.get_last_message_time(conversation.id)

        return ConversationResponse(
            id=conversation.id,
            user_id=conversation.user_id,
            title=conversation.title,
            summary=conversation.summary,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            message_count=message_count,
            last_message_at=last_message_at,
        )
