"""Conversations end to end: ordering, memory, concurrency and failures."""

import asyncio
import uuid

import pytest

from raggy.ai.memory.session import Turn
from raggy.ai.rag.chunker import ChunkerConfig
from raggy.ai.rag.pipeline import IngestionPipeline
from raggy.core.exceptions import ExternalServiceError, NotFoundError
from raggy.db.database import AsyncSessionLocal
from raggy.models.message import MessageRole
from raggy.repositories.message_repo import MessageRepository
from raggy.repositories.user_repo import UserRepository
from raggy.schemas.conversation import ConversationCreate, ConversationUpdate
from raggy.services.chat_service import ChatService
from raggy.utils.timestamps import ensure_utc, utcnow

FACTS = b"The sky is blue.\n\nGrass is green.\n\nThe ocean is deep."


@pytest.fixture
async def knowledge(embedder, vector_store):
    """The three facts, one chunk each."""
    pipeline = IngestionPipeline(
        embedder=embedder,
        vector_store=vector_store,
        chunker_config=ChunkerConfig(chunk_size=20, chunk_overlap=5),
    )
    await pipeline.ingest("facts", FACTS, "text/plain", "facts.txt")


@pytest.fixture
def make_service(memory, gateway, no_extraction):
    def factory(session):
        return ChatService(
            session,
            memory=memory,
            gateway=gateway,
            on_user_message=no_extraction,
        )
    return factory


@pytest.fixture
def service(db_session, make_service, knowledge):
    return make_service(db_session)


async def new_conversation(service, user_id="user-1", **kwargs):
    kwargs.setdefault("skip_welcome_message", True)
    created = await service.create_conversation(ConversationCreate(user_id=user_id, **kwargs))
    return created.conversation.id


class TestConversationCreation:
    """Tests for create_conversation."""

    async def test_first_conversation_gets_welcome(self, service, chat_model):
        created = await service.create_conversation(ConversationCreate(user_id="new-user"))

        assert created.welcome_message is not None
        assert created.welcome_message.role == MessageRole.ASSISTANT
        assert created.welcome_message.content == chat_model.welcome_response
        assert created.conversation.message_count == 1

    async def test_second_conversation_has_no_welcome(self, service):
        await service.create_conversation(ConversationCreate(user_id="new-user"))
        created = await service.create_conversation(ConversationCreate(user_id="new-user"))

        assert created.welcome_message is None
        assert created.conversation.message_count == 0

    async def test_welcome_can_be_skipped(self, service, chat_model):
        created = await service.create_conversation(
            ConversationCreate(user_id="new-user", skip_welcome_message=True)
        )
        assert created.welcome_message is None
        assert chat_model.calls_of("welcome") == []

    async def test_welcome_failure_is_not_fatal(self, service, chat_model):
        chat_model.fail_with = RuntimeError("model down")
        chat_model.fail_kinds = {"welcome"}

        created = await service.create_conversation(ConversationCreate(user_id="new-user"))

        assert created.welcome_message is None
        assert created.conversation.message_count == 0

    async def test_welcome_invites_missing_attributes(self, service, chat_model, db_session):
        await UserRepository(db_session).create_user("curious", ["name", "city"])
        await service.create_conversation(ConversationCreate(user_id="curious"))

        prompt = chat_model.calls_of("welcome")[0][-1].content
        assert "name, city" in prompt

    async def test_first_message_is_answered(self, service, no_extraction):
        created = await service.create_conversation(
            ConversationCreate(user_id="new-user", first_message="What color is the sky?")
        )

        assert created.welcome_message is None
        assert created.answer is not None
        assert created.answer.user_message.content == "What color is the sky?"
        assert "The sky is blue." in created.answer.assistant_message.content
        assert no_extraction.calls == [("new-user", created.answer.user_message.id)]


class TestSendMessage:
    """Tests for one exchange."""

    async def test_both_turns_are_persisted_in_order(self, service):
        cid = await new_conversation(service)

        exchange = await service.send_message(cid, "What color is the sky?")

        messages = await service.get_messages(cid)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "What color is the sky?"),
            (MessageRole.ASSISTANT, exchange.assistant_message.content),
        ]
        assert messages[0].created_at < messages[1].created_at

    async def test_answer_is_grounded_in_top_chunk(self, service):
        cid = await new_conversation(service)

        exchange = await service.send_message(cid, "What color is the sky?")

        assert exchange.assistant_message.content.startswith("Based on: The sky is blue.")
        assert exchange.search_query == "What color is the sky?"

    async def test_memory_holds_both_turns(self, service, memory):
        cid = await new_conversation(service)

        exchange = await service.send_message(cid, "What color is the sky?")

        assert memory.get(cid) == [
            Turn("user", "What color is the sky?"),
            Turn("assistant", exchange.assistant_message.content),
        ]

    async def test_follow_up_is_rewritten_with_history(self, service, chat_model):
        cid = await new_conversation(service)
        await service.send_message(cid, "Tell me about grass")
        chat_model.rewrite_response = "What color is the grass?"

        exchange = await service.send_message(cid, "What color is it?")

        rewrite_call = chat_model.calls_of("rewrite")[0]
        assert rewrite_call[1].content == "Tell me about grass"
        assert exchange.search_query == "What color is the grass?"
        assert "Grass is green." in exchange.assistant_message.content.split("\n\n")[0]

    async def test_extraction_is_queued_for_user_message(self, service, no_extraction):
        cid = await new_conversation(service)

        exchange = await service.send_message(cid, "My name is Alice")

        assert no_extraction.calls == [("user-1", exchange.user_message.id)]

    async def test_conversation_activity_is_tracked(self, service):
        cid = await new_conversation(service)
        exchange = await service.send_message(cid, "hello")

        conversation = await service.get_conversation(cid)

        assert conversation.message_count == 2
        assert ensure_utc(conversation.last_message_at) == ensure_utc(exchange.assistant_message.created_at)

    async def test_unknown_conversation(self, service):
        with pytest.raises(NotFoundError):
            await service.send_message(uuid.uuid4(), "hello")

    async def test_other_users_conversation_is_hidden(self, service):
        cid = await new_conversation(service, user_id="owner")

        with pytest.raises(NotFoundError):
            await service.send_message(cid, "hello", user_id="intruder")

    async def test_stateless_answer_stores_nothing(self, service, memory):
        answer = await service.answer("What color is the sky?")

        assert answer.startswith("Based on: The sky is blue.")
        assert len(memory) == 0

    async def test_answer_in_conversation(self, service):
        cid = await new_conversation(service)

        answer = await service.answer("Is the ocean deep?", conversation_id=cid, user_id="user-1")

        assert "The ocean is deep." in answer
        assert len(await service.get_messages(cid)) == 2


class TestSessionMemoryUpkeep:
    """Memory is a cache of the message table."""

    async def test_evicted_memory_is_rehydrated(self, service, memory, chat_model):
        cid = await new_conversation(service)
        await service.send_message(cid, "Tell me about grass")
        memory.invalidate(cid)

        await service.send_message(cid, "What color is it?")

        rewrite_call = chat_model.calls_of("rewrite")[0]
        assert [m.content for m in rewrite_call[1:-1]][0] == "Tell me about grass"
        assert len(memory.get(cid)) == 4

    async def test_stale_memory_is_rebuilt(self, service, memory, chat_model):
        cid = await new_conversation(service)
        await service.send_message(cid, "Tell me about grass")

        # Written by another process: the cache does not know about it
        async with AsyncSessionLocal() as other:
            await MessageRepository(other).create_message(
                cid, MessageRole.USER, "Also the sky", created_at=utcnow()
            )

        await service.send_message(cid, "What color is it?")

        history = [m.content for m in chat_model.calls_of("rewrite")[0][1:-1]]
        assert history[-1] == "Also the sky"
        assert len(memory.get(cid)) == 5

    async def test_failed_answer_keeps_user_message_and_drops_cache(
        self, service, memory, chat_model, no_extraction
    ):
        cid = await new_conversation(service)
        await service.send_message(cid, "hello")
        chat_model.fail_with = RuntimeError("model overloaded")

        with pytest.raises(ExternalServiceError):
            await service.send_message(cid, "second question")

        messages = await service.get_messages(cid)
        assert [m.content for m in messages][-1] == "second question"
        assert cid not in memory
        # Extraction still runs for the stored user message
        assert no_extraction.calls[-1] == ("user-1", messages[-1].id)

    async def test_raw_message_extends_cached_memory(self, service, memory, no_extraction):
        cid = await new_conversation(service)
        await service.send_message(cid, "hello")

        message = await service.create_raw_message(cid, MessageRole.USER, "I live in Paris")

        assert memory.get(cid)[-1] == Turn("user", "I live in Paris")
        assert no_extraction.calls[-1] == ("user-1", message.id)

    async def test_assistant_raw_message_does_not_trigger_extraction(self, service, no_extraction):
        cid = await new_conversation(service)

        await service.create_raw_message(cid, MessageRole.ASSISTANT, "Hi there")

        assert no_extraction.calls == []

    async def test_delete_message_invalidates_memory(self, service, memory):
        cid = await new_conversation(service)
        exchange = await service.send_message(cid, "hello")

        await service.delete_message(exchange.user_message.id)

        assert cid not in memory
        assert len(await service.get_messages(cid)) == 1

    async def test_delete_conversation(self, service, memory):
        cid = await new_conversation(service)
        exchange = await service.send_message(cid, "hello")

        await service.delete_conversation(cid)

        assert cid not in memory
        with pytest.raises(NotFoundError):
            await service.get_conversation(cid)
        with pytest.raises(NotFoundError):
            await service.get_message(exchange.user_message.id)


class TestConcurrency:
    """Exchanges in one conversation are serialized."""

    async def test_concurrent_messages_are_serialized(self, service, make_service, chat_model):
        cid = await new_conversation(service)

        async def send(text):
            async with AsyncSessionLocal() as session:
                return await make_service(session).send_message(cid, text)

        first, second = await asyncio.gather(send("Tell me about the sky"), send("Tell me about grass"))

        messages = await service.get_messages(cid)
        roles = [m.role for m in messages]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT] * 2

        times = [ensure_utc(m.created_at) for m in messages]
        assert times == sorted(times)
        assert len(set(times)) == 4

        # Whichever ran second saw the first exchange as history
        assert len(chat_model.calls_of("rewrite")) == 1
        later_history = [m.content for m in chat_model.calls_of("rewrite")[0][1:-1]]
        assert later_history[0] == messages[0].content

    async def test_different_conversations_do_not_block(self, service, make_service):
        cid_a = await new_conversation(service, user_id="a")
        cid_b = await new_conversation(service, user_id="b")

        async def send(cid, text):
            async with AsyncSessionLocal() as session:
                return await make_service(session).send_message(cid, text)

        a, b = await asyncio.gather(send(cid_a, "sky?"), send(cid_b, "grass?"))

        assert a.user_message.conversation_id == cid_a
        assert b.user_message.conversation_id == cid_b


class TestConversationManagement:
    async def test_list_most_recent_first(self, service):
        older = await new_conversation(service, title="older")
        newer = await new_conversation(service, title="newer")
        await service.send_message(older, "hello")

        conversations, total = await service.list_conversations("user-1")

        assert total == 2
        assert [c.id for c in conversations] == [older, newer]
        assert conversations[0].message_count == 2

    async def test_update_title(self, service):
        cid = await new_conversation(service)

        updated = await service.update_conversation(cid, ConversationUpdate(title="Renamed"))

        assert updated.title == "Renamed"

    async def test_update_unknown(self, service):
        with pytest.raises(NotFoundError):
            await service.update_conversation(uuid.uuid4(), ConversationUpdate(title="x"))
