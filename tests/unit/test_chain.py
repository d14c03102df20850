"""Tests for Retriever and RetrievalChain."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from raggy.ai.memory.session import Turn
from raggy.ai.rag.chain import ChainState, RetrievalChain
from raggy.ai.rag.chunker import ChunkerConfig
from raggy.ai.rag.pipeline import IngestionPipeline
from raggy.ai.rag.retriever import Retriever
from raggy.core.exceptions import ExternalServiceError

FACTS = b"The sky is blue.\n\nGrass is green.\n\nThe ocean is deep."


@pytest.fixture
async def indexed(embedder, vector_store):
    """Three one-sentence chunks, one per paragraph."""
    pipeline = IngestionPipeline(
        embedder=embedder,
        vector_store=vector_store,
        chunker_config=ChunkerConfig(chunk_size=20, chunk_overlap=5),
    )
    await pipeline.ingest("facts", FACTS, "text/plain", "facts.txt")
    return vector_store


@pytest.fixture
def chain(indexed, embedder, gateway):
    retriever = Retriever(embedder=embedder, vector_store=indexed)
    return RetrievalChain(retriever=retriever, gateway=gateway, top_k=3)


class TestRetriever:
    async def test_top_result_is_most_similar(self, indexed, embedder):
        retriever = Retriever(embedder=embedder, vector_store=indexed)

        result = await retriever.retrieve("What color is the sky?", k=1)

        assert [c.text for c in result.chunks] == ["The sky is blue."]
        assert result.chunks[0].resource_id == "facts"

    async def test_context_keeps_rank_order(self, indexed, embedder):
        retriever = Retriever(embedder=embedder, vector_store=indexed)

        result = await retriever.retrieve("What color is the sky?", k=3)

        assert result.get_context() == "\n\n".join(c.text for c in result.chunks)
        assert result.chunks[0].text == "The sky is blue."


class TestRetrievalChain:
    """Tests for the rewrite, retrieve, generate flow."""

    async def test_stateless_run_skips_rewrite(self, chain, chat_model):
        result = await chain.run("What color is the sky?")

        assert result.states == [
            ChainState.START,
            ChainState.RETRIEVE,
            ChainState.GENERATE,
            ChainState.DONE,
        ]
        assert not result.rewritten
        assert result.search_query == "What color is the sky?"
        assert chat_model.calls_of("rewrite") == []
        assert result.answer.startswith("Based on: The sky is blue.")

    async def test_answer_prompt_holds_context_and_question(self, chain, chat_model):
        await chain.run("What color is the sky?")

        prompt = chat_model.calls_of("answer")[0][-1].content
        assert prompt.startswith("Context: The sky is blue.")
        assert prompt.endswith("Question: What color is the sky?\n\nAnswer:")

    async def test_history_triggers_rewrite(self, chain, chat_model):
        chat_model.rewrite_response = "What color is the grass?"
        history = [Turn("user", "Tell me about grass"), Turn("assistant", "Sure.")]

        result = await chain.run("What color is it?", history=history)

        assert result.rewritten
        assert result.search_query == "What color is the grass?"
        assert result.chunks[0].text == "Grass is green."

        rewrite_call = chat_model.calls_of("rewrite")[0]
        assert isinstance(rewrite_call[1], HumanMessage)
        assert rewrite_call[1].content == "Tell me about grass"
        assert isinstance(rewrite_call[2], AIMessage)
        assert rewrite_call[-1].content == "What color is it?"

    async def test_answer_uses_original_question(self, chain, chat_model):
        chat_model.rewrite_response = "What color is the grass?"
        history = [Turn("user", "Tell me about grass"), Turn("assistant", "Sure.")]

        await chain.run("What color is it?", history=history)

        answer_call = chat_model.calls_of("answer")[0]
        assert answer_call[-1].content.endswith("Question: What color is it?\n\nAnswer:")
        # system, two history turns, context turn
        assert len(answer_call) == 4

    async def test_empty_rewrite_falls_back(self, chain, chat_model):
        chat_model.rewrite_response = "   "
        history = [Turn("user", "hi"), Turn("assistant", "hello")]

        result = await chain.run("Is the ocean deep?", history=history)

        assert result.search_query == "Is the ocean deep?"

    async def test_history_is_truncated(self, indexed, embedder, gateway, chat_model):
        chain = RetrievalChain(
            retriever=Retriever(embedder=embedder, vector_store=indexed),
            gateway=gateway,
            max_history_turns=2,
        )
        history = [Turn("user", f"turn {i}") for i in range(6)]

        await chain.run("question", history=history)

        answer_call = chat_model.calls_of("answer")[0]
        assert [m.content for m in answer_call[1:-1]] == ["turn 4", "turn 5"]

    async def test_empty_answer_is_an_error(self, chain, chat_model):
        chat_model.answer_response = ""

        with pytest.raises(ExternalServiceError, match="empty answer"):
            await chain.run("What color is the sky?")

    async def test_generation_failure_propagates(self, chain, chat_model):
        chat_model.fail_with = RuntimeError("model overloaded")

        with pytest.raises(ExternalServiceError):
            await chain.run("What color is the sky?")

    async def test_empty_store_still_answers(self, embedder, vector_store, gateway, chat_model):
        chain = RetrievalChain(
            retriever=Retriever(embedder=embedder, vector_store=vector_store),
            gateway=gateway,
        )

        result = await chain.run("Anything?")

        assert result.chunks == []
        assert result.answer == "Based on:"
