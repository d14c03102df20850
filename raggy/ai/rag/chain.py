"""
Retrieval-Generation Chain

Per-invocation state machine:

    START → (REWRITE) → RETRIEVE → GENERATE → DONE

- REWRITE runs only when there is prior history. One generation call
  turns the latest utterance into a standalone search query; an empty
  rewrite falls back to the raw utterance.
- RETRIEVE embeds the search query and fetches the k nearest chunks.
- GENERATE sends the system instruction, the prior turns and a user
  turn holding the context and the original question.

The chain holds no state between invocations and never writes session
memory itself; the caller appends both turns once the result is back,
so an abandoned invocation leaves nothing behind.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from langchain_core.messages import BaseMessage

from raggy.ai.llm.langchain_client import (
    GenerationGateway,
    convert_to_langchain_messages,
    get_generation_gateway,
)
from raggy.ai.memory.session import Turn
from raggy.ai.prompts.chat_prompts import (
    build_answer_messages,
    build_rewrite_messages,
)
from raggy.ai.rag.retriever import RetrievedChunk, Retriever
from raggy.core.config import settings
from raggy.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class ChainState(str, Enum):
    START = "start"
    REWRITE = "rewrite"
    RETRIEVE = "retrieve"
    GENERATE = "generate"
    DONE = "done"


@dataclass
class ChainResult:
    """Answer plus what was used to produce it."""
    run_id: str
    question: str
    search_query: str
    answer: str
    chunks: List[RetrievedChunk] = field(default_factory=list)
    states: List[ChainState] = field(default_factory=list)

    @property
    def rewritten(self) -> bool:
        return ChainState.REWRITE in self.states


class RetrievalChain:
    """
    Usage:
        chain = RetrievalChain()

        # stateless
        result = await chain.run("What color is the sky?")

        # with history
        result = await chain.run("And at night?", history=memory.get(cid))
        print(result.answer)
    """

    def __init__(
        self,
        retriever: Optional[Retriever] = None,
        gateway: Optional[GenerationGateway] = None,
        max_history_turns: Optional[int] = None,
        top_k: Optional[int] = None,
    ):
        self.retriever = retriever or Retriever()
        self.gateway = gateway or get_generation_gateway()
        self.max_history_turns = (
            settings.CHAT_HISTORY_MAX_TURNS if max_history_turns is None else max_history_turns
        )
        self.top_k = top_k or settings.RAG_TOP_K

    def _history_messages(self, history: Optional[Sequence[Turn]]) -> List[BaseMessage]:
        if not history or self.max_history_turns == 0:
            return []
        recent = list(history)[-self.max_history_turns:]
        return convert_to_langchain_messages([turn.to_dict() for turn in recent])

    async def run(
        self,
        question: str,
        history: Optional[Sequence[Turn]] = None,
        k: Optional[int] = None,
    ) -> ChainResult:
        """
        Answer a question, optionally in the context of prior turns.

        Args:
            question: Raw user utterance
            history: Prior turns, oldest first; None for stateless mode
            k: Chunks to retrieve (defaults to RAG_TOP_K)

        Raises:
            ExternalServiceError: Embedding or generation failed
            PersistenceError: Vector store failed
        """
        run_id = uuid.uuid4().hex
        states = [ChainState.START]
        chat_history = self._history_messages(history)
        search_query = question

        # ================================================
        # REWRITE
        # ================================================
        if chat_history:
            states.append(ChainState.REWRITE)
            rewritten = await self.gateway.generate(
                build_rewrite_messages(question, chat_history)
            )
            if rewritten:
                search_query = rewritten
            logger.info(f"[{run_id}] Search query: {search_query!r}")

        # ================================================
        # RETRIEVE
        # ================================================
        states.append(ChainState.RETRIEVE)
        retrieval = await self.retriever.retrieve(search_query, k=k or self.top_k)

        # ================================================
        # GENERATE
        # ================================================
        states.append(ChainState.GENERATE)
        answer = await self.gateway.generate(
            build_answer_messages(question, retrieval.get_context(), chat_history)
        )
        if not answer:
            raise ExternalServiceError("Generation returned an empty answer")

        states.append(ChainState.DONE)
        logger.info(
            f"[{run_id}] Answered with {len(retrieval.chunks)} chunks, "
            f"{len(chat_history)} history turns"
        )

        return ChainResult(
            run_id=run_id,
            question=question,
            search_query=search_query,
            answer=answer,
            chunks=retrieval.chunks,
            states=states,
        )
