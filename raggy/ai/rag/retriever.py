"""
RAG Retriever

Embeds a search query and fetches the nearest chunks from the vector
store. The chain concatenates the returned texts, in ranked order, into
the context of the generation request.
"""

import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from raggy.ai.rag.embedder import Embedder, get_embedder
from raggy.core.config import settings
from raggy.db.vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)


# ============================================================
# RESULT DATACLASSES
# ============================================================

@dataclass
class RetrievedChunk:
    """A single retrieved chunk and its distance to the query."""
    id: str
    text: str
    distance: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def resource_id(self) -> str:
        return self.metadata.get("resource_id", "")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "distance": self.distance,
            "resource_id": self.resource_id,
            "metadata": self.metadata,
        }


@dataclass
class RetrievalResult:
    """Chunks for one query, nearest first."""
    query: str
    chunks: List[RetrievedChunk] = field(default_factory=list)

    @property
    def has_results(self) -> bool:
        return len(self.chunks) > 0

    def get_context(self, separator: str = "\n\n") -> str:
        """Chunk texts in ranked order, joined with blank lines."""
        return separator.join(chunk.text for chunk in self.chunks)


# ============================================================
# RETRIEVER CLASS
# ============================================================

class Retriever:
    """
    Usage:
        retriever = Retriever()
        result = await retriever.retrieve("What color is the sky?", k=5)
        context = result.get_context()
    """

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        vector_store: Optional[VectorStore] = None,
        top_k: Optional[int] = None,
    ):
        self.embedder = embedder or get_embedder()
        self.vector_store = vector_store or get_vector_store()
        self.top_k = top_k or settings.RAG_TOP_K

    async def retrieve(self, query: str, k: Optional[int] = None) -> RetrievalResult:
        """
        Retrieve the k nearest chunks for a query.

        Raises:
            ExternalServiceError: Embedding failed
            PersistenceError: Vector store failed
        """
        k = k or self.top_k
        query_embedding = await self.embedder.embed_query(query)
        results = await self.vector_store.search(query_embedding, k=k)

        chunks = [
            RetrievedChunk(
                id=r["id"],
                text=r["text"],
                distance=r["distance"],
                metadata=r["metadata"] or {},
            )
            for r in results
        ]

        logger.info(f"Retrieved {len(chunks)} chunks (k={k})")
        return RetrievalResult(query=query, chunks=chunks)
