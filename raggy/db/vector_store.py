"""
Chunk store backed by a ChromaDB collection.

The client is a ChromaDB server when CHROMA_HOST is set, otherwise an
on-disk store under CHROMA_PERSIST_DIRECTORY. Any client can be passed
to VectorStore directly (the tests use an in-memory one).

All resources share one collection; every chunk carries its resource_id
in metadata so a resource's chunks can be found and deleted together.

The distance metric is fixed when the collection is created
("hnsw:space"). Opening an existing collection built with another metric
is refused, so distances are always comparable.

ChromaDB's client is synchronous. Each call runs in a worker thread and
is bounded by VECTOR_STORE_TIMEOUT; failures and timeouts surface as
PersistenceError.

A thread cannot be stopped, so a write that times out is still awaited
until it settles before PersistenceError is raised, and deletes wait for
every write still in flight. A write abandoned by a cancelled caller can
therefore never land after the rollback that follows it.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, TYPE_CHECKING

import chromadb
import numpy as np
from chromadb.config import Settings as ChromaSettings

from raggy.core.config import settings
from raggy.core.exceptions import PersistenceError, RaggyError

# vector_store.py <- rag/pipeline.py <- rag/chunker.py
if TYPE_CHECKING:
    from raggy.ai.rag.chunker import TextChunk

logger = logging.getLogger(__name__)

# ChromaDB rejects oversized add() calls; stay well under its limit
ADD_BATCH_SIZE = 500


# ============================================================
# CHROMA CLIENT
# ============================================================

_chroma_client: Optional[chromadb.ClientAPI] = None


def get_chroma_client() -> chromadb.ClientAPI:
    global _chroma_client

    if _chroma_client is not None:
        return _chroma_client

    if settings.CHROMA_HOST:
        logger.info(f"Chunk store: ChromaDB server {settings.CHROMA_HOST}:{settings.CHROMA_PORT}")
        _chroma_client = chromadb.HttpClient(
            host=settings.CHROMA_HOST,
            port=settings.CHROMA_PORT
        )
    else:
        persist_path = Path(settings.CHROMA_PERSIST_DIRECTORY)
        persist_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"Chunk store: local ChromaDB in {persist_path}")

        _chroma_client = chromadb.PersistentClient(
            path=str(persist_path),
            settings=ChromaSettings(anonymized_telemetry=False)
        )

    return _chroma_client


# ============================================================
# CHUNK STORE
# ============================================================

class VectorStore:
    """
    Chunk storage and nearest-neighbor search.

    Usage:
        store = VectorStore()

        await store.add_chunks(chunks, embeddings)
        results = await store.search(query_embedding, k=5)
        await store.delete_by_resource(resource_id)

    Search results are dicts with id, text, metadata and distance,
    ordered by ascending distance then chunk id.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        collection_name: Optional[str] = None,
        metric: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client or get_chroma_client()
        self.collection_name = collection_name or settings.CHROMA_COLLECTION_NAME
        self.metric = metric or settings.VECTOR_DISTANCE_METRIC
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.timeout = timeout or settings.VECTOR_STORE_TIMEOUT
        self._collection = None
        self._writes: Set[asyncio.Future] = set()

    # ============================================================
    # COLLECTION MANAGEMENT
    # ============================================================

    def _open_collection(self):
        """Open the collection, creating it with the configured metric."""
        if self._collection is not None:
            return self._collection

        try:
            collection = self.client.get_collection(
                name=self.collection_name,
                embedding_function=None,
            )
        except Exception:
            collection = self.client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": self.metric},
                embedding_function=None,
            )
            logger.info(
                f"Created collection '{self.collection_name}' "
                f"(metric={self.metric})"
            )

        existing = (collection.metadata or {}).get("hnsw:space")
        if existing is not None and existing != self.metric:
            raise PersistenceError(
                f"Collection '{self.collection_name}' uses metric '{existing}', "
                f"configured metric is '{self.metric}'"
            )

        self._collection = collection
        return collection

    async def _run(self, operation: str, fn: Callable, *args, write: bool = False):
        """
        Run a blocking ChromaDB call in a thread with a timeout.

        Args:
            write: Track the call until its thread finishes, even past the
                timeout or a cancellation of the caller
        """
        work = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        if write:
            self._writes.add(work)
            work.add_done_callback(self._writes.discard)

        try:
            return await asyncio.wait_for(asyncio.shield(work), timeout=self.timeout)
        except RaggyError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Vector store {operation} timed out after {self.timeout}s")
            if write:
                await self._settle([work])
                logger.warning(f"Timed out vector store {operation} has now finished")
            raise PersistenceError(f"Vector store {operation} timed out") from e
        except Exception as e:
            logger.error(f"Vector store {operation} failed: {e}")
            raise PersistenceError(f"Vector store {operation} failed: {e}") from e

    async def _settle(self, writes: Optional[Iterable[asyncio.Future]] = None) -> None:
        """Wait for writes (default: all in flight) without cancelling them."""
        pending = list(self._writes if writes is None else writes)
        if pending:
            await asyncio.gather(*(asyncio.shield(w) for w in pending), return_exceptions=True)

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise PersistenceError(
                f"Embedding dimension {len(vector)} does not match "
                f"store dimension {self.dimension}"
            )

    # ============================================================
    # CHUNK OPERATIONS
    # ============================================================

    async def add_chunks(
        self,
        chunks: List["TextChunk"],
        embeddings: List[List[float]],
    ) -> int:
        """
        Store chunks with their vectors, in batches of ADD_BATCH_SIZE.

        Raises:
            PersistenceError: Length or dimension mismatch, or store failure
        """
        if len(chunks) != len(embeddings):
            raise PersistenceError(
                f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
            )

        if not chunks:
            return 0

        for embedding in embeddings:
            self._check_dimension(embedding)

        ids = [chunk.id for chunk in chunks]
        documents = [chunk.text for chunk in chunks]
        metadatas = [chunk.metadata.to_dict() for chunk in chunks]
        vectors = [list(map(float, e)) for e in embeddings]

        def _add():
            collection = self._open_collection()
            for start in range(0, len(ids), ADD_BATCH_SIZE):
                end = start + ADD_BATCH_SIZE
                collection.add(
                    ids=ids[start:end],
                    embeddings=vectors[start:end],
                    documents=documents[start:end],
                    metadatas=metadatas[start:end],
                )

        await self._run("add", _add, write=True)

        logger.info(f"Stored {len(chunks)} chunks in '{self.collection_name}'")
        return len(chunks)

    def _resource_chunk_ids(self, collection, resource_id) -> List[str]:
        return collection.get(where={"resource_id": str(resource_id)}, include=[])["ids"]

    async def delete_by_resource(self, resource_id, keep: Iterable[str] = ()) -> int:
        """
        Delete the chunks of a resource, except the ids in ``keep``.

        Writes still in flight are awaited first, so nothing they add
        survives the delete.

        Returns:
            Number of chunks deleted
        """
        keep = set(keep)
        await self._settle()

        def _delete():
            collection = self._open_collection()
            ids = [i for i in self._resource_chunk_ids(collection, resource_id) if i not in keep]
            if ids:
                collection.delete(ids=ids)
            return len(ids)

        count = await self._run("delete", _delete, write=True)
        if count:
            logger.info(f"Deleted {count} chunks for resource {resource_id}")
        return count

    async def get_resource_chunks(self, resource_id) -> List[Dict[str, Any]]:
        """All chunks of a resource with text, metadata and embedding, in chunk order."""
        def _get():
            collection = self._open_collection()
            return collection.get(
                where={"resource_id": str(resource_id)},
                include=["documents", "metadatas", "embeddings"]
            )

        results = await self._run("get", _get)

        embeddings = results.get("embeddings")
        chunks = []
        for i, chunk_id in enumerate(results["ids"]):
            chunks.append({
                "id": chunk_id,
                "text": results["documents"][i],
                "metadata": results["metadatas"][i],
                "embedding": (
                    np.asarray(embeddings[i], dtype=np.float32).tolist()
                    if embeddings is not None else None
                ),
            })

        chunks.sort(key=lambda c: c["metadata"].get("chunk_index", 0))
        return chunks

    async def count_by_resource(self, resource_id) -> int:
        return await self._run(
            "count",
            lambda: len(self._resource_chunk_ids(self._open_collection(), resource_id)),
        )

    async def count(self) -> int:
        return await self._run("count", lambda: self._open_collection().count())

    # ============================================================
    # SEARCH OPERATIONS
    # ============================================================

    async def search(
        self,
        query_embedding: List[float],
        k: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Nearest chunks to the query embedding.

        Args:
            k: Maximum number of results (defaults to RAG_TOP_K)
        """
        k = k or settings.RAG_TOP_K
        self._check_dimension(query_embedding)
        vector = [float(x) for x in query_embedding]

        def _query():
            collection = self._open_collection()
            total = collection.count()
            if total == 0:
                return None
            return collection.query(
                query_embeddings=[vector],
                n_results=min(k, total),
                include=["documents", "metadatas", "distances"]
            )

        results = await self._run("search", _query)

        if not results or not results["ids"] or not results["ids"][0]:
            return []

        search_results = [
            {"id": chunk_id, "text": text, "metadata": metadata, "distance": float(distance)}
            for chunk_id, text, metadata, distance in zip(
                results["ids"][0],
                results["documents"][0],
                results["metadatas"][0],
                results["distances"][0],
            )
        ]
        search_results.sort(key=lambda r: (r["distance"], r["id"]))

        logger.debug(f"Search returned {len(search_results)} results")
        return search_results


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_vector_store: Optional[VectorStore] = None


def get_vector_store() -> VectorStore:
    global _vector_store

    if _vector_store is None:
        _vector_store = VectorStore()

    return _vector_store


def set_vector_store(store: Optional[VectorStore]) -> None:
    """Install a specific store (tests, alternative collections)."""
    global _vector_store
    _vector_store = store


# ============================================================
# HEALTH CHECK
# ============================================================

async def check_vector_store_health() -> bool:
    """True when the collection answers a count."""
    try:
        await get_vector_store().count()
        return True
    except Exception as e:
        logger.error(f"Chunk store unreachable: {e}")
        return False
