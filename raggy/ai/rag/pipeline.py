"""
Ingestion Pipeline

Orchestrates the resource ingestion flow:
Parse → Chunk → Embed → Store

Atomicity:
---------
Either every chunk of a resource is stored or none is. When any step
after parser selection fails, the pipeline deletes whatever was written
for the resource and raises PartialIngestionFailure chained to the
cause. An unsupported mime type is rejected up front with
ValidationError and nothing is touched.

Ingesting a resource that already has chunks replaces them: the new set
is written first, then every older chunk of the resource is deleted. A
failed re-ingestion removes the old set too, leaving zero chunks.

If the rollback itself fails, chunks may remain and PersistenceError is
raised instead; deleting the resource removes them.

Usage:
------
    from raggy.ai.rag.pipeline import IngestionPipeline

    pipeline = IngestionPipeline()
    result = await pipeline.ingest(
        resource_id=resource.id,
        content=content,
        mime_type="application/pdf",
        filename="lecture.pdf",
    )
    print(f"Created {result.chunk_count} chunks")
"""

import asyncio
import logging
from typing import List, Optional
from dataclasses import dataclass

from raggy.ai.parsers import get_parser, supported_mime_types
from raggy.ai.rag.chunker import TextChunker, ChunkerConfig, TextChunk
from raggy.ai.rag.embedder import Embedder, get_embedder
from raggy.core.exceptions import PartialIngestionFailure, PersistenceError, ValidationError
from raggy.db.vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)


# ============================================================
# RESULT DATACLASS
# ============================================================

@dataclass
class IngestionResult:
    """Outcome of a successful ingestion."""
    resource_id: str
    chunk_count: int
    section_count: int = 0
    text_length: int = 0


# ============================================================
# INGESTION PIPELINE
# ============================================================

class IngestionPipeline:
    """
    Orchestrates resource ingestion: Parse → Chunk → Embed → Store.

    Attributes:
        chunker: TextChunker instance
        embedder: Embedding gateway
        vector_store: Chunk store
    """

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        vector_store: Optional[VectorStore] = None,
        chunker_config: Optional[ChunkerConfig] = None,
    ):
        self.chunker = TextChunker(chunker_config)
        self.embedder = embedder or get_embedder()
        self.vector_store = vector_store or get_vector_store()

    async def ingest(
        self,
        resource_id,
        content: bytes,
        mime_type: str,
        filename: Optional[str] = None,
    ) -> IngestionResult:
        """
        Ingest a resource's bytes into the chunk store.

        Raises:
            ValidationError: No parser for the mime type
            PartialIngestionFailure: Any later step failed; zero chunks remain
        """
        resource_id = str(resource_id)

        # ================================================
        # STEP 1: Select Parser
        # ================================================
        parser = get_parser(mime_type)
        if parser is None:
            raise ValidationError(
                f"Unsupported file type: {mime_type}. "
                f"Allowed types: {', '.join(supported_mime_types())}"
            )

        logger.info(
            f"Ingesting resource {resource_id}: "
            f"{filename} ({mime_type}, {len(content)} bytes)"
        )

        try:
            # ================================================
            # STEP 2: Parse
            # ================================================
            parsed = parser.parse(content, filename)

            if not parsed.success:
                raise ValueError(f"Parsing failed: {parsed.error}")

            sections = [s for s in parsed.sections if not s.is_empty]
            if not sections:
                raise ValueError(
                    parsed.error or "No text content extracted from document"
                )

            # ================================================
            # STEP 3: Chunk
            # ================================================
            chunks = self.chunker.chunk_sections(
                sections,
                resource_id=resource_id,
                filename=filename,
            )
            if not chunks:
                raise ValueError("No chunks created from document")

            # ================================================
            # STEP 4: Embed
            # ================================================
            embeddings = await self._create_embeddings(chunks)

            # ================================================
            # STEP 5: Store
            # ================================================
            stored_count = await self.vector_store.add_chunks(chunks, embeddings)
            replaced = await self.vector_store.delete_by_resource(
                resource_id, keep=[chunk.id for chunk in chunks]
            )
            if replaced:
                logger.info(f"Resource {resource_id}: replaced {replaced} older chunks")

        except asyncio.CancelledError:
            try:
                await asyncio.shield(self._rollback(resource_id))
            except PersistenceError:
                # Logged by _rollback; the cancellation is what propagates
                pass
            raise
        except Exception as e:
            logger.error(f"Resource {resource_id} ingestion failed: {e}")
            await self._rollback(resource_id)
            message = e.message if hasattr(e, "message") else str(e)
            raise PartialIngestionFailure(resource_id, message) from e

        logger.info(f"Resource {resource_id}: stored {stored_count} chunks")

        return IngestionResult(
            resource_id=resource_id,
            chunk_count=stored_count,
            section_count=len(sections),
            text_length=sum(len(s.text) for s in sections),
        )

    async def _create_embeddings(self, chunks: List[TextChunk]) -> List[List[float]]:
        embeddings = await self.embedder.embed_batch([chunk.text for chunk in chunks])
        logger.info(f"Created {len(embeddings)} embeddings")
        return embeddings

    async def _rollback(self, resource_id: str) -> None:
        """
        Delete every chunk of the resource.

        Raises:
            PersistenceError: The delete failed; chunks may remain
        """
        try:
            deleted = await self.vector_store.delete_by_resource(resource_id)
        except Exception as e:
            logger.error(f"Rollback of resource {resource_id} failed: {e}")
            raise PersistenceError(
                f"Ingestion of resource {resource_id} failed and its chunks "
                f"could not be removed: {e}"
            ) from e

        if deleted:
            logger.warning(f"Rolled back {deleted} chunks of resource {resource_id}")

    async def delete_resource_chunks(self, resource_id) -> int:
        """Delete all chunks for a resource (resource deletion)."""
        return await self.vector_store.delete_by_resource(str(resource_id))


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_pipeline: Optional[IngestionPipeline] = None


def get_ingestion_pipeline() -> IngestionPipeline:
    """Get or create ingestion pipeline singleton."""
    global _pipeline

    if _pipeline is None:
        _pipeline = IngestionPipeline()

    return _pipeline


def reset_ingestion_pipeline() -> None:
    global _pipeline
    _pipeline = None
