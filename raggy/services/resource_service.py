"""
Resource Service

Business logic for uploaded resources:
- Upload validation (size, mime type, content sniffing)
- Ingestion into the chunk store, with status bookkeeping on the row
- Listing, lookup and deletion

Ingestion runs inside the upload request. The Resource row is kept
either way: 'ready' with its chunk count, or 'failed' with zero chunks
and the error message.
"""

import asyncio
import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from raggy.ai.rag.pipeline import IngestionPipeline, IngestionResult, get_ingestion_pipeline
from raggy.core.exceptions import NotFoundError, RaggyError
from raggy.models.resource import Resource
from raggy.repositories.resource_repo import ResourceRepository
from raggy.schemas.resource import ResourceStatus
from raggy.utils.file_utils import sanitize_filename, validate_upload
from raggy.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class ResourceService:
    """
    Service for resource operations.

    The ingestion pipeline is resolved lazily so listing and lookups
    never open the vector store.
    """

    def __init__(
        self,
        db: AsyncSession,
        pipeline: Optional[IngestionPipeline] = None,
    ):
        self.db = db
        self.resource_repo = ResourceRepository(db)
        self._pipeline = pipeline

    @property
    def pipeline(self) -> IngestionPipeline:
        if self._pipeline is None:
            self._pipeline = get_ingestion_pipeline()
        return self._pipeline

    # ============================================================
    # UPLOAD - The Main Entry Point
    # ============================================================

    async def upload_resource(
        self,
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Resource:
        """
        Validate an upload, create its Resource row and ingest it.

        Args:
            content: Raw file bytes
            filename: Original filename (sanitized before storing)
            content_type: Content-Type header of the multipart part
            mime_type: Mime type declared by the caller, wins over content_type

        Returns:
            The Resource, status 'ready'

        Raises:
            ValidationError: Empty, oversized or unsupported upload
            PartialIngestionFailure: Ingestion failed, row left as 'failed'
        """
        # Step 1: Validate before anything is written
        resolved_mime = validate_upload(
            content,
            content_type=content_type,
            declared_mime_type=mime_type,
        )

        # Step 2: Create the row
        resource = await self.resource_repo.create(
            filename=sanitize_filename(filename) if filename else None,
            mime_type=resolved_mime,
            file_size=len(content),
            status=ResourceStatus.PENDING.value,
            chunk_count=0,
        )
        logger.info(
            f"Resource {resource.id} created: {resource.filename} "
            f"({resolved_mime}, {len(content)} bytes)"
        )

        # Step 3: Ingest
        await self.ingest(resource.id, content, resolved_mime)
        return resource

    async def ingest(
        self,
        resource_id: UUID,
        content: bytes,
        mime_type: str,
    ) -> IngestionResult:
        """
        Ingest bytes for an existing Resource row and record the outcome.

        Raises:
            NotFoundError: No such resource
            ValidationError: No parser for the mime type
            PartialIngestionFailure: A step after parsing failed
        """
        resource = await self._get_or_404(resource_id)

        resource.status = ResourceStatus.PROCESSING.value
        resource.error_message = None
        await self.db.commit()

        try:
            result = await self.pipeline.ingest(
                resource_id=resource.id,
                content=content,
                mime_type=mime_type,
                filename=resource.filename,
            )
        except RaggyError as e:
            await self._mark_failed(resource, e.message)
            raise
        except BaseException as e:
            # Cancelled (client gone) or crashed: the row must not stay "processing"
            await asyncio.shield(
                self._mark_failed(resource, f"Ingestion interrupted ({type(e).__name__})")
            )
            raise

        resource.status = ResourceStatus.READY.value
        resource.chunk_count = result.chunk_count
        resource.processed_at = utcnow()
        await self.db.commit()
        await self.db.refresh(resource)

        logger.info(f"Resource {resource.id}: ready with {result.chunk_count} chunks")
        return result

    async def _mark_failed(self, resource: Resource, message: str) -> None:
        resource.status = ResourceStatus.FAILED.value
        resource.chunk_count = 0
        resource.error_message = message
        resource.processed_at = utcnow()
        await self.db.commit()
        await self.db.refresh(resource)
        logger.error(f"Resource {resource.id}: ingestion failed - {message}")

    # ============================================================
    # READ OPERATIONS
    # ============================================================

    async def get_resource(self, resource_id: UUID) -> Resource:
        return await self._get_or_404(resource_id)

    async def list_resources(
        self,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Resource], int]:
        """Page of resources, newest first, plus the total count."""
        resources = await self.resource_repo.list_resources(
            status=status,
            skip=skip,
            limit=limit,
        )
        total = await self.resource_repo.count_resources(status)
        return resources, total

    # ============================================================
    # DELETE
    # ============================================================

    async def delete_resource(self, resource_id: UUID) -> int:
        """
        Delete a resource: chunks first, then the row.

        If the chunk delete fails the row stays, so the delete can be
        retried.

        Returns:
            Number of chunks deleted
        """
        resource = await self._get_or_404(resource_id)

        deleted_chunks = await self.pipeline.delete_resource_chunks(resource.id)
        await self.resource_repo.delete(resource.id)

        logger.info(f"Resource {resource_id} deleted ({deleted_chunks} chunks)")
        return deleted_chunks

    async def _get_or_404(self, resource_id: UUID) -> Resource:
        resource = await self.resource_repo.get_by_id(resource_id)
        if not resource:
            raise NotFoundError(f"Resource {resource_id} not found")
        return resource
