"""
Resource Endpoints

HTTP API for resources (file upload, listing, deletion) and the legacy
stateless question endpoint.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from raggy.api.deps import get_chat_service, get_resource_service
from raggy.core.config import settings
from raggy.schemas.resource import (
    QueryRequest,
    QueryResponse,
    ResourceDeleteResponse,
    ResourceListResponse,
    ResourceResponse,
    ResourceStatus,
)
from raggy.services.chat_service import ChatService
from raggy.services.resource_service import ResourceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Resources"])


# ============================================================
# UPLOAD ENDPOINT
# ============================================================

@router.post(
    "",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a resource",
    description=f"""
    Upload a file and ingest it into the knowledge base.

    **Supported mime types:** {', '.join(settings.ALLOWED_MIME_TYPES)}

    The file is parsed, chunked, embedded and stored before the
    response is sent. When ingestion fails no chunk is kept and the
    response is 422.
    """,
    responses={
        400: {"description": "Empty file, unsupported or mismatching mime type"},
        413: {"description": "File too large"},
        422: {"description": "Ingestion failed, resource marked 'failed'"},
        502: {"description": "Embedding service failed"},
    },
)
async def upload_resource(
    file: UploadFile = File(..., description="File to ingest"),
    mime_type: Optional[str] = Form(
        None,
        description="Declared mime type (defaults to the part's content type)",
    ),
    service: ResourceService = Depends(get_resource_service),
):
    content = await file.read()

    resource = await service.upload_resource(
        content=content,
        filename=file.filename,
        content_type=file.content_type,
        mime_type=mime_type,
    )
    return ResourceResponse.model_validate(resource)


# ============================================================
# LEGACY STATELESS QUERY
# ============================================================

@router.post(
    "/chat",
    response_model=QueryResponse,
    summary="Ask a question without a conversation",
)
async def query_resources(
    data: QueryRequest,
    service: ChatService = Depends(get_chat_service),
):
    """Answer from the knowledge base; nothing is stored."""
    answer = await service.answer(data.query)
    return QueryResponse(query=data.query, answer=answer)


# ============================================================
# READ ENDPOINTS
# ============================================================

@router.get(
    "",
    response_model=ResourceListResponse,
    summary="List resources",
)
async def list_resources(
    status_filter: Optional[ResourceStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    service: ResourceService = Depends(get_resource_service),
):
    resources, total = await service.list_resources(
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return ResourceListResponse(
        resources=[ResourceResponse.model_validate(r) for r in resources],
        total=total,
    )


@router.get(
    "/{resource_id}",
    response_model=ResourceResponse,
    summary="Get a resource",
    responses={404: {"description": "Resource not found"}},
)
async def get_resource(
    resource_id: UUID,
    service: ResourceService = Depends(get_resource_service),
):
    resource = await service.get_resource(resource_id)
    return ResourceResponse.model_validate(resource)


# ============================================================
# DELETE ENDPOINT
# ============================================================

@router.delete(
    "/{resource_id}",
    response_model=ResourceDeleteResponse,
    summary="Delete a resource and its chunks",
    responses={404: {"description": "Resource not found"}},
)
async def delete_resource(
    resource_id: UUID,
    service: ResourceService = Depends(get_resource_service),
):
    deleted_chunks = await service.delete_resource(resource_id)
    return ResourceDeleteResponse(id=resource_id, deleted_chunks=deleted_chunks)
