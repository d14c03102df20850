"""
Resource Schemas
"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator


# ============================================================
# ENUMS
# ============================================================

class ResourceStatus(str, Enum):
    """Ingestion status of a resource."""
    PENDING = "pending"       # Row created, ingestion not started
    PROCESSING = "processing" # Parse / chunk / embed / store running
    READY = "ready"           # All chunks stored
    FAILED = "failed"         # Zero chunks stored (see error_message)


# ============================================================
# RESPONSE SCHEMAS
# ============================================================

class ResourceResponse(BaseModel):
    """
    Resource data returned to API clients.

    Used by:
    - POST /resources (after upload)
    - GET /resources/{id}
    - GET /resources (list, each item)
    """
    id: UUID = Field(
        ...,
        description="Unique resource identifier"
    )
    filename: Optional[str] = Field(
        None,
        description="Original filename",
        examples=["handbook.pdf"]
    )
    mime_type: str = Field(
        ...,
        description="Mime type the resource was ingested as",
        examples=["application/pdf"]
    )
    file_size: int = Field(
        ...,
        description="File size in bytes",
        examples=[1048576]
    )
    status: ResourceStatus = Field(
        ...,
        description="Current ingestion status",
        examples=["ready"]
    )
    error_message: Optional[str] = Field(
        None,
        description="Error details if status is 'failed'"
    )
    chunk_count: int = Field(
        default=0,
        description="Number of stored chunks"
    )
    uploaded_at: datetime = Field(
        ...,
        description="When the resource was uploaded"
    )
    processed_at: Optional[datetime] = Field(
        None,
        description="When ingestion finished"
    )

    @computed_field
    @property
    def is_ready(self) -> bool:
        return self.status == ResourceStatus.READY

    class Config:
        from_attributes = True  # Allows creating from SQLAlchemy model


class ResourceListResponse(BaseModel):
    """Response for listing resources with pagination metadata."""
    resources: List[ResourceResponse]
    total: int = Field(..., ge=0)

    @computed_field
    @property
    def has_more(self) -> bool:
        """Whether there are more resources beyond this page."""
        return len(self.resources) < self.total


class ResourceDeleteResponse(BaseModel):
    id: UUID
    deleted_chunks: int = Field(..., ge=0)


# ============================================================
# LEGACY STATELESS QUERY
# ============================================================

class QueryRequest(BaseModel):
    """Single-shot question over all resources, no conversation."""
    query: str = Field(
        ...,
        min_length=1,
        max_length=10000,
        description="Question to answer"
    )

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Query cannot be empty")
        return v


class QueryResponse(BaseModel):
    query: str
    answer: str
