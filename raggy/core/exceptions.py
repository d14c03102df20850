"""
Error Taxonomy

Exceptions raised by the core and translated to HTTP responses in
raggy.main. Services raise these instead of HTTPException so the same
code paths work from the worker.
"""

from typing import Optional


class RaggyError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(RaggyError):
    """Caller's fault: bad mime type, oversized upload, malformed request."""

    status_code = 400


class NotFoundError(RaggyError):
    """Missing resource, conversation, user or message."""

    status_code = 404


class ExternalServiceError(RaggyError):
    """Embedding or generation gateway timed out or returned a bad response."""

    status_code = 502


class PersistenceError(RaggyError):
    """Store unavailable or constraint violation."""

    status_code = 503


class PartialIngestionFailure(PersistenceError):
    """An ingestion step after parser selection failed; chunks were rolled back."""

    status_code = 422

    def __init__(self, resource_id, message: str):
        super().__init__(f"Ingestion of resource {resource_id} failed: {message}")
        self.resource_id = resource_id
        self.reason = message
