"""
File Utilities

Upload validation run before a resource is created or ingested.

Checks, in order:
1. Size (non-empty, at most MAX_FILE_SIZE_B)
2. Declared mime type agrees with the upload's content type
3. Whitelist (ALLOWED_MIME_TYPES)
4. Content agrees with the mime type (magic bytes via ``filetype``)
"""

import json
import os
import re
import logging
from typing import Optional

import filetype

from raggy.ai.parsers.base import normalize_mime_type
from raggy.core.config import settings
from raggy.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

GENERIC_MIME_TYPES = {"", "application/octet-stream"}

# Text types accept any decodable text, JSON included
TEXT_COMPATIBLE = {
    "text/plain": {"text/plain", "application/json"},
    "text/csv": {"text/plain", "application/json"},
}


# ============================================================
# ERROR MESSAGES
# ============================================================

def file_too_large_message(max_size_mb: int) -> str:
    return f"File size exceeds maximum limit of {max_size_mb}MB"


def unsupported_type_message(mime_type: str) -> str:
    return (
        f"Unsupported file type: {mime_type}. "
        f"Allowed types: {', '.join(settings.ALLOWED_MIME_TYPES)}"
    )


def mime_mismatch_message(provided: str, detected: str) -> str:
    return f"Provided mimeType ({provided}) doesn't match detected type ({detected})"


# ============================================================
# MIME TYPE DETECTION
# ============================================================

def detect_mime_type(file_content: bytes) -> str:
    """
    Detect the actual MIME type of a file by reading its magic bytes.

    ``filetype`` only knows binary formats; text falls back to
    application/json when the whole file decodes as JSON, else text/plain.
    """
    kind = filetype.guess(file_content)

    if kind is not None:
        logger.debug(f"Detected MIME type: {kind.mime}")
        return kind.mime

    try:
        text = file_content.decode("utf-8-sig")
    except (UnicodeDecodeError, ValueError):
        return "application/octet-stream"

    try:
        json.loads(text)
        return "application/json"
    except ValueError:
        return "text/plain"


def is_content_compatible(mime_type: str, detected: str) -> bool:
    """True when content detected as ``detected`` is acceptable for ``mime_type``."""
    if mime_type == detected:
        return True
    return detected in TEXT_COMPATIBLE.get(mime_type, set())


# ============================================================
# FILENAME HANDLING
# ============================================================

def sanitize_filename(filename: Optional[str]) -> str:
    """Remove path components and dangerous characters from a filename."""
    filename = os.path.basename(filename or "")
    filename = filename.replace("\x00", "")
    filename = re.sub(r'[^\w\-.]', '_', filename)
    filename = re.sub(r'_+', '_', filename)
    filename = filename.strip('_.')

    if len(filename) > 200:
        name, ext = os.path.splitext(filename)
        filename = name[:200 - len(ext)] + ext

    return filename or "unnamed_file"


# ============================================================
# FILE VALIDATION
# ============================================================

def validate_file_size(file_size: int) -> None:
    if file_size <= 0:
        raise ValidationError("File is empty")

    if file_size > settings.MAX_FILE_SIZE_B:
        raise ValidationError(
            file_too_large_message(settings.MAX_FILE_SIZE_MB),
            status_code=413
        )


def validate_upload(
    file_content: bytes,
    content_type: Optional[str] = None,
    declared_mime_type: Optional[str] = None,
) -> str:
    """
    Validate an upload and resolve its mime type.

    Args:
        file_content: Raw bytes
        content_type: Content type of the multipart part
        declared_mime_type: Optional mime type sent alongside the file

    Returns:
        The mime type to ingest with

    Raises:
        ValidationError: Any check failed (413 for size)
    """
    validate_file_size(len(file_content))

    uploaded = normalize_mime_type(content_type or "")
    declared = normalize_mime_type(declared_mime_type or "")
    detected = detect_mime_type(file_content)

    if declared and uploaded not in GENERIC_MIME_TYPES and declared != uploaded:
        raise ValidationError(mime_mismatch_message(declared, uploaded))

    mime_type = declared or uploaded
    if mime_type in GENERIC_MIME_TYPES:
        mime_type = detected

    if mime_type not in settings.ALLOWED_MIME_TYPES:
        raise ValidationError(unsupported_type_message(mime_type))

    if not is_content_compatible(mime_type, detected):
        raise ValidationError(mime_mismatch_message(mime_type, detected))

    logger.debug(f"Upload validated as {mime_type} ({len(file_content)} bytes)")
    return mime_type
