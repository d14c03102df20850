"""Tests for upload validation."""

import pytest

from raggy.core.config import settings
from raggy.core.exceptions import ValidationError
from raggy.utils.file_utils import (
    detect_mime_type,
    sanitize_filename,
    validate_upload,
)
from raggy.utils.timestamps import ensure_utc, next_after, utcnow

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class TestDetectMimeType:
    def test_text(self):
        assert detect_mime_type(b"hello world") == "text/plain"

    def test_json(self):
        assert detect_mime_type(b'{"a": 1}') == "application/json"

    def test_pdf_magic_bytes(self):
        assert detect_mime_type(b"%PDF-1.7\n" + b"0" * 32) == "application/pdf"

    def test_binary(self):
        assert detect_mime_type(b"\xff\xfe\xfa\x00\x81") == "application/octet-stream"


class TestValidateUpload:
    """Tests for the upload checks."""

    def test_empty_file(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_upload(b"", content_type="text/plain")
        assert exc_info.value.status_code == 400

    def test_too_large(self, monkeypatch):
        monkeypatch.setattr(settings, "MAX_FILE_SIZE_B", 10)

        with pytest.raises(ValidationError) as exc_info:
            validate_upload(b"x" * 11, content_type="text/plain")
        assert exc_info.value.status_code == 413

    def test_declared_type_wins_over_generic_content_type(self):
        mime = validate_upload(
            b"a,b\n1,2\n",
            content_type="application/octet-stream",
            declared_mime_type="text/csv",
        )
        assert mime == "text/csv"

    def test_generic_content_type_is_sniffed(self):
        assert validate_upload(b'{"a": 1}', content_type="application/octet-stream") == "application/json"

    def test_declared_type_must_match_content_type(self):
        with pytest.raises(ValidationError, match="doesn't match"):
            validate_upload(b"hello", content_type="text/plain", declared_mime_type="text/csv")

    def test_unsupported_type(self):
        with pytest.raises(ValidationError, match="Unsupported file type"):
            validate_upload(PNG_BYTES, content_type="image/png")

    def test_content_must_match_type(self):
        """Text claiming to be a PDF is refused."""
        with pytest.raises(ValidationError, match="doesn't match"):
            validate_upload(b"plain text", content_type="application/pdf")

    def test_charset_parameter_is_ignored(self):
        assert validate_upload(b"hello", content_type="text/plain; charset=utf-8") == "text/plain"


class TestSanitizeFilename:
    def test_path_components_removed(self):
        assert sanitize_filename("../../etc/passwd") == "passwd"

    def test_unsafe_characters_replaced(self):
        assert sanitize_filename("my report (final).pdf") == "my_report_final_.pdf"

    def test_empty_name(self):
        assert sanitize_filename("") == "unnamed_file"
        assert sanitize_filename(None) == "unnamed_file"

    def test_long_names_keep_extension(self):
        name = sanitize_filename("a" * 300 + ".txt")
        assert len(name) == 200
        assert name.endswith(".txt")


class TestTimestamps:
    def test_ensure_utc_on_naive(self):
        naive = utcnow().replace(tzinfo=None)
        assert ensure_utc(naive).tzinfo is not None

    def test_next_after_is_strictly_later(self):
        future = utcnow().replace(year=utcnow().year + 1)
        assert next_after(future) > future

    def test_next_after_none(self):
        assert next_after(None) <= utcnow()
