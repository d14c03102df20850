"""
Parser contract.

A parser turns raw bytes into one or more logical documents
(DocumentSection). What a section is depends on the format: a PDF page,
a CSV row, a JSON string leaf, or the whole of a text file.

Parsers report failure through ParsedDocument.success/error and do not
raise; the ingestion pipeline decides what a failed parse means.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
import logging

logger = logging.getLogger(__name__)

# utf-8-sig first so a BOM never leaks into the text; latin-1 always succeeds
TEXT_ENCODINGS = ("utf-8-sig", "utf-16", "latin-1")


def normalize_mime_type(mime_type: str) -> str:
    """Lowercase and drop parameters: 'Text/Plain; charset=utf-8' -> 'text/plain'."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


@dataclass
class DocumentSection:
    """
    Attributes:
        index: 0-based position of the section in the source
        text: Cleaned text of the section
        metadata: Where the section came from (page, row, pointer...)
    """
    index: int
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass
class ParsedDocument:
    sections: List[DocumentSection] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    @property
    def text(self) -> str:
        """Non-empty sections joined by a blank line."""
        return "\n\n".join(s.text for s in self.sections if not s.is_empty)

    @classmethod
    def from_error(cls, error_message: str) -> "ParsedDocument":
        return cls(success=False, error=error_message)


class DocumentParser(ABC):
    """
    One parser per family of mime types.

    Subclasses list the types they accept in ``mime_types`` and implement
    ``parse``; lookup by type goes through ``raggy.ai.parsers.get_parser``.
    """

    @property
    @abstractmethod
    def mime_types(self) -> List[str]:
        pass

    @abstractmethod
    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        """
        Args:
            content: Raw file bytes
            filename: Only used in log lines and metadata
        """
        pass

    def can_parse(self, mime_type: str) -> bool:
        return normalize_mime_type(mime_type) in self.mime_types

    def _decode_content(self, content: bytes) -> Optional[str]:
        """Decode with the first encoding in TEXT_ENCODINGS that works."""
        for encoding in TEXT_ENCODINGS:
            try:
                return content.decode(encoding)
            except UnicodeError:
                logger.debug(f"Content is not valid {encoding}")

        logger.error("Content could not be decoded as text")
        return None

    def _clean_text(self, text: str) -> str:
        """
        Drop NUL characters, collapse runs of whitespace inside each line
        and keep at most one blank line between paragraphs.
        """
        if not text:
            return ""

        lines = [" ".join(line.split()) for line in text.replace("\x00", "").split("\n")]

        kept: List[str] = []
        for line in lines:
            if not line and kept and not kept[-1]:
                continue
            kept.append(line)

        return "\n".join(kept).strip()
