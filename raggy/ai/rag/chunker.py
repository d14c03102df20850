"""
Text Chunker

Splits parsed documents into overlapping windows suitable for
vector embeddings.

Sizes are measured in characters. A window never exceeds chunk_size;
consecutive windows share up to chunk_overlap characters of whole
segments so context survives the boundary.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass, field
from uuid import uuid4

from raggy.core.config import settings

logger = logging.getLogger(__name__)


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class ChunkMetadata:
    """
    Metadata about a chunk's origin.

    Attributes:
        resource_id: Id of the source resource
        filename: Original filename for display
        section_index: Logical document (page, row, leaf) the chunk came from
        chunk_index: Position of this chunk in the resource
        total_chunks: Total chunks from this resource
        extra: Parser metadata of the section (page_number, row, json_pointer)
    """
    resource_id: Optional[str] = None
    filename: Optional[str] = None
    section_index: int = 0
    chunk_index: int = 0
    total_chunks: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Flat dictionary of scalars, the shape the vector store accepts."""
        data = {
            "resource_id": self.resource_id or "",
            "filename": self.filename or "",
            "section_index": self.section_index,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
        }
        for key, value in self.extra.items():
            if value is None or key in data:
                continue
            if isinstance(value, (str, int, float, bool)):
                data[key] = value
            else:
                data[key] = str(value)
        return data


@dataclass
class TextChunk:
    """One window of a section; the unit that is embedded and stored."""
    id: str = field(default_factory=lambda: str(uuid4()))
    text: str = ""
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)


# ============================================================
# CHUNKER CONFIGURATION
# ============================================================

@dataclass
class ChunkerConfig:
    """
    chunk_size: Maximum characters per chunk
    chunk_overlap: Characters carried over from the previous chunk
    """
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Coarsest first
    separators: List[str] = field(default_factory=lambda: [
        "\n\n",
        "\n",
        ". ",
        "? ",
        "! ",
        "; ",
        ", ",
        " ",
    ])

    def __post_init__(self):
        if self.chunk_size <= 0 or self.chunk_overlap <= 0:
            raise ValueError("chunk_size and chunk_overlap must be positive")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")

    @classmethod
    def from_settings(cls) -> "ChunkerConfig":
        return cls(
            chunk_size=settings.DOCUMENT_CHUNK_SIZE,
            chunk_overlap=settings.DOCUMENT_CHUNK_OVERLAP,
        )


# ============================================================
# TEXT CHUNKER
# ============================================================

class TextChunker:
    """
    Splits text into overlapping windows.

    Text is cut at the coarsest separator that yields pieces no longer
    than chunk_size (paragraphs, then lines, sentences, clauses, words),
    falling back to fixed-width cuts. The pieces are then packed into
    windows, each starting with the tail of the one before.

    Usage:
        chunker = TextChunker()
        chunks = chunker.chunk_sections(
            parsed.sections,
            resource_id=str(resource.id),
            filename="notes.pdf"
        )
    """

    def __init__(self, config: Optional[ChunkerConfig] = None):
        self.config = config or ChunkerConfig.from_settings()

    def split_text(self, text: str) -> List[str]:
        """Split one text into window strings."""
        if not text or not text.strip():
            return []
        segments = self._segment(text, self.config.separators)
        return self._pack(segments)

    def chunk_text(
        self,
        text: str,
        resource_id: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> List[TextChunk]:
        """Chunk a single text as one section."""
        return self._build_chunks(
            [(0, text, {})], resource_id=resource_id, filename=filename
        )

    def chunk_sections(
        self,
        sections: Sequence,
        resource_id: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> List[TextChunk]:
        """
        Chunk parsed sections, keeping each section's metadata.

        Windows never span two sections: a CSV row or a PDF page is
        chunked on its own.
        """
        return self._build_chunks(
            [(s.index, s.text, s.metadata) for s in sections],
            resource_id=resource_id,
            filename=filename,
        )

    def _build_chunks(self, items, resource_id, filename) -> List[TextChunk]:
        chunks = []
        for section_index, text, extra in items:
            for window in self.split_text(text):
                chunks.append(TextChunk(
                    text=window,
                    metadata=ChunkMetadata(
                        resource_id=resource_id,
                        filename=filename,
                        section_index=section_index,
                        chunk_index=len(chunks),
                        extra=dict(extra or {}),
                    )
                ))

        total = len(chunks)
        for chunk in chunks:
            chunk.metadata.total_chunks = total

        logger.info(f"Created {total} chunks from {len(items)} sections")
        return chunks

    def _segment(
        self,
        text: str,
        separators: List[str]
    ) -> List[str]:
        """
        Every returned segment is non-empty and at most chunk_size long.
        """
        text = text.strip()
        if not text:
            return []

        if len(text) <= self.config.chunk_size:
            return [text]

        if not separators:
            return self._cut_fixed(text)

        separator = separators[0]
        finer = separators[1:]

        parts = text.split(separator)

        if len(parts) == 1:
            return self._segment(text, finer)

        result = []
        for part in parts:
            part = part.strip()
            if not part:
                continue

            if len(part) <= self.config.chunk_size:
                result.append(part)
            else:
                result.extend(self._segment(part, finer))

        return result

    def _cut_fixed(self, text: str) -> List[str]:
        """
        Fixed-width windows for text no separator can break (long URLs,
        base64, CJK prose). Consecutive windows share chunk_overlap
        characters; the last one ends at the end of the text.
        """
        size = self.config.chunk_size
        step = size - self.config.chunk_overlap
        result = []
        start = 0
        while True:
            segment = text[start:start + size].strip()
            if segment:
                result.append(segment)
            if start + size >= len(text):
                return result
            start += step

    def _pack(
        self,
        segments: List[str]
    ) -> List[str]:
        """
        Greedily fill windows with whole segments. A full window is
        emitted and the next one starts with its trailing segments (at
        most chunk_overlap characters), trimmed from the front until the
        incoming segment fits.
        """
        if not segments:
            return []

        chunks = []
        current_parts: List[str] = []

        for segment in segments:
            if current_parts and self._joined_length(current_parts + [segment]) > self.config.chunk_size:
                chunks.append(self._join(current_parts))

                current_parts = self._tail_within(
                    current_parts,
                    self.config.chunk_overlap
                )
                while current_parts and self._joined_length(current_parts + [segment]) > self.config.chunk_size:
                    current_parts.pop(0)

            current_parts.append(segment)

        if current_parts:
            chunks.append(self._join(current_parts))

        return chunks

    def _join(self, segments: List[str]) -> str:
        return " ".join(segments)

    def _joined_length(self, segments: List[str]) -> int:
        return sum(len(s) for s in segments) + max(len(segments) - 1, 0)

    def _tail_within(
        self,
        parts: List[str],
        target_chars: int
    ) -> List[str]:
        """Trailing segments whose joined length stays within target_chars."""
        tail: List[str] = []

        for part in reversed(parts):
            if self._joined_length([part] + tail) > target_chars:
                break
            tail.insert(0, part)

        return tail
