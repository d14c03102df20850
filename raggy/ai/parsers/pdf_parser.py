"""
PDF parser (pypdf).

Every page that yields text becomes one section carrying its 1-based
page number. Scanned PDFs have no text layer and no OCR is attempted:
they parse successfully with zero sections and an explanatory error.
"""

import io
import logging
from typing import Any, Dict, List, Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from raggy.ai.parsers.base import (
    DocumentParser,
    DocumentSection,
    ParsedDocument,
)

logger = logging.getLogger(__name__)

NO_TEXT_LAYER = "PDF has no extractable text (scanned or image-only)"


class PDFParser(DocumentParser):

    @property
    def mime_types(self) -> List[str]:
        return ["application/pdf"]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        name = filename or "document.pdf"

        try:
            reader = PdfReader(io.BytesIO(content))
            pages = [
                (number, self._clean_text(page.extract_text() or ""))
                for number, page in enumerate(reader.pages, start=1)
            ]
        except PdfReadError as e:
            logger.error(f"{name}: unreadable PDF: {e}")
            return ParsedDocument.from_error(f"Invalid or corrupted PDF: {e}")
        except Exception as e:
            logger.exception(f"{name}: PDF extraction crashed")
            return ParsedDocument.from_error(f"Unexpected error parsing PDF: {e}")

        sections = [
            DocumentSection(index=i, text=text, metadata={"page_number": number})
            for i, (number, text) in enumerate((n, t) for n, t in pages if t)
        ]
        metadata = self._document_info(reader, name)

        logger.info(f"{name}: {len(pages)} pages, {len(sections)} with text")
        return ParsedDocument(
            sections=sections,
            metadata=metadata,
            error=None if sections else NO_TEXT_LAYER,
        )

    def _document_info(self, reader: PdfReader, filename: str) -> Dict[str, Any]:
        info: Dict[str, Any] = {"filename": filename, "page_count": len(reader.pages)}

        try:
            for key in ("title", "author"):
                value = getattr(reader.metadata, key, None) if reader.metadata else None
                if value:
                    info[key] = str(value)
        except Exception as e:
            logger.debug(f"{filename}: PDF info dictionary unreadable: {e}")

        return info
