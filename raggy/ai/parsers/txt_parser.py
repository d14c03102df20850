"""
Plain Text Parser

Parser for text/plain. The whole file is one section.
"""

import logging
from typing import List, Optional

from raggy.ai.parsers.base import (
    DocumentParser,
    DocumentSection,
    ParsedDocument,
)

logger = logging.getLogger(__name__)


class TXTParser(DocumentParser):
    """Parser for plain text files."""

    @property
    def mime_types(self) -> List[str]:
        return ["text/plain"]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        filename = filename or "unknown.txt"
        logger.info(f"Parsing TXT: {filename} ({len(content)} bytes)")

        try:
            text = self._decode_content(content)

            if text is None:
                return ParsedDocument.from_error("Could not decode text file")

            text = self._clean_text(text)

            metadata = {
                "filename": filename,
                "character_count": len(text),
                "line_count": text.count('\n') + 1 if text else 0,
            }

            logger.info(
                f"TXT parsed successfully: {filename}, "
                f"{len(text)} characters"
            )

            return ParsedDocument(
                sections=[DocumentSection(index=0, text=text)],
                metadata=metadata,
                success=True
            )

        except Exception as e:
            logger.exception(f"TXT parse error for {filename}")
            return ParsedDocument.from_error(f"Error parsing text file: {e}")
