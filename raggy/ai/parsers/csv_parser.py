"""
CSV Parser

Each data row becomes one section rendered as ``column: value`` lines,
so a row reads as a small self-contained record when retrieved.
"""

import csv
import io
import logging
from typing import List, Optional

from raggy.ai.parsers.base import (
    DocumentParser,
    DocumentSection,
    ParsedDocument,
)

logger = logging.getLogger(__name__)


class CSVParser(DocumentParser):
    """Parser for comma separated files with a header row."""

    @property
    def mime_types(self) -> List[str]:
        return ["text/csv"]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        filename = filename or "unknown.csv"
        logger.info(f"Parsing CSV: {filename} ({len(content)} bytes)")

        text = self._decode_content(content)
        if text is None:
            return ParsedDocument.from_error("Could not decode CSV file")

        try:
            reader = csv.DictReader(io.StringIO(text))
            columns = reader.fieldnames or []

            sections = []
            for row_number, row in enumerate(reader, start=1):
                lines = []
                for column in columns:
                    value = (row.get(column) or "").strip()
                    if value:
                        lines.append(f"{column}: {value}")
                if not lines:
                    continue
                sections.append(DocumentSection(
                    index=len(sections),
                    text="\n".join(lines),
                    metadata={"row": row_number},
                ))

        except csv.Error as e:
            logger.error(f"CSV parse error for {filename}: {e}")
            return ParsedDocument.from_error(f"Invalid CSV: {e}")

        logger.info(f"CSV parsed successfully: {filename}, {len(sections)} rows")

        return ParsedDocument(
            sections=sections,
            metadata={
                "filename": filename,
                "columns": ", ".join(c for c in columns if c),
                "row_count": len(sections),
            },
            success=True
        )
