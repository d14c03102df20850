"""
JSON Parser

Walks the decoded JSON value and emits one section per non-empty string
leaf. Each section keeps the JSON pointer of its leaf (RFC 6901) so a
retrieved chunk can be traced back to its place in the file.

Numbers and booleans are context, not content; they are skipped.
"""

import json
import logging
from typing import Any, Iterator, List, Optional, Tuple

from raggy.ai.parsers.base import (
    DocumentParser,
    DocumentSection,
    ParsedDocument,
)

logger = logging.getLogger(__name__)


def _escape_pointer_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def iter_string_leaves(value: Any, pointer: str = "") -> Iterator[Tuple[str, str]]:
    """Yield (pointer, text) for every string leaf, in document order."""
    if isinstance(value, dict):
        for key, child in value.items():
            yield from iter_string_leaves(
                child, f"{pointer}/{_escape_pointer_token(str(key))}"
            )
    elif isinstance(value, list):
        for i, child in enumerate(value):
            yield from iter_string_leaves(child, f"{pointer}/{i}")
    elif isinstance(value, str):
        yield pointer or "/", value


class JSONParser(DocumentParser):
    """Parser for JSON documents."""

    @property
    def mime_types(self) -> List[str]:
        return ["application/json"]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        filename = filename or "unknown.json"
        logger.info(f"Parsing JSON: {filename} ({len(content)} bytes)")

        text = self._decode_content(content)
        if text is None:
            return ParsedDocument.from_error("Could not decode JSON file")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"JSON parse error for {filename}: {e}")
            return ParsedDocument.from_error(f"Invalid JSON: {e}")

        sections = []
        for pointer, leaf in iter_string_leaves(data):
            leaf = self._clean_text(leaf)
            if not leaf:
                continue
            sections.append(DocumentSection(
                index=len(sections),
                text=leaf,
                metadata={"json_pointer": pointer},
            ))

        logger.info(f"JSON parsed successfully: {filename}, {len(sections)} string values")

        return ParsedDocument(
            sections=sections,
            metadata={"filename": filename},
            success=True
        )
