"""
Document Parsers Module

Registry mapping mime types to parser instances.

Usage:
------
    from raggy.ai.parsers import get_parser, parse_document

    parser = get_parser("application/pdf")
    result = parser.parse(pdf_bytes, "document.pdf")

    # Or use convenience function
    result = parse_document(file_bytes, "application/pdf", "document.pdf")

New formats register themselves with register_parser(); call sites only
ever go through get_parser().
"""

from typing import Dict, List, Optional

from raggy.ai.parsers.base import (
    DocumentParser,
    DocumentSection,
    ParsedDocument,
    normalize_mime_type,
)
from raggy.ai.parsers.csv_parser import CSVParser
from raggy.ai.parsers.json_parser import JSONParser
from raggy.ai.parsers.pdf_parser import PDFParser
from raggy.ai.parsers.txt_parser import TXTParser


_parsers: Dict[str, DocumentParser] = {}


def register_parser(parser: DocumentParser) -> DocumentParser:
    """Register a parser for every mime type it declares."""
    for mime_type in parser.mime_types:
        _parsers[normalize_mime_type(mime_type)] = parser
    return parser


def get_parser(mime_type: str) -> Optional[DocumentParser]:
    """
    Get the parser registered for a mime type.

    Returns:
        DocumentParser instance or None if unsupported
    """
    return _parsers.get(normalize_mime_type(mime_type))


def supported_mime_types() -> List[str]:
    return sorted(_parsers)


def parse_document(
    content: bytes,
    mime_type: str,
    filename: Optional[str] = None
) -> ParsedDocument:
    """
    Convenience function to parse a document.

    Returns:
        ParsedDocument with results (never raises)
    """
    parser = get_parser(mime_type)

    if not parser:
        return ParsedDocument.from_error(
            f"No parser available for mime type: {mime_type}"
        )

    return parser.parse(content, filename)


for _parser in (CSVParser(), PDFParser(), TXTParser(), JSONParser()):
    register_parser(_parser)


__all__ = [
    "register_parser",
    "get_parser",
    "supported_mime_types",
    "parse_document",
    "normalize_mime_type",
    "DocumentParser",
    "DocumentSection",
    "ParsedDocument",
    "CSVParser",
    "JSONParser",
    "PDFParser",
    "TXTParser",
]
