"""
Permissive JSON extraction from model output.

Models wrap JSON in code fences, prefix it with prose, or append
commentary. extract_json_object() returns the first decodable JSON
object anywhere in the text.
"""

import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    First JSON object in ``text``, or None.

    Nested objects are handled: decoding starts at each ``{`` in turn and
    the first position that yields a complete dict wins.
    """
    if not text:
        return None

    cleaned = _FENCE_RE.sub("", text)
    decoder = json.JSONDecoder()

    start = cleaned.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(cleaned, start)
        except ValueError:
            start = cleaned.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = cleaned.find("{", start + 1)

    return None
