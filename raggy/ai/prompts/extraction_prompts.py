"""
Attribute Extraction Prompts

The model must answer with a single minimal JSON object restricted to
the requested keys. The response is still parsed permissively, and
filtered against the required attributes afterwards.
"""

from typing import List


def build_extraction_prompt(text: str, required_attributes: List[str]) -> str:
    """
    Build the extraction prompt.

    Args:
        text: User messages, oldest first, separated by blank lines
        required_attributes: Attribute names to look for

    Returns:
        Prompt string
    """
    attributes = ", ".join(required_attributes)

    return f"""You extract personal information about a user from their messages.

STRICT RULES:
1. Extract ONLY the following attributes: {attributes}
2. Answer EXCLUSIVELY with one valid JSON object
3. If an attribute is not found, leave it out of the object
4. Values must be plain strings
5. Return no explanation and no other text, only the JSON

ATTRIBUTES TO EXTRACT: {attributes}

TEXT TO ANALYZE:
{text}

JSON ANSWER:"""
