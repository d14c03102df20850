"""AI Prompts Module"""

from raggy.ai.prompts.chat_prompts import (
    SYSTEM_INSTRUCTION,
    build_answer_messages,
    build_context_prompt,
    build_rewrite_messages,
    build_welcome_prompt,
)
from raggy.ai.prompts.extraction_prompts import build_extraction_prompt

__all__ = [
    "SYSTEM_INSTRUCTION",
    "build_answer_messages",
    "build_context_prompt",
    "build_rewrite_messages",
    "build_welcome_prompt",
    "build_extraction_prompt",
]
