"""
LLM Module

Generation gateway (Google Gemini through LangChain).
"""

from raggy.ai.llm.langchain_client import (
    GenerationGateway,
    convert_to_langchain_messages,
    get_generation_gateway,
    get_llm,
    message_text,
    set_generation_gateway,
)

__all__ = [
    "GenerationGateway",
    "convert_to_langchain_messages",
    "get_generation_gateway",
    "get_llm",
    "message_text",
    "set_generation_gateway",
]
