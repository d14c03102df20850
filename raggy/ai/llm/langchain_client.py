"""
Generation gateway over Gemini through langchain-google-genai.

Prompts are built in raggy.ai.prompts; this module only sends them.

Every call is bounded by LLM_TIMEOUT. Timeouts, provider errors and
non-text responses surface as ExternalServiceError; nothing is retried
here.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.messages import (
    BaseMessage,
    HumanMessage,
    AIMessage,
    SystemMessage,
)

from raggy.core.config import settings
from raggy.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


# ============================================================
# MODEL INITIALIZATION
# ============================================================

def get_llm(
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> ChatGoogleGenerativeAI:
    """Gemini chat model; None arguments fall back to settings."""
    if not settings.GEMINI_API_KEY:
        raise ExternalServiceError(
            "Generation is not configured (GEMINI_API_KEY is empty)"
        )

    return ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=settings.LLM_TEMPERATURE if temperature is None else temperature,
        max_output_tokens=max_tokens or settings.LLM_MAX_TOKENS,
    )


# ============================================================
# MESSAGE CONVERSION
# ============================================================

_MESSAGE_CLASSES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
    "model": AIMessage,
}


def convert_to_langchain_messages(
    messages: Sequence[Dict[str, str]]
) -> List[BaseMessage]:
    """{"role", "content"} dicts to message objects; unknown roles become human turns."""
    converted = []
    for msg in messages:
        message_class = _MESSAGE_CLASSES.get(msg["role"])
        if message_class is None:
            logger.warning(f"Treating message with role {msg['role']!r} as a user turn")
            message_class = HumanMessage
        converted.append(message_class(content=msg["content"]))
    return converted


def message_text(message: Any) -> str:
    """
    Text of a model response.

    Gemini may return a list of content parts instead of a string; text
    parts are concatenated.
    """
    content = getattr(message, "content", message)

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)

    raise ExternalServiceError(
        f"Generation returned unsupported content type: {type(content).__name__}"
    )


# ============================================================
# GENERATION GATEWAY
# ============================================================

PromptInput = Union[str, Sequence[BaseMessage], Sequence[Dict[str, str]]]


class GenerationGateway:
    """
    prompt (+ history) -> text.

    Usage:
        gateway = GenerationGateway()
        text = await gateway.generate("Say hi")
        text = await gateway.generate([SystemMessage(...), HumanMessage(...)])

    Any LangChain chat model can be passed in; tests use fake models.
    """

    def __init__(self, llm: Optional[Any] = None, timeout: Optional[float] = None):
        self._llm = llm
        self.timeout = timeout or settings.LLM_TIMEOUT

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    def _to_messages(self, prompt: PromptInput) -> List[BaseMessage]:
        if isinstance(prompt, str):
            return [HumanMessage(content=prompt)]
        messages = list(prompt)
        if messages and isinstance(messages[0], dict):
            return convert_to_langchain_messages(messages)
        return messages

    async def generate(self, prompt: PromptInput) -> str:
        """
        Invoke the model and return its text.

        Raises:
            ExternalServiceError: Timeout, provider error or non-text output
        """
        messages = self._to_messages(prompt)

        try:
            response = await asyncio.wait_for(
                self.llm.ainvoke(messages),
                timeout=self.timeout
            )
        except ExternalServiceError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Generation timed out after {self.timeout}s")
            raise ExternalServiceError("Generation request timed out") from e
        except Exception as e:
            logger.error(f"LangChain generation error: {e}")
            raise ExternalServiceError(f"Generation request failed: {e}") from e

        return message_text(response).strip()


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_gateway: Optional[GenerationGateway] = None


def get_generation_gateway() -> GenerationGateway:
    """Get or create GenerationGateway singleton."""
    global _gateway

    if _gateway is None:
        _gateway = GenerationGateway()

    return _gateway


def set_generation_gateway(gateway: Optional[GenerationGateway]) -> None:
    global _gateway
    _gateway = gateway

