"""Deterministic stand-ins for the Gemini embedding client, the chat model and a slow chunk store."""

import asyncio
import hashlib
import json
import math
import re
import time
from types import SimpleNamespace
from typing import List, Optional

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage

from raggy.ai.prompts.chat_prompts import REWRITE_INSTRUCTION, SYSTEM_INSTRUCTION

TOKEN_RE = re.compile(r"\w+")


def hash_embedding(text: str, dimension: int) -> List[float]:
    """Bag-of-words vector: each lowercase token bumps one hashed slot."""
    vector = [0.0] * dimension
    for token in TOKEN_RE.findall(text.lower()):
        slot = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimension
        vector[slot] += 1.0

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        # Chroma's cosine space cannot handle the zero vector
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


class FakeEmbeddingModels:
    def __init__(self, dimension: int):
        self.dimension = dimension
        self.calls: List[List[str]] = []
        self.fail_with: Optional[Exception] = None
        self.wrong_dimension = False

    def embed_content(self, model, contents, config=None):
        self.calls.append(list(contents))
        if self.fail_with is not None:
            raise self.fail_with

        dimension = getattr(config, "output_dimensionality", None) or self.dimension
        if self.wrong_dimension:
            dimension += 1

        return SimpleNamespace(
            embeddings=[
                SimpleNamespace(values=hash_embedding(text, dimension))
                for text in contents
            ]
        )


class FakeGenaiClient:
    """Same ``models.embed_content`` surface as google.genai.Client."""

    def __init__(self, dimension: int):
        self.models = FakeEmbeddingModels(dimension)


# ============================================================
# CHUNK STORE
# ============================================================

class SlowCollection:
    """Chroma collection whose add() sleeps before writing."""

    def __init__(self, collection, delay: float):
        self.collection = collection
        self.delay = delay

    def add(self, **kwargs):
        time.sleep(self.delay)
        self.collection.add(**kwargs)

    def __getattr__(self, name):
        return getattr(self.collection, name)


def slow_down_writes(store, delay: float):
    """Make every add on ``store`` take at least ``delay`` seconds."""
    store._collection = SlowCollection(store._open_collection(), delay)
    return store


# ============================================================
# CHAT MODEL
# ============================================================

NAME_RE = re.compile(r"my name is (\w+)", re.IGNORECASE)
CITY_RE = re.compile(r"i live in (\w+)", re.IGNORECASE)


def prompt_kind(messages: List[BaseMessage]) -> str:
    first = messages[0]
    if isinstance(first, SystemMessage):
        if first.content == REWRITE_INSTRUCTION:
            return "rewrite"
        if first.content == SYSTEM_INSTRUCTION:
            return "answer"

    text = messages[-1].content
    if "STRICT RULES" in text:
        return "extraction"
    if "welcome message" in text:
        return "welcome"
    return "other"


class ScriptedChatModel:
    """
    Answers by prompt kind, the way ChatGoogleGenerativeAI would be called.

    - rewrite: echoes the latest human turn (or ``rewrite_response``)
    - answer: echoes the retrieved context (or ``answer_response``)
    - extraction: fenced JSON built from "my name is X" / "I live in Y"
    - welcome: a fixed greeting
    """

    def __init__(self):
        self.calls: List[List[BaseMessage]] = []
        self.rewrite_response: Optional[str] = None
        self.answer_response: Optional[str] = None
        self.welcome_response = "Welcome! Ask me anything about your documents."
        self.extraction_response: Optional[str] = None
        self.fail_with: Optional[Exception] = None
        self.fail_kinds: Optional[set] = None
        self.extraction_started: Optional[asyncio.Event] = None
        self.extraction_gate: Optional[asyncio.Event] = None

    def calls_of(self, kind: str) -> List[List[BaseMessage]]:
        return [call for call in self.calls if prompt_kind(call) == kind]

    async def ainvoke(self, messages, *args, **kwargs):
        messages = list(messages)
        self.calls.append(messages)
        kind = prompt_kind(messages)

        if self.fail_with is not None and (self.fail_kinds is None or kind in self.fail_kinds):
            raise self.fail_with

        if kind == "rewrite":
            text = messages[-1].content if self.rewrite_response is None else self.rewrite_response
        elif kind == "answer":
            text = self.answer_response
            if text is None:
                text = "Based on: " + self._context(messages[-1].content)
        elif kind == "extraction":
            if self.extraction_started is not None:
                self.extraction_started.set()
            if self.extraction_gate is not None:
                await self.extraction_gate.wait()
            text = self.extraction_response
            if text is None:
                text = self._extract(messages[-1].content)
        elif kind == "welcome":
            text = self.welcome_response
        else:
            text = "ok"

        return AIMessage(content=text)

    @staticmethod
    def _context(prompt: str) -> str:
        match = re.search(r"Context: (.*?)\n\nQuestion:", prompt, re.DOTALL)
        return match.group(1) if match else ""

    @staticmethod
    def _extract(prompt: str) -> str:
        attributes_line = re.search(r"ATTRIBUTES TO EXTRACT: (.*)", prompt).group(1)
        wanted = [a.strip() for a in attributes_line.split(",")]
        text = prompt.split("TEXT TO ANALYZE:", 1)[1]

        found = {}
        for name, pattern in (("name", NAME_RE), ("city", CITY_RE)):
            matches = pattern.findall(text)
            if name in wanted and matches:
                found[name] = matches[-1]

        return "```json\n" + json.dumps(found) + "\n```"
