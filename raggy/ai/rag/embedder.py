"""
Embedding Service

Creates vector embeddings from text using the Google Gemini API.

- Model: EMBEDDING_MODEL (gemini-embedding-001)
- Dimension: EMBEDDING_DIMENSION, requested through output_dimensionality
- Batches of EMBEDDING_BATCH_SIZE texts per request

The google-genai client is synchronous; each request runs in a worker
thread under EMBEDDING_TIMEOUT. Timeouts, transport errors and
malformed responses (wrong count, wrong dimension) all surface as
ExternalServiceError.
"""

import asyncio
import logging
import math
from typing import Any, List, Optional

from google import genai
from google.genai import types

from raggy.core.config import settings
from raggy.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

_client: Optional[genai.Client] = None


def _get_client() -> genai.Client:
    """Get or create the Gemini API client (singleton)."""
    global _client

    if _client is not None:
        return _client

    if not settings.GEMINI_API_KEY:
        raise ExternalServiceError(
            "Embedding is not configured (GEMINI_API_KEY is empty)"
        )

    _client = genai.Client(api_key=settings.GEMINI_API_KEY)
    logger.info("Gemini embedding client initialized")
    return _client


# ============================================================
# EMBEDDING CLASS
# ============================================================

class Embedder:
    """
    Embedding gateway.

    Usage:
        embedder = Embedder()
        vectors = await embedder.embed_batch(["Text 1", "Text 2"])
        query_vector = await embedder.embed_query("Search query")

    Tests pass a client with the same ``models.embed_content`` surface.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self._client = client
        self.model_name = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT

    @property
    def client(self):
        if self._client is None:
            self._client = _get_client()
        return self._client

    def batch_count(self, n_texts: int) -> int:
        """Number of API calls needed for n_texts."""
        return math.ceil(n_texts / self.batch_size) if n_texts else 0

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Create embeddings for multiple texts with automatic batching.

        Returns:
            One vector per input text, in input order

        Raises:
            ExternalServiceError: Timeout, API error or malformed response
        """
        if not texts:
            return []

        # The API rejects empty strings
        processed_texts = [text if text and text.strip() else " " for text in texts]

        logger.info(
            f"Creating embeddings for {len(processed_texts)} texts "
            f"in {self.batch_count(len(processed_texts))} requests"
        )

        all_embeddings: List[List[float]] = []
        for start in range(0, len(processed_texts), self.batch_size):
            batch = processed_texts[start:start + self.batch_size]
            all_embeddings.extend(await self._embed_request(batch))

        return all_embeddings

    async def embed(self, text: str) -> List[float]:
        """Create embedding for a single text."""
        return (await self.embed_batch([text]))[0]

    async def embed_query(self, query: str) -> List[float]:
        """Create embedding for a search query."""
        return await self.embed(query)

    async def _embed_request(self, batch: List[str]) -> List[List[float]]:
        def _call():
            return self.client.models.embed_content(
                model=self.model_name,
                contents=batch,
                config=types.EmbedContentConfig(
                    output_dimensionality=self.dimension,
                ),
            )

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(_call),
                timeout=self.timeout
            )
        except ExternalServiceError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Embedding request timed out after {self.timeout}s")
            raise ExternalServiceError("Embedding request timed out") from e
        except Exception as e:
            logger.error(f"Embedding request failed: {e}")
            raise ExternalServiceError(f"Embedding request failed: {e}") from e

        embeddings = getattr(result, "embeddings", None) or []
        if len(embeddings) != len(batch):
            raise ExternalServiceError(
                f"Embedding response has {len(embeddings)} vectors "
                f"for {len(batch)} texts"
            )

        vectors = []
        for embedding in embeddings:
            values = list(getattr(embedding, "values", None) or [])
            if len(values) != self.dimension:
                raise ExternalServiceError(
                    f"Embedding dimension {len(values)} does not match "
                    f"configured dimension {self.dimension}"
                )
            vectors.append([float(v) for v in values])

        return vectors


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_embedder: Optional[Embedder] = None


def get_embedder() -> Embedder:
    """Get or create Embedder singleton."""
    global _embedder

    if _embedder is None:
        _embedder = Embedder()

    return _embedder


def set_embedder(embedder: Optional[Embedder]) -> None:
    global _embedder
    _embedder = embedder
