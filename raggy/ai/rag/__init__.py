"""
RAG (Retrieval-Augmented Generation) Module

INGESTION:
    from raggy.ai.rag import IngestionPipeline

    pipeline = IngestionPipeline()
    result = await pipeline.ingest(resource_id, content, "text/plain")

ANSWERING:
    from raggy.ai.rag import RetrievalChain

    chain = RetrievalChain()
    result = await chain.run("What color is the sky?")
"""

from raggy.ai.rag.chain import ChainResult, ChainState, RetrievalChain
from raggy.ai.rag.chunker import (
    ChunkMetadata,
    ChunkerConfig,
    TextChunk,
    TextChunker,
)
from raggy.ai.rag.embedder import Embedder, get_embedder, set_embedder
from raggy.ai.rag.pipeline import (
    IngestionPipeline,
    IngestionResult,
    get_ingestion_pipeline,
)
from raggy.ai.rag.retriever import RetrievalResult, RetrievedChunk, Retriever

__all__ = [
    "ChainResult",
    "ChainState",
    "RetrievalChain",
    "ChunkMetadata",
    "ChunkerConfig",
    "TextChunk",
    "TextChunker",
    "Embedder",
    "get_embedder",
    "set_embedder",
    "IngestionPipeline",
    "IngestionResult",
    "get_ingestion_pipeline",
    "RetrievalResult",
    "RetrievedChunk",
    "Retriever",
]
