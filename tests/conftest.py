"""Pytest fixtures for the raggy test suite."""

import os
import tempfile
import uuid

# Settings are read once at import time; point everything at test
# resources before any raggy module is imported.
_TEST_DIR = tempfile.mkdtemp(prefix="raggy-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/raggy.db"
os.environ["CHROMA_PERSIST_DIRECTORY"] = f"{_TEST_DIR}/chroma"
os.environ["EXTRACTION_QUEUE_BACKEND"] = "local"
os.environ["EXTRACTION_RETRY_DELAY"] = "0"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["EMBEDDING_DIMENSION"] = "128"
os.environ["LOG_LEVEL"] = "WARNING"

import chromadb
import httpx
import pytest
from chromadb.config import Settings as ChromaSettings
from sqlalchemy import event

from raggy.ai.llm.langchain_client import GenerationGateway, set_generation_gateway
from raggy.ai.memory.session import get_session_memory, reset_session_memory
from raggy.ai.rag.embedder import Embedder, set_embedder
from raggy.ai.rag.pipeline import IngestionPipeline, reset_ingestion_pipeline
from raggy.core.config import settings
from raggy.db.database import AsyncSessionLocal, Base, engine, init_models
from raggy.db.vector_store import VectorStore, set_vector_store
from raggy.tasks.queue import BackgroundTaskQueue, set_task_queue

from tests.fakes import FakeGenaiClient, ScriptedChatModel

EMBEDDING_DIMENSION = settings.EMBEDDING_DIMENSION


@event.listens_for(engine.sync_engine, "connect")
def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ============================================================
# DATABASE
# ============================================================

@pytest.fixture
async def database():
    """Fresh tables on the application's engine."""
    await init_models()
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(database):
    async with AsyncSessionLocal() as session:
        yield session


# ============================================================
# VECTOR STORE AND GATEWAYS
# ============================================================

@pytest.fixture(scope="session")
def chroma_client():
    return chromadb.EphemeralClient(settings=ChromaSettings(anonymized_telemetry=False))


@pytest.fixture
def vector_store(chroma_client):
    """Store on a collection no other test touches."""
    store = VectorStore(
        client=chroma_client,
        collection_name=f"test-{uuid.uuid4().hex}",
        dimension=EMBEDDING_DIMENSION,
    )
    set_vector_store(store)
    yield store
    set_vector_store(None)


@pytest.fixture
def genai_client():
    return FakeGenaiClient(EMBEDDING_DIMENSION)


@pytest.fixture
def embedder(genai_client):
    embedder = Embedder(client=genai_client, dimension=EMBEDDING_DIMENSION)
    set_embedder(embedder)
    yield embedder
    set_embedder(None)


@pytest.fixture
def chat_model():
    return ScriptedChatModel()


@pytest.fixture
def gateway(chat_model):
    gateway = GenerationGateway(llm=chat_model, timeout=5)
    set_generation_gateway(gateway)
    yield gateway
    set_generation_gateway(None)


@pytest.fixture
def pipeline(embedder, vector_store):
    reset_ingestion_pipeline()
    yield IngestionPipeline(embedder=embedder, vector_store=vector_store)
    reset_ingestion_pipeline()


@pytest.fixture
def memory():
    reset_session_memory()
    yield get_session_memory()
    reset_session_memory()


# ============================================================
# BACKGROUND QUEUE
# ============================================================

@pytest.fixture
async def task_queue():
    queue = BackgroundTaskQueue(maxsize=100, workers=2, max_tries=3, retry_delay=0)
    set_task_queue(queue)
    await queue.start()
    yield queue
    await queue.stop()
    set_task_queue(None)


@pytest.fixture
def no_extraction():
    """on_user_message hook that records instead of queueing."""
    calls = []

    async def hook(user_id, message_id):
        calls.append((user_id, message_id))

    hook.calls = calls
    return hook


# ============================================================
# HTTP
# ============================================================

@pytest.fixture
async def api_client(database, embedder, vector_store, gateway, memory, task_queue):
    """Async HTTP client against the app, all gateways faked."""
    from raggy.main import app

    reset_ingestion_pipeline()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    reset_ingestion_pipeline()
