"""
raggy HTTP application.

RaggyError subclasses carry their HTTP status and are rendered as
{"detail": message}. Database failures are reported as PersistenceError.

    uvicorn raggy.main:app --reload
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from raggy import __version__
from raggy.core.config import settings
from raggy.core.exceptions import PersistenceError, RaggyError
from raggy.db.database import check_db_connection, close_db_engine, init_models
from raggy.db.redis import (
    check_redis_connection,
    close_arq_pool,
    close_redis_pool,
)
from raggy.db.vector_store import check_vector_store_health
from raggy.tasks.queue import get_task_queue
from raggy.api.v1.router import api_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================================
# Application Lifespan Events
# ============================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates tables when DB_AUTO_CREATE is set and runs the in-process
    extraction queue for the lifetime of the app. A database that is
    down at startup is logged, not fatal.
    """
    logger.info(f"Starting {settings.PROJECT_NAME} {__version__}...")
    logger.info(f"Debug mode: {settings.DEBUG}, extraction backend: {settings.EXTRACTION_QUEUE_BACKEND}")

    if settings.DB_AUTO_CREATE:
        await init_models()

    try:
        if await check_db_connection():
            logger.info("Database reachable")
        else:
            logger.warning("Database not reachable at startup")
    except Exception as e:
        logger.error(f"Database check crashed at startup: {e}")

    task_queue = get_task_queue()
    await task_queue.start()

    yield


    await task_queue.stop()
    await close_redis_pool()
    await close_arq_pool()
    await close_db_engine()

    logger.info(f"{settings.PROJECT_NAME} stopped")


# ============================================================
# App
# ============================================================
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Document question-answering API

    Features:
    - Resource upload and ingestion (PDF, CSV, JSON, text)
    - Conversational answers grounded in the uploaded resources
    - Stateless single-question answers
    - User attribute extraction from chat messages
    """,
    version=__version__,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ----------------------------------------------------
# Middleware
# ----------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)


# ----------------------------------------------------
# Errors
# ----------------------------------------------------
@app.exception_handler(RaggyError)
async def raggy_error_handler(request: Request, exc: RaggyError):
    """Translate application errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message}
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"{request.method} {request.url.path} database error: {exc}")
    error = PersistenceError("Database unavailable")
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.message}
    )


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/", tags=["Health"])
async def root():
    return {
        "name": settings.PROJECT_NAME,
        "version": __version__,
        "status": "running",
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Redis is optional (extraction falls back to the in-process queue),
    so only the database and vector store decide 'degraded'.
    """
    db_healthy = await check_db_connection()
    redis_healthy = await check_redis_connection()
    vector_healthy = await check_vector_store_health()

    status = "healthy" if db_healthy and vector_healthy else "degraded"

    return {
        "status": status,
        "database": "connected" if db_healthy else "disconnected",
        "redis": "connected" if redis_healthy else "disconnected",
        "vector_store": "connected" if vector_healthy else "disconnected",
        "extraction_queue": {
            "backend": settings.EXTRACTION_QUEUE_BACKEND,
            "local_pending": get_task_queue().qsize(),
            "local_dead_letters": len(get_task_queue().dead_letters),
        },
    }


# ============================================================
# Routes
# ============================================================
app.include_router(
    api_router,
    prefix=settings.API_V1_PREFIX
)
