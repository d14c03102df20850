"""
Redis connections.

Two pools share REDIS_URL: a plain redis-py pool (dead-letter list,
health checks) and an ARQ pool that enqueues extraction jobs for the
worker process (`arq raggy.worker.WorkerSettings`).
"""

import logging
from typing import Optional

from redis.asyncio import Redis, ConnectionPool
from arq.connections import RedisSettings, ArqRedis, create_pool

from raggy.core.config import settings

logger = logging.getLogger(__name__)

# ============================================================
# Plain Redis
# ============================================================

_redis_pool: Optional[ConnectionPool] = None


def get_redis_pool() -> ConnectionPool:
    global _redis_pool

    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=10,
            decode_responses=False,
        )
        logger.info(f"Redis pool opened for {settings.REDIS_URL}")

    return _redis_pool


async def get_redis() -> Redis:
    """Client bound to the shared pool; cheap to create per call."""
    return Redis(connection_pool=get_redis_pool())


async def close_redis_pool():
    global _redis_pool

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis pool closed")


# ============================================================
# ARQ
# ============================================================

def get_arq_redis_settings() -> RedisSettings:
    """REDIS_URL as ARQ connection settings, with a short connect timeout."""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    redis_settings.conn_timeout = 5
    redis_settings.conn_retries = 2
    redis_settings.conn_retry_delay = 1
    return redis_settings

_arq_pool: Optional[ArqRedis] = None


async def get_arq_pool() -> ArqRedis:
    """Pool used by raggy.tasks.queue to enqueue jobs."""
    global _arq_pool

    if _arq_pool is None:
        _arq_pool = await create_pool(get_arq_redis_settings())
        logger.info("ARQ pool opened")

    return _arq_pool


async def close_arq_pool():
    global _arq_pool

    if _arq_pool is not None:
        await _arq_pool.close()
        _arq_pool = None
        logger.info("ARQ pool closed")


# ============================================================
# Health Check
# ============================================================

async def check_redis_connection() -> bool:
    """PING through the plain pool."""
    try:
        redis = await get_redis()
        return bool(await redis.ping())
    except Exception as e:
        logger.error(f"Redis unreachable: {e}")
        return False
