"""
Attribute extraction worker.

    arq raggy.worker.WorkerSettings [--verbose]

Jobs:
- process_message_attributes(user_id, message_id): enqueued by the API
  whenever a user message is written
- extract_user_attributes(user_id): full run over unprocessed messages
- catch_up_attribute_extraction: nightly cron, full run for every user
  with required attributes
"""

import logging
from typing import Any, Dict

from arq import cron

from raggy.core.config import settings
from raggy.db.database import close_db_engine
from raggy.db.redis import get_arq_redis_settings
from raggy.tasks.extraction_tasks import (
    catch_up_attribute_extraction,
    extract_user_attributes,
    process_message_attributes,
)

# ============================================================
# Logging Configuration
# ============================================================

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================================
# Startup and Shutdown Hooks
# ============================================================

async def startup(ctx: Dict[str, Any]) -> None:
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set, extraction jobs will fail and retry")

    logger.info(
        f"Extraction worker ready (max tries {settings.EXTRACTION_MAX_TRIES}, "
        f"dead letters in {settings.EXTRACTION_DEAD_LETTER_KEY})"
    )


async def shutdown(ctx: Dict[str, Any]) -> None:
    await close_db_engine()
    logger.info("Extraction worker stopped")


# ============================================================
# Worker Configuration Class
# ============================================================

class WorkerSettings:
    """Loaded by the arq CLI by dotted path."""

    functions = [
        process_message_attributes,
        extract_user_attributes,
    ]

    # Nightly catch-up at 03:00
    cron_jobs = [
        cron(catch_up_attribute_extraction, hour={3}, minute={0}, run_at_startup=False),
    ]

    redis_settings = get_arq_redis_settings()

    on_startup = startup
    on_shutdown = shutdown

    job_timeout = 300      # One extraction prompt, with margin
    keep_result = 3600
    max_tries = settings.EXTRACTION_MAX_TRIES

    max_jobs = 10
    poll_delay = 0.5
