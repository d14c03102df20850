"""
Attribute Extraction Tasks

Job functions for the ARQ worker and the in-process queue. Both call
them as ``fn(ctx, *args)``; ``ctx["local"]`` marks the in-process queue,
which does its own retrying.

Failures never reach the code that enqueued the job. Under ARQ a failed
job is retried with arq.Retry and exponential backoff; after the last
try it is pushed to the EXTRACTION_DEAD_LETTER_KEY list in Redis.
"""

import json
import logging
from typing import Any, Dict, Tuple
from uuid import UUID

from arq import Retry

from raggy.core.config import settings
from raggy.core.exceptions import NotFoundError
from raggy.db.database import AsyncSessionLocal
from raggy.repositories.user_repo import UserRepository
from raggy.services.attribute_extraction_service import AttributeExtractionService
from raggy.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


# ============================================================
# MESSAGE FAST PATH
# ============================================================

async def process_message_attributes(
    ctx: Dict[str, Any],
    user_id: str,
    message_id: str,
) -> Dict[str, Any]:
    """Extract attributes from one freshly written user message."""
    job_id = ctx.get("job_id", "unknown")
    job_try = ctx.get("job_try", 1)

    logger.info(
        f"Extracting attributes from message {message_id} of user {user_id} "
        f"(job: {job_id}, attempt: {job_try})"
    )

    try:
        message_uuid = UUID(str(message_id))
    except ValueError:
        logger.error(f"Invalid message ID: {message_id}")
        return {"success": False, "error": "Invalid message ID"}

    try:
        async with AsyncSessionLocal() as session:
            outcome = await AttributeExtractionService(session).process_message(
                user_id,
                message_uuid,
            )
    except NotFoundError as e:
        # Message or user deleted since the job was queued
        logger.warning(f"Skipping extraction job {job_id}: {e.message}")
        return {"success": False, "error": e.message}
    except Exception as e:
        return await _retry_or_dead_letter(
            ctx, "process_message_attributes", (user_id, str(message_id)), e
        )

    return {
        "success": True,
        "user_id": user_id,
        "status": outcome.status.value,
        "attributes": outcome.attributes,
    }


# ============================================================
# FULL RUN
# ============================================================

async def extract_user_attributes(ctx: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Full extraction run over messages newer than the checkpoint."""
    logger.info(f"Full attribute extraction for user {user_id} (job: {ctx.get('job_id', 'unknown')})")

    try:
        async with AsyncSessionLocal() as session:
            outcome = await AttributeExtractionService(session).run(user_id)
    except NotFoundError as e:
        logger.warning(f"Skipping extraction for user {user_id}: {e.message}")
        return {"success": False, "error": e.message}
    except Exception as e:
        return await _retry_or_dead_letter(ctx, "extract_user_attributes", (user_id,), e)

    return {
        "success": True,
        "user_id": user_id,
        "status": outcome.status.value,
        "processed_messages": outcome.processed_messages,
    }


async def catch_up_attribute_extraction(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    Nightly cron: full run for every user with required attributes.

    Picks up messages whose fast-path job was lost or dead-lettered.
    """
    page_size = 100
    skip = 0
    users_run = 0
    failures = 0

    while True:
        async with AsyncSessionLocal() as session:
            users = await UserRepository(session).get_all_users(skip=skip, limit=page_size)
            user_ids = [u.id for u in users if u.required_attributes]

        for user_id in user_ids:
            try:
                async with AsyncSessionLocal() as session:
                    await AttributeExtractionService(session).run(user_id)
                users_run += 1
            except Exception as e:
                failures += 1
                logger.error(f"Catch-up extraction failed for user {user_id}: {e}")

        if len(users) < page_size:
            break
        skip += page_size

    logger.info(f"Attribute catch-up finished: {users_run} users, {failures} failures")
    return {"success": failures == 0, "users": users_run, "failures": failures}


# ============================================================
# FAILURE HANDLING
# ============================================================

def retry_delay(job_try: int) -> float:
    return settings.EXTRACTION_RETRY_DELAY * 2 ** (job_try - 1)


async def _retry_or_dead_letter(
    ctx: Dict[str, Any],
    function_name: str,
    args: Tuple[Any, ...],
    error: Exception,
) -> Dict[str, Any]:
    if ctx.get("local"):
        raise error

    job_try = ctx.get("job_try", 1)
    if job_try < settings.EXTRACTION_MAX_TRIES:
        delay = retry_delay(job_try)
        logger.warning(
            f"{function_name}{args} failed (try {job_try}/{settings.EXTRACTION_MAX_TRIES}): "
            f"{error}. Retrying in {delay:.1f}s"
        )
        raise Retry(defer=delay) from error

    logger.error(f"{function_name}{args} failed after {job_try} tries: {error}")
    await _push_dead_letter(ctx, function_name, args, error, job_try)
    return {"success": False, "error": str(error)}


async def _push_dead_letter(
    ctx: Dict[str, Any],
    function_name: str,
    args: Tuple[Any, ...],
    error: Exception,
    tries: int,
) -> None:
    redis = ctx.get("redis")
    if redis is None:
        return

    payload = json.dumps({
        "function": function_name,
        "args": list(args),
        "error": str(error),
        "tries": tries,
        "job_id": ctx.get("job_id"),
        "failed_at": utcnow().isoformat(),
    })

    try:
        await redis.lpush(settings.EXTRACTION_DEAD_LETTER_KEY, payload)
    except Exception as e:
        logger.error(f"Could not record dead letter for {function_name}{args}: {e}")
