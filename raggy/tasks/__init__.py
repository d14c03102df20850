"""
Background Tasks Module

Attribute extraction runs off the request path.

How jobs flow:
-------------
1. A user message is written; the chat service calls
   on_user_message_created(user_id, message_id)
2. The job goes to Redis through ARQ (EXTRACTION_QUEUE_BACKEND='arq'),
   or to the in-process BackgroundTaskQueue when Redis is unreachable
   or the backend is 'local'
3. A worker runs process_message_attributes(ctx, user_id, message_id)

Enqueueing never raises: the message write has already succeeded and
extraction is best-effort.

Running Workers:
---------------
    arq raggy.worker.WorkerSettings
"""

import logging
from uuid import UUID

from raggy.core.config import settings
from raggy.db.redis import get_arq_pool
from raggy.tasks.extraction_tasks import (
    catch_up_attribute_extraction,
    extract_user_attributes,
    process_message_attributes,
)
from raggy.tasks.queue import BackgroundTaskQueue, get_task_queue, set_task_queue

logger = logging.getLogger(__name__)


async def enqueue_attribute_extraction(user_id: str, message_id: UUID) -> str:
    """
    Queue the extraction fast path for a new user message.

    Returns:
        Where the job went: 'arq', 'local' or 'dead_letter' (local queue full)
    """
    job_id = f"extract:{user_id}:{message_id}"

    if settings.EXTRACTION_QUEUE_BACKEND == "arq":
        try:
            pool = await get_arq_pool()
            await pool.enqueue_job(
                "process_message_attributes",
                user_id,
                str(message_id),
                _job_id=job_id,
            )
            logger.info(f"Message {message_id} queued for attribute extraction (ARQ)")
            return "arq"
        except Exception as e:
            logger.warning(
                f"ARQ queue unavailable ({e}), "
                f"falling back to in-process extraction for {message_id}"
            )

    queue = get_task_queue()
    if not queue.running:
        await queue.start()

    accepted = queue.submit(
        "process_message_attributes",
        process_message_attributes,
        user_id,
        str(message_id),
        job_id=job_id,
    )
    return "local" if accepted else "dead_letter"


# Trigger called whenever a user-role message is created
on_user_message_created = enqueue_attribute_extraction

__all__ = [
    "BackgroundTaskQueue",
    "catch_up_attribute_extraction",
    "enqueue_attribute_extraction",
    "extract_user_attributes",
    "get_task_queue",
    "on_user_message_created",
    "process_message_attributes",
    "set_task_queue",
]
