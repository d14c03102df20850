"""
In-process Task Queue

Fallback for when Redis is unavailable, or the only queue when
EXTRACTION_QUEUE_BACKEND is 'local'.

A bounded asyncio.Queue consumed by a fixed number of worker tasks.
Failed jobs are retried with exponential backoff
(EXTRACTION_RETRY_DELAY * 2**(try - 1)); jobs that exhaust
EXTRACTION_MAX_TRIES, and jobs submitted while the queue is full, land
in an in-memory dead-letter list.

Usage:
    queue = get_task_queue()
    await queue.start()
    queue.submit("process_message_attributes", process_message_attributes, user_id, message_id)
    ...
    await queue.stop()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from raggy.core.config import settings
from raggy.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

# Job functions take the same (ctx, *args) shape as ARQ functions
JobFunction = Callable[..., Awaitable[Any]]


@dataclass
class QueuedJob:
    name: str
    function: JobFunction
    args: Tuple[Any, ...] = ()
    job_id: Optional[str] = None
    tries: int = 0


@dataclass
class DeadLetter:
    name: str
    args: Tuple[Any, ...]
    error: str
    tries: int
    failed_at: Any = field(default_factory=utcnow)


class BackgroundTaskQueue:
    def __init__(
        self,
        maxsize: Optional[int] = None,
        workers: Optional[int] = None,
        max_tries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.maxsize = maxsize or settings.EXTRACTION_QUEUE_MAXSIZE
        self.worker_count = workers or settings.EXTRACTION_WORKERS
        self.max_tries = max_tries or settings.EXTRACTION_MAX_TRIES
        self.retry_delay = settings.EXTRACTION_RETRY_DELAY if retry_delay is None else retry_delay

        self.dead_letters: List[DeadLetter] = []
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._retries: set = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def qsize(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def start(self) -> None:
        if self.running:
            return

        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"raggy-queue-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"Local task queue started with {self.worker_count} workers")

    async def stop(self) -> None:
        """Cancel workers and pending retries. Queued jobs are dropped."""
        tasks = self._workers + list(self._retries)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._workers = []
        self._retries.clear()
        self._queue = None
        logger.info("Local task queue stopped")

    async def join(self) -> None:
        """Wait until every queued job, retries included, has finished."""
        while True:
            if self._queue is not None:
                await self._queue.join()
            if not self._retries:
                return
            await asyncio.gather(*list(self._retries), return_exceptions=True)

    # ============================================================
    # SUBMISSION
    # ============================================================

    def submit(
        self,
        name: str,
        function: JobFunction,
        *args: Any,
        job_id: Optional[str] = None,
    ) -> bool:
        """
        Queue a job without waiting for it.

        Returns:
            False when the queue was full and the job was dead-lettered
        """
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)

        return self._put(QueuedJob(name=name, function=function, args=args, job_id=job_id))

    def _put(self, job: QueuedJob) -> bool:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self._dead_letter(job, "queue full")
            return False
        return True

    # ============================================================
    # WORKERS
    # ============================================================

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._execute(job)
            finally:
                self._queue.task_done()

    async def _execute(self, job: QueuedJob) -> None:
        job.tries += 1
        ctx: Dict[str, Any] = {
            "job_id": job.job_id or f"local-{job.name}",
            "job_try": job.tries,
            "local": True,
        }

        try:
            await job.function(ctx, *job.args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if job.tries >= self.max_tries:
                self._dead_letter(job, str(e))
                return

            delay = self.backoff(job.tries)
            logger.warning(
                f"Job {job.name}{job.args} failed (try {job.tries}/{self.max_tries}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            self._schedule_retry(job, delay)

    def backoff(self, tries: int) -> float:
        return self.retry_delay * 2 ** (tries - 1)

    def _schedule_retry(self, job: QueuedJob, delay: float) -> None:
        async def _retry():
            await asyncio.sleep(delay)
            if self._queue is not None:
                self._put(job)

        task = asyncio.create_task(_retry())
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)

    def _dead_letter(self, job: QueuedJob, error: str) -> None:
        self.dead_letters.append(
            DeadLetter(name=job.name, args=job.args, error=error, tries=job.tries)
        )
        logger.error(f"Job {job.name}{job.args} dead-lettered after {job.tries} tries: {error}")


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_task_queue: Optional[BackgroundTaskQueue] = None


def get_task_queue() -> BackgroundTaskQueue:
    global _task_queue

    if _task_queue is None:
        _task_queue = BackgroundTaskQueue()

    return _task_queue


def set_task_queue(queue: Optional[BackgroundTaskQueue]) -> None:
    global _task_queue
    _task_queue = queue
