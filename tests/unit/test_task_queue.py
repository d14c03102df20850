"""Tests for the in-process BackgroundTaskQueue and the extraction task helpers."""

import asyncio

import pytest
from arq import Retry

from raggy.core.config import settings
from raggy.tasks.extraction_tasks import _retry_or_dead_letter, retry_delay
from raggy.tasks.queue import BackgroundTaskQueue


class TestBackgroundTaskQueue:
    """Tests for submission, retries and dead letters."""

    @pytest.fixture
    async def queue(self):
        queue = BackgroundTaskQueue(maxsize=10, workers=2, max_tries=3, retry_delay=0)
        await queue.start()
        yield queue
        await queue.stop()

    async def test_runs_jobs_with_context(self, queue):
        seen = []

        async def job(ctx, value):
            seen.append((ctx["job_id"], ctx["job_try"], ctx["local"], value))

        assert queue.submit("job", job, 42, job_id="job-1")
        await queue.join()

        assert seen == [("job-1", 1, True, 42)]

    async def test_failed_job_is_retried(self, queue):
        tries = []

        async def flaky(ctx):
            tries.append(ctx["job_try"])
            if ctx["job_try"] < 2:
                raise RuntimeError("transient")

        queue.submit("flaky", flaky)
        await queue.join()

        assert tries == [1, 2]
        assert queue.dead_letters == []

    async def test_exhausted_job_is_dead_lettered(self, queue):
        async def broken(ctx, user_id):
            raise RuntimeError("always fails")

        queue.submit("broken", broken, "user-1")
        await queue.join()

        assert len(queue.dead_letters) == 1
        letter = queue.dead_letters[0]
        assert letter.name == "broken"
        assert letter.args == ("user-1",)
        assert letter.tries == 3
        assert letter.error == "always fails"

    async def test_full_queue_dead_letters_immediately(self):
        queue = BackgroundTaskQueue(maxsize=1, workers=1, max_tries=1, retry_delay=0)

        async def job(ctx):
            pass

        # Not started: nothing consumes the first job
        assert queue.submit("first", job)
        assert not queue.submit("second", job)
        assert queue.dead_letters[0].error == "queue full"
        assert queue.qsize() == 1

    async def test_jobs_run_concurrently(self, queue):
        running = 0
        peak = 0

        async def job(ctx):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

        for _ in range(4):
            queue.submit("job", job)
        await queue.join()

        assert peak == 2

    def test_backoff_doubles(self):
        queue = BackgroundTaskQueue(retry_delay=1.5)
        assert [queue.backoff(t) for t in (1, 2, 3)] == [1.5, 3.0, 6.0]

    async def test_stop_and_restart(self, queue):
        await queue.stop()
        assert not queue.running

        await queue.start()
        assert queue.running


class FakeRedis:
    def __init__(self):
        self.lists = {}

    async def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)


class TestRetryOrDeadLetter:
    """Tests for ARQ-side failure handling."""

    async def test_local_queue_reraises(self):
        error = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await _retry_or_dead_letter({"local": True}, "fn", ("u",), error)

    async def test_arq_retries_with_backoff(self):
        with pytest.raises(Retry):
            await _retry_or_dead_letter({"job_try": 1}, "fn", ("u",), RuntimeError("boom"))

    async def test_last_try_goes_to_dead_letter_list(self):
        redis = FakeRedis()
        ctx = {"job_try": settings.EXTRACTION_MAX_TRIES, "redis": redis, "job_id": "j1"}

        result = await _retry_or_dead_letter(ctx, "fn", ("u", "m"), RuntimeError("boom"))

        assert result == {"success": False, "error": "boom"}
        assert len(redis.lists[settings.EXTRACTION_DEAD_LETTER_KEY]) == 1
        assert '"job_id": "j1"' in redis.lists[settings.EXTRACTION_DEAD_LETTER_KEY][0]

    def test_retry_delay(self, monkeypatch):
        monkeypatch.setattr(settings, "EXTRACTION_RETRY_DELAY", 2.0)
        assert [retry_delay(t) for t in (1, 2, 3)] == [2.0, 4.0, 8.0]
