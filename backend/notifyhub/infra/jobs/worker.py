"""Queue consumer: bounded concurrency, rate limit, leases, retries."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from notifyhub.domain.common.types import generate_id
from notifyhub.infra.jobs.queue import Job, RedisJobQueue
from notifyhub.infra.messaging.redis_bus import RedisBus

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[None]]


class RateLimiter:
    """At most `max_jobs` per `duration_ms` fixed window, shared by every worker on the queue."""

    def __init__(self, bus: RedisBus, key: str, max_jobs: int, duration_ms: int):
        self.bus = bus
        self.key = key
        self.max_jobs = max_jobs
        self.duration_ms = duration_ms

    async def acquire(self) -> float:
        """Take a slot. Returns 0 when granted, else seconds until the window resets."""
        count, ttl_ms = await self.bus.increment_window(self.key, self.duration_ms)
        if count <= self.max_jobs:
            return 0.0
        return max(ttl_ms, 1) / 1000


class JobWorker:
    """Runs `concurrency` consumer coroutines plus a maintenance loop against one queue."""

    def __init__(
        self,
        queue: RedisJobQueue,
        handler: JobHandler,
        concurrency: int = 5,
        limiter: Optional[RateLimiter] = None,
        job_timeout: float = 120.0,
        poll_interval: float = 1.0,
        maintenance_interval: float = 5.0,
    ):
        self.queue = queue
        self.handler = handler
        self.concurrency = concurrency
        self.limiter = limiter
        self.job_timeout = job_timeout
        self.poll_interval = poll_interval
        self.maintenance_interval = maintenance_interval
        self.token = generate_id()
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def run(self) -> None:
        """Run until stop() is called; in-flight jobs finish before this returns."""
        logger.info("Worker %s started on queue %s (concurrency=%d)", self.token, self.queue.name, self.concurrency)
        self._tasks = [asyncio.create_task(self._consume(i), name=f"consumer-{i}") for i in range(self.concurrency)]
        self._tasks.append(asyncio.create_task(self._maintain(), name="maintenance"))
        try:
            await asyncio.gather(*self._tasks)
        finally:
            logger.info("Worker %s stopped", self.token)

    def stop(self) -> None:
        self._stopping.set()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _consume(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.process_next()
            except Exception:
                # Redis hiccup; back off and let the client reconnect.
                logger.exception("Consumer %d failed to fetch a job", index)
                processed = False
            if not processed:
                await self._sleep(self.poll_interval)

    async def _maintain(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_maintenance()
            except Exception:
                logger.exception("Queue maintenance failed")
            await self._sleep(self.maintenance_interval)

    async def run_maintenance(self, force_stalled_check: bool = False) -> None:
        """Promote delayed retries, recover stalled jobs and fire due triggers."""
        promoted = await self.queue.promote_delayed()
        if promoted:
            logger.debug("Promoted %d delayed jobs", promoted)
        await self.queue.recover_stalled(force=force_stalled_check)
        fired = await self.queue.fire_due_recurring()
        for job_id in fired:
            logger.info("Recurring trigger fired: %s", job_id)

    async def process_next(self) -> bool:
        """Reserve and run one job. Returns False when nothing was processed."""
        if not await self.queue.waiting_count():
            return False
        # Idle polls never take a rate-limit slot.
        if self.limiter is not None:
            wait = await self.limiter.acquire()
            if wait:
                logger.debug("Rate limit reached, waiting %.1fs", wait)
                await self._sleep(wait)
                return True
        job = await self.queue.reserve(self.token)
        if job is None:
            return False
        await self._run_job(job)
        return True

    async def _heartbeat(self, job: Job) -> None:
        interval = self.queue.options.lock_duration_ms / 2000
        while True:
            await asyncio.sleep(interval)
            if not await self.queue.extend_lock(job.id, self.token):
                logger.warning("Lost lease on job %s", job.id)
                return

    async def _run_job(self, job: Job) -> None:
        logger.info("Processing job %s (%s), attempt %d/%d", job.id, job.type, job.attempts_made, job.max_attempts)
        heartbeat = asyncio.create_task(self._heartbeat(job))
        try:
            await asyncio.wait_for(self.handler(job), timeout=self.job_timeout)
        except asyncio.TimeoutError:
            await self._fail(job, f"job timed out after {self.job_timeout:.0f}s")
        except Exception as e:
            logger.exception("Job %s (%s) failed", job.id, job.type)
            await self._fail(job, f"{type(e).__name__}: {e}")
        else:
            await self.queue.complete(job)
            logger.info("Job %s completed", job.id)
        finally:
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass

    async def _fail(self, job: Job, reason: str) -> None:
        delay = await self.queue.fail(job, reason)
        if delay is None:
            logger.error("Job %s (%s) moved to failed: %s", job.id, job.type, reason)
        else:
            logger.warning("Job %s will retry in %.1fs: %s", job.id, delay / 1000, reason)
