"""Durable Redis job queue.

Layout (all keys under ``notifyhub:{queue}:``):

* ``job:{id}``      hash with the job fields; its existence is the dedup record
* ``waiting``       list, consumed from the right
* ``active``        list of reserved jobs, each guarded by ``lock:{id}``
* ``delayed``       zset of jobs waiting out a retry backoff or a hold (score = ready at, ms)
* ``failed``        zset of permanently failed jobs (score = failed at, ms)
* ``completed``     list of recently completed ids
* ``stalled``       set of active ids without a lock at the previous check
* ``repeat`` / ``repeat:next``  recurring trigger definitions and next fire times
"""
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import redis.asyncio as redis
from apscheduler.triggers.cron import CronTrigger
from redis.exceptions import WatchError

from notifyhub.domain.common.errors import ValidationError
from notifyhub.domain.common.types import generate_id
from notifyhub.settings import Settings

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    """Job lifecycle state."""
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """A queued unit of work."""
    id: str
    type: str
    payload: dict[str, Any]
    state: JobState
    attempts_made: int
    max_attempts: int
    backoff_ms: int
    created_at: int
    failed_reason: Optional[str] = None
    stalled_count: int = 0

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> "Job":
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            payload=json.loads(data.get("payload") or "{}"),
            state=JobState(data.get("state", JobState.WAITING.value)),
            attempts_made=int(data.get("attempts_made", 0)),
            max_attempts=int(data.get("max_attempts", 1)),
            backoff_ms=int(data.get("backoff_ms", 0)),
            created_at=int(data.get("created_at", 0)),
            failed_reason=data.get("failed_reason"),
            stalled_count=int(data.get("stalled_count", 0)),
        )


@dataclass
class RecurringJob:
    """A cron-driven trigger that enqueues one job per fire time."""
    key: str
    job_type: str
    cron: str
    timezone: str = "UTC"
    payload: dict[str, Any] = field(default_factory=dict)
    next_run_at: Optional[datetime] = None


@dataclass
class QueueOptions:
    """Default job options and retention."""
    attempts: int = 3
    backoff_ms: int = 5_000
    lock_duration_ms: int = 30_000
    stalled_interval_ms: int = 30_000
    max_stalled_count: int = 1
    remove_on_complete_age_s: int = 24 * 3600
    remove_on_complete_count: int = 1000
    remove_on_fail_age_s: int = 7 * 24 * 3600
    remove_on_fail_count: int = 5000

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueueOptions":
        return cls(
            attempts=settings.job_attempts,
            backoff_ms=settings.job_backoff_ms,
            lock_duration_ms=settings.lock_duration_ms,
            stalled_interval_ms=settings.stalled_interval_ms,
            max_stalled_count=settings.max_stalled_count,
            remove_on_complete_age_s=settings.remove_on_complete_age_s,
            remove_on_complete_count=settings.remove_on_complete_count,
            remove_on_fail_age_s=settings.remove_on_fail_age_s,
            remove_on_fail_count=settings.remove_on_fail_count,
        )


def backoff_delay_ms(base_ms: int, attempt: int) -> int:
    """Exponential backoff: base * 2^(attempt-1)."""
    return base_ms * (2 ** max(attempt - 1, 0))


def next_fire_time(cron: str, tz: str, after: datetime) -> datetime:
    """First fire time of a crontab expression strictly after `after` (aware)."""
    try:
        trigger = CronTrigger.from_crontab(cron, timezone=tz)
    except ValueError as e:
        raise ValidationError(f"Invalid cron expression {cron!r}: {e}") from e
    fire = trigger.get_next_fire_time(None, after + timedelta(milliseconds=1))
    if fire is None:
        raise ValidationError(f"Cron expression {cron!r} never fires")
    return fire


class JobQueue(Protocol):
    """Job queue protocol."""

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        job_id: Optional[str] = None,
        attempts: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        delay_ms: int = 0,
    ) -> Optional[str]:
        """Enqueue a job; returns its id, or None when a job with that id already exists."""
        ...

    async def add_recurring(
        self, key: str, job_type: str, cron: str, payload: Optional[dict[str, Any]] = None, tz: str = "UTC"
    ) -> RecurringJob:
        ...

    async def list_recurring(self) -> list[RecurringJob]:
        ...

    async def remove_recurring(self, key: str) -> bool:
        ...


class RedisJobQueue:
    """Redis-based durable job queue with retries, leases and recurring triggers."""

    def __init__(
        self,
        client: redis.Redis,
        name: str = "reminders",
        options: Optional[QueueOptions] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = client
        self.name = name
        self.options = options or QueueOptions()
        self._clock = clock

    # keys

    def _key(self, *parts: str) -> str:
        return ":".join(("notifyhub", self.name) + parts)

    def _job_key(self, job_id: str) -> str:
        return self._key("job", job_id)

    def _lock_key(self, job_id: str) -> str:
        return self._key("lock", job_id)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # producing

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        job_id: Optional[str] = None,
        attempts: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        delay_ms: int = 0,
    ) -> Optional[str]:
        """Enqueue a job. A job id that still exists (in any state) is a no-op.

        With `delay_ms` the job waits in the delayed set until it is due.
        """
        job_id = job_id or generate_id()
        job_key = self._job_key(job_id)
        fields = {
            "id": job_id,
            "type": job_type,
            "payload": json.dumps(payload),
            "state": (JobState.DELAYED if delay_ms > 0 else JobState.WAITING).value,
            "attempts_made": 0,
            "max_attempts": attempts if attempts is not None else self.options.attempts,
            "backoff_ms": backoff_ms if backoff_ms is not None else self.options.backoff_ms,
            "created_at": self._now_ms(),
            "stalled_count": 0,
        }
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(job_key)
                if await pipe.exists(job_key):
                    logger.debug("Job %s already exists, not enqueued", job_id)
                    return None
                pipe.multi()
                pipe.hset(job_key, mapping=fields)
                if delay_ms > 0:
                    pipe.zadd(self._key("delayed"), {job_id: self._now_ms() + delay_ms})
                else:
                    pipe.lpush(self._key("waiting"), job_id)
                await pipe.execute()
            except WatchError:
                logger.debug("Job %s enqueued concurrently, not enqueued", job_id)
                return None
        logger.info("Enqueued %s job %s", job_type, job_id)
        return job_id

    async def get_job(self, job_id: str) -> Optional[Job]:
        data = await self.redis.hgetall(self._job_key(job_id))
        return Job.from_hash(data) if data else None

    # consuming

    async def reserve(self, token: str) -> Optional[Job]:
        """Move the oldest waiting job to active and take its lease."""
        job_id = await self.redis.lmove(self._key("waiting"), self._key("active"), "RIGHT", "LEFT")
        if job_id is None:
            return None
        job_key = self._job_key(job_id)
        if not await self.redis.exists(job_key):
            # Hash expired while the id sat in a list.
            await self.redis.lrem(self._key("active"), 1, job_id)
            return None
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self._lock_key(job_id), token, px=self.options.lock_duration_ms)
            pipe.hset(job_key, mapping={"state": JobState.ACTIVE.value, "processed_at": self._now_ms()})
            pipe.hincrby(job_key, "attempts_made", 1)
            pipe.hgetall(job_key)
            results = await pipe.execute()
        return Job.from_hash(results[-1])

    async def extend_lock(self, job_id: str, token: str) -> bool:
        """Refresh the lease; False if another worker took the job over."""
        lock_key = self._lock_key(job_id)
        if await self.redis.get(lock_key) != token:
            return False
        return bool(await self.redis.pexpire(lock_key, self.options.lock_duration_ms))

    async def _release(self, job_id: str) -> bool:
        """Drop the job from active; False if stalled recovery already moved it."""
        removed = await self.redis.lrem(self._key("active"), 1, job_id)
        await self.redis.delete(self._lock_key(job_id))
        if not removed:
            logger.warning("Job %s was no longer active (lease lost); outcome not recorded", job_id)
        return bool(removed)

    async def complete(self, job: Job) -> None:
        if not await self._release(job.id):
            return
        now = self._now_ms()
        completed = self._key("completed")
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._job_key(job.id), mapping={"state": JobState.COMPLETED.value, "finished_at": now})
            pipe.expire(self._job_key(job.id), self.options.remove_on_complete_age_s)
            pipe.lpush(completed, job.id)
            await pipe.execute()
        overflow = await self.redis.lrange(completed, self.options.remove_on_complete_count, -1)
        if overflow:
            await self.redis.delete(*(self._job_key(job_id) for job_id in overflow))
            await self.redis.ltrim(completed, 0, self.options.remove_on_complete_count - 1)

    async def fail(self, job: Job, error: str) -> Optional[int]:
        """Record a failed attempt. Returns the retry delay in ms, or None when the job failed for good."""
        if not await self._release(job.id):
            return None
        if job.attempts_made < job.max_attempts:
            delay = backoff_delay_ms(job.backoff_ms, job.attempts_made)
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job.id), mapping={"state": JobState.DELAYED.value, "failed_reason": error})
                pipe.zadd(self._key("delayed"), {job.id: self._now_ms() + delay})
                await pipe.execute()
            return delay
        await self._move_to_failed(job.id, error)
        return None

    async def _move_to_failed(self, job_id: str, error: str) -> None:
        now = self._now_ms()
        failed = self._key("failed")
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(
                self._job_key(job_id),
                mapping={"state": JobState.FAILED.value, "failed_reason": error, "finished_at": now},
            )
            pipe.expire(self._job_key(job_id), self.options.remove_on_fail_age_s)
            pipe.zadd(failed, {job_id: now})
            pipe.zremrangebyscore(failed, 0, now - self.options.remove_on_fail_age_s * 1000)
            await pipe.execute()
        excess = await self.redis.zcard(failed) - self.options.remove_on_fail_count
        if excess > 0:
            oldest = await self.redis.zrange(failed, 0, excess - 1)
            await self.redis.zrem(failed, *oldest)
            await self.redis.delete(*(self._job_key(old_id) for old_id in oldest))

    # maintenance

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose backoff elapsed back to waiting."""
        ready = await self.redis.zrangebyscore(self._key("delayed"), 0, self._now_ms())
        promoted = 0
        for job_id in ready:
            # zrem is the claim; only one worker promotes a given job
            if await self.redis.zrem(self._key("delayed"), job_id):
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                    pipe.lpush(self._key("waiting"), job_id)
                    await pipe.execute()
                promoted += 1
        return promoted

    async def recover_stalled(self, force: bool = False) -> tuple[list[str], list[str]]:
        """Requeue active jobs whose lease expired.

        A job is stalled when it had no lock at the previous check and still has
        none now, which leaves a live worker at least one interval to take its lock.
        Returns (requeued ids, failed ids).
        """
        if not force:
            claimed = await self.redis.set(
                self._key("stalled-check"), "1", nx=True, px=self.options.stalled_interval_ms
            )
            if not claimed:
                return [], []
        stalled_key = self._key("stalled")
        candidates = await self.redis.smembers(stalled_key)
        await self.redis.delete(stalled_key)

        requeued: list[str] = []
        failed: list[str] = []
        for job_id in candidates:
            if await self.redis.exists(self._lock_key(job_id)):
                continue
            if not await self.redis.lrem(self._key("active"), 1, job_id):
                continue
            count = await self.redis.hincrby(self._job_key(job_id), "stalled_count", 1)
            if count > self.options.max_stalled_count:
                await self._move_to_failed(job_id, "job stalled more than allowable limit")
                failed.append(job_id)
                logger.error("Job %s stalled %d times, moved to failed", job_id, count)
                continue
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                pipe.rpush(self._key("waiting"), job_id)
                await pipe.execute()
            requeued.append(job_id)
            logger.warning("Job %s stalled, moved back to waiting", job_id)

        unlocked = [
            job_id
            for job_id in await self.redis.lrange(self._key("active"), 0, -1)
            if not await self.redis.exists(self._lock_key(job_id))
        ]
        if unlocked:
            await self.redis.sadd(stalled_key, *unlocked)
        return requeued, failed

    # recurring triggers

    async def add_recurring(
        self, key: str, job_type: str, cron: str, payload: Optional[dict[str, Any]] = None, tz: str = "UTC"
    ) -> RecurringJob:
        """Register (or replace) a recurring trigger under a stable key."""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        fire = next_fire_time(cron, tz, now - timedelta(milliseconds=1))
        definition = {"job_type": job_type, "cron": cron, "tz": tz, "payload": payload or {}}
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._key("repeat"), key, json.dumps(definition))
            pipe.zadd(self._key("repeat:next"), {key: int(fire.timestamp() * 1000)})
            await pipe.execute()
        return RecurringJob(key=key, job_type=job_type, cron=cron, timezone=tz, payload=payload or {}, next_run_at=fire)

    async def remove_recurring(self, key: str) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hdel(self._key("repeat"), key)
            pipe.zrem(self._key("repeat:next"), key)
            removed, _ = await pipe.execute()
        return bool(removed)

    async def list_recurring(self) -> list[RecurringJob]:
        definitions = await self.redis.hgetall(self._key("repeat"))
        jobs = []
        for key, raw in sorted(definitions.items()):
            data = json.loads(raw)
            score = await self.redis.zscore(self._key("repeat:next"), key)
            jobs.append(
                RecurringJob(
                    key=key,
                    job_type=data["job_type"],
                    cron=data["cron"],
                    timezone=data.get("tz", "UTC"),
                    payload=data.get("payload") or {},
                    next_run_at=datetime.fromtimestamp(score / 1000, tz=timezone.utc) if score is not None else None,
                )
            )
        return jobs

    async def fire_due_recurring(self) -> list[str]:
        """Enqueue one job per due trigger. Job ids embed the fire time, so
        workers racing on the same trigger produce a single job."""
        now_ms = self._now_ms()
        next_key = self._key("repeat:next")
        enqueued: list[str] = []
        for key, score in await self.redis.zrangebyscore(next_key, 0, now_ms, withscores=True):
            raw = await self.redis.hget(self._key("repeat"), key)
            if raw is None:
                await self.redis.zrem(next_key, key)
                continue
            data = json.loads(raw)
            fire_ms = int(score)
            job_id = await self.enqueue(data["job_type"], data.get("payload") or {}, job_id=f"repeat:{key}:{fire_ms}")
            if job_id:
                enqueued.append(job_id)
            # Missed fire times while no worker ran are skipped, not replayed.
            after = datetime.fromtimestamp(max(fire_ms, now_ms) / 1000, tz=timezone.utc)
            upcoming = next_fire_time(data["cron"], data.get("tz", "UTC"), after)
            await self.redis.zadd(next_key, {key: int(upcoming.timestamp() * 1000)}, xx=True)
        return enqueued

    # inspection

    async def waiting_count(self) -> int:
        return await self.redis.llen(self._key("waiting"))

    async def counts(self) -> dict[str, int]:
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.llen(self._key("waiting"))
            pipe.llen(self._key("active"))
            pipe.zcard(self._key("delayed"))
            pipe.llen(self._key("completed"))
            pipe.zcard(self._key("failed"))
            waiting, active, delayed, completed, failed = await pipe.execute()
        return {
            JobState.WAITING.value: waiting,
            JobState.ACTIVE.value: active,
            JobState.DELAYED.value: delayed,
            JobState.COMPLETED.value: completed,
            JobState.FAILED.value: failed,
        }

    async def list_failed(self, limit: int = 50) -> list[Job]:
        ids = await self.redis.zrevrange(self._key("failed"), 0, limit - 1)
        jobs = []
        for job_id in ids:
            job = await self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs
