"""Tests for daily trigger registration and manual triggers."""
import pytest

from notifyhub.domain.common.errors import ValidationError
from notifyhub.domain.reminders.models import JobType
from notifyhub.infra.jobs.queue import RedisJobQueue
from notifyhub.services.scheduler import MANUAL_TRIGGERS, ReminderScheduler, daily_triggers

EXPECTED_KEYS = [
    "mfa-reminders-daily",
    "phone-reminders-daily",
    "trial-reminders-daily",
    "trial-expirations-daily",
    "tenant-deletions-daily",
]


@pytest.fixture
def scheduler(redis_client, settings) -> ReminderScheduler:
    queue = RedisJobQueue(redis_client, name="sched")
    return ReminderScheduler(queue, daily_triggers(settings), clock=lambda: 1_767_225_600.0)


class TestDailyTriggers:
    """Registration of the daily scans."""

    def test_triggers_use_distinct_minutes(self, settings):
        triggers = daily_triggers(settings)
        assert [t.key for t in triggers] == EXPECTED_KEYS
        assert len({t.cron for t in triggers}) == len(triggers)

    async def test_setup_is_idempotent(self, scheduler):
        await scheduler.setup_schedules()
        await scheduler.setup_schedules()
        schedules = await scheduler.list_schedules()
        assert sorted(s.key for s in schedules) == sorted(EXPECTED_KEYS)
        assert all(s.next_run_at is not None for s in schedules)

    async def test_setup_drops_stale_triggers(self, scheduler):
        await scheduler.queue.add_recurring("legacy-hourly", "process_mfa_reminders", "0 * * * *")
        await scheduler.setup_schedules()
        keys = {s.key for s in await scheduler.list_schedules()}
        assert "legacy-hourly" not in keys


class TestManualTrigger:
    """Ad-hoc scans."""

    async def test_trigger_enqueues_scan(self, scheduler):
        job_id = await scheduler.trigger_manual("mfa")
        assert job_id == "manual-mfa-1767225600000"
        job = await scheduler.queue.get_job(job_id)
        assert job.type == JobType.PROCESS_MFA_REMINDERS.value

    async def test_every_kind_is_supported(self, scheduler):
        for kind in MANUAL_TRIGGERS:
            assert (await scheduler.trigger_manual(kind)).startswith(f"manual-{kind}-")

    async def test_unknown_kind(self, scheduler):
        with pytest.raises(ValidationError):
            await scheduler.trigger_manual("sms")
