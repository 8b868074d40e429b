"""Daily reminder triggers and the manual trigger."""
import logging
import time
from dataclasses import dataclass
from typing import Callable

from notifyhub.domain.common.errors import ValidationError
from notifyhub.domain.reminders.models import JobType
from notifyhub.infra.jobs.queue import JobQueue, RecurringJob
from notifyhub.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyTrigger:
    """A recurring scan registered under a stable key."""
    key: str
    job_type: JobType
    cron: str


def daily_triggers(settings: Settings) -> list[DailyTrigger]:
    """The five daily scans, staggered across distinct UTC minutes."""
    return [
        DailyTrigger("mfa-reminders-daily", JobType.PROCESS_MFA_REMINDERS, settings.mfa_reminders_cron),
        DailyTrigger("phone-reminders-daily", JobType.PROCESS_PHONE_REMINDERS, settings.phone_reminders_cron),
        DailyTrigger("trial-reminders-daily", JobType.PROCESS_TRIAL_REMINDERS, settings.trial_reminders_cron),
        DailyTrigger("trial-expirations-daily", JobType.PROCESS_TRIAL_EXPIRATIONS, settings.trial_expirations_cron),
        DailyTrigger("tenant-deletions-daily", JobType.PROCESS_TENANT_DELETIONS, settings.tenant_deletions_cron),
    ]


MANUAL_TRIGGERS: dict[str, JobType] = {
    "mfa": JobType.PROCESS_MFA_REMINDERS,
    "phone": JobType.PROCESS_PHONE_REMINDERS,
    "trial": JobType.PROCESS_TRIAL_REMINDERS,
    "trial_expiration": JobType.PROCESS_TRIAL_EXPIRATIONS,
    "tenant_deletion": JobType.PROCESS_TENANT_DELETIONS,
}


class ReminderScheduler:
    """Registers the daily triggers and enqueues ad-hoc scans."""

    def __init__(
        self,
        queue: JobQueue,
        triggers: list[DailyTrigger],
        clock: Callable[[], float] = time.time,
    ):
        self.queue = queue
        self.triggers = triggers
        self.clock = clock

    async def setup_schedules(self) -> list[RecurringJob]:
        """Drop every registered trigger, then register the daily set.

        Keys are stable, so running this on every start never accumulates triggers.
        """
        for existing in await self.queue.list_recurring():
            await self.queue.remove_recurring(existing.key)
        registered = []
        for trigger in self.triggers:
            registered.append(
                await self.queue.add_recurring(trigger.key, trigger.job_type.value, trigger.cron, tz="UTC")
            )
        logger.info("Registered %d daily reminder triggers", len(registered))
        return registered

    async def list_schedules(self) -> list[RecurringJob]:
        return await self.queue.list_recurring()

    async def trigger_manual(self, kind: str) -> str:
        """Enqueue one scan now. Returns the job id."""
        job_type = MANUAL_TRIGGERS.get(kind)
        if job_type is None:
            raise ValidationError(
                f"Unknown reminder type {kind!r}; expected one of: {', '.join(MANUAL_TRIGGERS)}"
            )
        job_id = f"manual-{kind}-{int(self.clock() * 1000)}"
        await self.queue.enqueue(job_type.value, {"manual": True}, job_id=job_id)
        logger.info("Manual %s trigger queued as %s", kind, job_id)
        return job_id
