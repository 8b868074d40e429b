"""Background job handlers, dispatched by job type."""
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError as PayloadError

from notifyhub.domain.reminders.models import JobType
from notifyhub.infra.jobs.queue import Job
from notifyhub.services.reminder_service import SendReminderPayload

if TYPE_CHECKING:
    from notifyhub.container import ServiceContainer, Services

logger = logging.getLogger(__name__)


async def process_send_reminder_job(services: "Services", job: Job) -> None:
    try:
        payload = SendReminderPayload.model_validate(job.payload)
    except PayloadError as e:
        # Retrying cannot fix a malformed payload; complete it so it can't block the queue.
        logger.warning("Malformed send_reminder payload in job %s, skipping: %s", job.id, e)
        return
    await services.sender.send(payload)


async def process_tenant_deletions_job(services: "Services", job: Job) -> None:
    queued = await services.scanner.scan_tenant_deletion()
    deleted = await services.lifecycle.process_pending_deletions()
    purged = await services.notifications.purge_expired()
    logger.info(
        "Tenant deletion job %s: %d reminders queued, %d tenants deleted, %d notifications purged",
        job.id,
        queued,
        deleted,
        purged,
    )


async def dispatch(services: "Services", job: Job) -> None:
    """Run one job. Exceptions propagate to the worker, which retries with backoff."""
    try:
        job_type = JobType(job.type)
    except ValueError:
        logger.warning("Unknown job type %r (job %s), completing without action", job.type, job.id)
        return

    if job_type is JobType.SEND_REMINDER:
        await process_send_reminder_job(services, job)
    elif job_type is JobType.PROCESS_MFA_REMINDERS:
        await services.scanner.scan_mfa()
    elif job_type is JobType.PROCESS_PHONE_REMINDERS:
        await services.scanner.scan_phone()
    elif job_type is JobType.PROCESS_TRIAL_REMINDERS:
        await services.scanner.scan_trial()
    elif job_type is JobType.PROCESS_TRIAL_EXPIRATIONS:
        await services.lifecycle.process_expired_trials()
    elif job_type is JobType.PROCESS_TENANT_DELETIONS:
        await process_tenant_deletions_job(services, job)


class JobDispatcher:
    """Worker handler: opens a DB session per job and dispatches on its type."""

    def __init__(self, container: "ServiceContainer"):
        self.container = container

    async def __call__(self, job: Job) -> None:
        async with self.container.session() as session:
            await dispatch(self.container.services(session), job)
