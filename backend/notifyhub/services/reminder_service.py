"""Reminder campaigns: eligibility scans and per-recipient delivery.

Scans run daily per campaign. Each eligible subject gets at most one
``send_reminder`` job per stage: the ledger is checked before enqueueing and
the job id is deterministic, so the queue drops duplicates from a
concurrent or repeated scan. The ledger row is written after both channels
were attempted, whatever their outcome. A reminder that lands in the
recipient's quiet hours is not attempted: it is re-queued for when they end
and gets its ledger row then.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel, field_validator

from notifyhub.domain.common.types import as_naive_utc, utcnow
from notifyhub.domain.notifications.repositories import RecipientRepository
from notifyhub.domain.reminders.models import (
    TENANT_SCOPED,
    Campaign,
    JobType,
    ReminderLog,
    ReminderSubject,
    Stage,
    StageThresholds,
    reminder_job_id,
)
from notifyhub.domain.reminders.repositories import ReminderLogRepository, SubjectRepository
from notifyhub.domain.reminders.stages import days_remaining, select_stage
from notifyhub.infra.jobs.queue import JobQueue
from notifyhub.services.notification_configs import reminder_copy, render_email_html, render_email_text
from notifyhub.services.notification_hub import NotificationHub

logger = logging.getLogger(__name__)


class SendReminderPayload(BaseModel):
    """Payload of a send_reminder job."""

    type: Campaign
    stage: Stage
    tenant_id: str
    tenant_name: str
    user_id: Optional[str] = None
    recipient_user_id: str
    email: str
    first_name: Optional[str] = None
    deadline_at: datetime
    days_remaining: int

    @field_validator("stage")
    @classmethod
    def _real_stage(cls, value: Stage) -> Stage:
        if value is Stage.NONE:
            raise ValueError("stage 'none' is never delivered")
        return value

    @field_validator("deadline_at")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @classmethod
    def for_subject(cls, subject: ReminderSubject, stage: Stage, remaining: int) -> "SendReminderPayload":
        return cls(
            type=subject.campaign,
            stage=stage,
            tenant_id=subject.tenant_id,
            tenant_name=subject.tenant_name,
            user_id=subject.user_id,
            recipient_user_id=subject.recipient_user_id,
            email=subject.email,
            first_name=subject.first_name,
            deadline_at=subject.deadline_at,
            days_remaining=remaining,
        )

    def job_id(self) -> str:
        return reminder_job_id(self.type, self.user_id, self.tenant_id, self.stage)


def format_deadline(value: datetime) -> str:
    """e.g. 'March 7, 2026'."""
    return f"{value:%B} {value.day}, {value.year}"


class ReminderScanner:
    """Finds subjects due for a reminder stage and queues one delivery job each."""

    def __init__(
        self,
        subjects: SubjectRepository,
        ledger: ReminderLogRepository,
        queue: JobQueue,
        thresholds: StageThresholds = StageThresholds(),
        mfa_default_deadline_days: int = 7,
        phone_default_deadline_days: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.subjects = subjects
        self.ledger = ledger
        self.queue = queue
        self.thresholds = thresholds
        self.mfa_default_deadline_days = mfa_default_deadline_days
        self.phone_default_deadline_days = phone_default_deadline_days
        self.clock = clock

    async def scan_mfa(self, now: Optional[datetime] = None) -> int:
        return await self.scan(Campaign.MFA_ENABLEMENT, now)

    async def scan_phone(self, now: Optional[datetime] = None) -> int:
        return await self.scan(Campaign.PHONE_VERIFICATION, now)

    async def scan_trial(self, now: Optional[datetime] = None) -> int:
        return await self.scan(Campaign.TRIAL_EXPIRATION, now)

    async def scan_tenant_deletion(self, now: Optional[datetime] = None) -> int:
        return await self.scan(Campaign.TENANT_DELETION, now)

    async def _candidates(self, campaign: Campaign, now: datetime) -> list[ReminderSubject]:
        if campaign is Campaign.MFA_ENABLEMENT:
            return await self.subjects.mfa_candidates(self.mfa_default_deadline_days)
        if campaign is Campaign.PHONE_VERIFICATION:
            return await self.subjects.phone_candidates(self.phone_default_deadline_days)
        if campaign is Campaign.TRIAL_EXPIRATION:
            return await self.subjects.trial_candidates()
        return await self.subjects.deletion_candidates(now)

    async def scan(self, campaign: Campaign, now: Optional[datetime] = None) -> int:
        """Queue reminders for a campaign. Returns the number of newly queued jobs."""
        now = now or self.clock()
        queued = 0
        for subject in await self._candidates(campaign, now):
            remaining = days_remaining(subject.deadline_at, now)
            stage = select_stage(remaining, self.thresholds)
            if stage is Stage.NONE:
                continue
            if await self.ledger.exists(subject.user_id, subject.tenant_id, campaign, stage):
                continue
            payload = SendReminderPayload.for_subject(subject, stage, remaining)
            job_id = await self.queue.enqueue(
                JobType.SEND_REMINDER.value,
                payload.model_dump(mode="json"),
                job_id=subject.job_id(stage),
            )
            if job_id is not None:
                queued += 1
        logger.info("Queued %d %s reminder(s)", queued, campaign.value)
        return queued


class ReminderSender:
    """Delivers one reminder through the Hub and records it in the ledger."""

    def __init__(
        self,
        hub: NotificationHub,
        ledger: ReminderLogRepository,
        recipients: RecipientRepository,
        queue: JobQueue,
        brand: str,
        app_url: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.hub = hub
        self.ledger = ledger
        self.recipients = recipients
        self.queue = queue
        self.brand = brand
        self.app_url = app_url.rstrip("/")
        self.clock = clock

    async def send(self, payload: SendReminderPayload) -> Optional[ReminderLog]:
        """Send the reminder. Returns the ledger entry, or None when nothing was sent."""
        if await self.ledger.exists(payload.user_id, payload.tenant_id, payload.type, payload.stage):
            logger.info(
                "Skipping %s %s reminder for tenant %s: already sent",
                payload.type.value,
                payload.stage.value,
                payload.tenant_id,
            )
            return None

        recipient = await self.recipients.get_recipient(payload.recipient_user_id)
        if recipient is None:
            logger.warning(
                "Skipping %s %s reminder: user %s no longer exists",
                payload.type.value,
                payload.stage.value,
                payload.recipient_user_id,
            )
            return None

        deadline_date = format_deadline(payload.deadline_at)
        copy = reminder_copy(payload.type, payload.stage, payload.days_remaining, deadline_date)
        action_url = f"{self.app_url}{copy.action_route}"
        first_name = recipient.first_name or payload.first_name
        result = await self.hub.notify(
            user_id=recipient.user_id,
            tenant_id=payload.tenant_id,
            category=copy.category,
            type=copy.type,
            title=copy.title,
            message=copy.message,
            severity=copy.severity,
            email_subject=f"{copy.email_subject} - {self.brand}",
            email_html=render_email_html(self.brand, copy.title, copy.message, first_name, action_url, copy.action_label),
            email_text=render_email_text(copy.title, copy.message, first_name, action_url),
            action_route=copy.action_route,
            action_label=copy.action_label,
            metadata={
                "reminderType": payload.type.value,
                "stage": payload.stage.value,
                "deadlineAt": payload.deadline_at.isoformat(),
            },
            hold_when_quiet=True,
        )
        if result.deferred_until is not None:
            await self._hold(payload, result.deferred_until)
            return None

        now = self.clock()
        entry = ReminderLog.create(
            user_id=None if payload.type in TENANT_SCOPED else payload.user_id,
            tenant_id=payload.tenant_id,
            reminder_type=payload.type,
            stage=payload.stage,
            email_sent=result.email_sent,
            email_sent_at=now if result.email_sent else None,
            email_error=result.email_error,
            in_app_sent=result.in_app_sent,
            in_app_sent_at=now if result.in_app_sent else None,
            deadline_at=payload.deadline_at,
            metadata={
                "days_remaining": payload.days_remaining,
                "recipient_user_id": recipient.user_id,
                "in_app_error": result.in_app_error,
            },
            created_at=now,
        )
        recorded = await self.ledger.record(entry)
        logger.info(
            "Sent %s %s reminder to %s (email: %s, in-app: %s)",
            payload.type.value,
            payload.stage.value,
            recipient.email,
            result.email_sent,
            result.in_app_sent,
        )
        return entry if recorded else None

    async def _hold(self, payload: SendReminderPayload, until: datetime) -> None:
        """Re-queue the reminder for when the recipient's quiet hours end."""
        delay_ms = max(int((until - self.clock()).total_seconds() * 1000), 1)
        # Keyed by the resume time so repeated scans during one quiet period queue a single hold.
        resume_epoch = int(until.replace(tzinfo=timezone.utc).timestamp())
        job_id = await self.queue.enqueue(
            JobType.SEND_REMINDER.value,
            payload.model_dump(mode="json"),
            job_id=f"{payload.job_id()}-held-{resume_epoch}",
            delay_ms=delay_ms,
        )
        logger.info(
            "Holding %s %s reminder for tenant %s until %s (quiet hours)%s",
            payload.type.value,
            payload.stage.value,
            payload.tenant_id,
            until.isoformat(),
            "" if job_id else ", already held",
        )
