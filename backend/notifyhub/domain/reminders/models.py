"""Reminder campaign domain models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from notifyhub.domain.common.errors import ValidationError
from notifyhub.domain.common.types import generate_id, utcnow
from notifyhub.domain.notifications.models import NotificationCategory


class Campaign(str, Enum):
    """Recurring reminder campaign."""
    MFA_ENABLEMENT = "mfa_enablement"
    PHONE_VERIFICATION = "phone_verification"
    TRIAL_EXPIRATION = "trial_expiration"
    TENANT_DELETION = "tenant_deletion"


class Stage(str, Enum):
    """Escalation stage within a campaign."""
    NONE = "none"
    FIRST = "first"
    FINAL = "final"


class JobType(str, Enum):
    """Queue job types."""
    PROCESS_MFA_REMINDERS = "process_mfa_reminders"
    PROCESS_PHONE_REMINDERS = "process_phone_reminders"
    PROCESS_TRIAL_REMINDERS = "process_trial_reminders"
    PROCESS_TRIAL_EXPIRATIONS = "process_trial_expirations"
    PROCESS_TENANT_DELETIONS = "process_tenant_deletions"
    SEND_REMINDER = "send_reminder"


REMINDER_CATEGORIES: dict[tuple[Campaign, Stage], NotificationCategory] = {
    (Campaign.MFA_ENABLEMENT, Stage.FIRST): NotificationCategory.MFA_ENABLEMENT_FIRST,
    (Campaign.MFA_ENABLEMENT, Stage.FINAL): NotificationCategory.MFA_ENABLEMENT_FINAL,
    (Campaign.PHONE_VERIFICATION, Stage.FIRST): NotificationCategory.PHONE_VERIFICATION_FIRST,
    (Campaign.PHONE_VERIFICATION, Stage.FINAL): NotificationCategory.PHONE_VERIFICATION_FINAL,
    (Campaign.TRIAL_EXPIRATION, Stage.FIRST): NotificationCategory.TRIAL_EXPIRATION_FIRST,
    (Campaign.TRIAL_EXPIRATION, Stage.FINAL): NotificationCategory.TRIAL_EXPIRATION_FINAL,
    (Campaign.TENANT_DELETION, Stage.FIRST): NotificationCategory.TENANT_DELETION_FIRST,
    (Campaign.TENANT_DELETION, Stage.FINAL): NotificationCategory.TENANT_DELETION_FINAL,
}

# Job id prefixes; part of the persisted queue identity, do not rename.
JOB_ID_PREFIXES: dict[Campaign, str] = {
    Campaign.MFA_ENABLEMENT: "mfa-reminder",
    Campaign.PHONE_VERIFICATION: "phone-reminder",
    Campaign.TRIAL_EXPIRATION: "trial-reminder",
    Campaign.TENANT_DELETION: "deletion-reminder",
}

# Campaigns whose subject is the tenant alone (the owner only receives it).
TENANT_SCOPED = frozenset({Campaign.TRIAL_EXPIRATION, Campaign.TENANT_DELETION})


def category_for(campaign: Campaign, stage: Stage) -> NotificationCategory:
    """Notification category of a (campaign, stage) pair."""
    try:
        return REMINDER_CATEGORIES[(campaign, stage)]
    except KeyError:
        raise ValidationError(f"No reminder category for {campaign.value}/{stage.value}") from None


@dataclass(frozen=True)
class StageThresholds:
    """Days-remaining thresholds; final must not exceed first."""
    first: int = 3
    final: int = 1

    def __post_init__(self):
        if self.final < 0 or self.first < 0:
            raise ValidationError("Stage thresholds must be non-negative")
        if self.final > self.first:
            raise ValidationError("Final threshold must not exceed first threshold")


@dataclass
class ReminderSubject:
    """A user or tenant that still owes an action before a deadline."""
    campaign: Campaign
    tenant_id: str
    tenant_name: str
    recipient_user_id: str
    email: str
    deadline_at: datetime
    user_id: Optional[str] = None
    first_name: Optional[str] = None

    @property
    def subject_key(self) -> str:
        return subject_key(self.user_id, self.tenant_id)

    def job_id(self, stage: Stage) -> str:
        return reminder_job_id(self.campaign, self.user_id, self.tenant_id, stage)


def reminder_job_id(campaign: Campaign, user_id: Optional[str], tenant_id: str, stage: Stage) -> str:
    """Deterministic per-recipient job id; duplicates are dropped by the queue."""
    prefix = JOB_ID_PREFIXES[campaign]
    if campaign in TENANT_SCOPED:
        return f"{prefix}-{tenant_id}-{stage.value}"
    return f"{prefix}-{user_id}-{tenant_id}-{stage.value}"


def subject_key(user_id: Optional[str], tenant_id: Optional[str]) -> str:
    """Ledger identity of a subject; absent parts are encoded so the unique key holds."""
    return f"{user_id or '-'}:{tenant_id or '-'}"


@dataclass
class ReminderLog:
    """Dedup ledger entry: one reminder stage that was attempted."""
    id: str
    user_id: Optional[str]
    tenant_id: Optional[str]
    reminder_type: Campaign
    stage: Stage
    email_sent: bool = False
    email_sent_at: Optional[datetime] = None
    email_error: Optional[str] = None
    in_app_sent: bool = False
    in_app_sent_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def subject_key(self) -> str:
        return subject_key(self.user_id, self.tenant_id)

    @classmethod
    def create(
        cls,
        user_id: Optional[str],
        tenant_id: Optional[str],
        reminder_type: Campaign,
        stage: Stage,
        **fields: Any,
    ) -> "ReminderLog":
        return cls(
            id=generate_id(),
            user_id=user_id,
            tenant_id=tenant_id,
            reminder_type=reminder_type,
            stage=stage,
            **fields,
        )
