"""Notification domain models."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from notifyhub.domain.common.types import generate_id, utcnow


class NotificationCategory(str, Enum):
    """Closed set of notification categories."""
    # Security events
    LOGIN_ALERT = "login_alert"
    SUSPICIOUS_LOGIN = "suspicious_login"
    ACCOUNT_LOCKED = "account_locked"
    MFA_ENABLED = "mfa_enabled"
    MFA_DISABLED = "mfa_disabled"
    PASSWORD_CHANGED = "password_changed"
    SESSION_REVOKED = "session_revoked"
    BACKUP_CODES = "backup_codes"
    # Account and workspace events
    WELCOME = "welcome"
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_PUBLISHED = "workflow_published"
    TEAM_INVITATION = "team_invitation"
    INTEGRATION_FAILURE = "integration_failure"
    BILLING_EMAIL_CHANGED = "billing_email_changed"
    PRIMARY_CONTACT_CHANGED = "primary_contact_changed"
    MEMBER_JOINED = "member_joined"
    TENANT_DELETION_REQUESTED = "tenant_deletion_requested"
    TENANT_DELETION_CANCELLED = "tenant_deletion_cancelled"
    TRIAL_EXPIRED = "trial_expired"
    # Reminder campaigns
    MFA_ENABLEMENT_FIRST = "mfa_enablement_first"
    MFA_ENABLEMENT_FINAL = "mfa_enablement_final"
    PHONE_VERIFICATION_FIRST = "phone_verification_first"
    PHONE_VERIFICATION_FINAL = "phone_verification_final"
    TRIAL_EXPIRATION_FIRST = "trial_expiration_first"
    TRIAL_EXPIRATION_FINAL = "trial_expiration_final"
    TENANT_DELETION_FIRST = "tenant_deletion_first"
    TENANT_DELETION_FINAL = "tenant_deletion_final"


class NotificationType(str, Enum):
    """Notification type (inbox grouping)."""
    SECURITY = "security"
    SYSTEM = "system"
    WORKFLOW = "workflow"
    TEAM = "team"
    INTEGRATION = "integration"


class NotificationSeverity(str, Enum):
    """Notification severity."""
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    SUCCESS = "success"


class Channel(str, Enum):
    """Delivery channel."""
    EMAIL = "email"
    IN_APP = "in_app"
    SOUND = "sound"


class AlertPolicy(str, Enum):
    """Whether a category can be silenced by preferences."""
    ALWAYS_SEND = "always_send"
    ALLOW_DISABLE = "allow_disable"


class PauseDuration(str, Enum):
    """Preset pause durations."""
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"
    EIGHT_HOURS = "8h"
    ONE_DAY = "24h"
    CUSTOM = "custom"


PAUSE_DURATIONS: dict[PauseDuration, timedelta] = {
    PauseDuration.ONE_HOUR: timedelta(hours=1),
    PauseDuration.FOUR_HOURS: timedelta(hours=4),
    PauseDuration.EIGHT_HOURS: timedelta(hours=8),
    PauseDuration.ONE_DAY: timedelta(hours=24),
}


@dataclass
class CategoryPreference:
    """Per-category channel overrides. None means 'follow the global toggle'."""
    email: Optional[bool] = None
    in_app: Optional[bool] = None
    sound: Optional[bool] = None

    def for_channel(self, channel: Channel) -> Optional[bool]:
        return getattr(self, channel.value)

    def to_dict(self) -> dict[str, bool]:
        return {k: v for k, v in (("email", self.email), ("in_app", self.in_app), ("sound", self.sound)) if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoryPreference":
        return cls(
            email=data.get("email"),
            in_app=data.get("in_app", data.get("inApp")),
            sound=data.get("sound"),
        )


@dataclass
class NotificationPreference:
    """Notification preferences for one (user, tenant) pair."""
    id: str
    user_id: str
    tenant_id: str
    email_enabled: bool = True
    in_app_enabled: bool = True
    sound_enabled: bool = True
    sound_volume: int = 50
    dnd_enabled: bool = False
    dnd_start_time: Optional[str] = None
    dnd_end_time: Optional[str] = None
    category_preferences: dict[NotificationCategory, CategoryPreference] = field(default_factory=dict)
    paused_until: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def default(cls, user_id: str, tenant_id: str) -> "NotificationPreference":
        """Create the default preference row (every channel on)."""
        return cls(id=generate_id(), user_id=user_id, tenant_id=tenant_id)

    def channel_toggle(self, channel: Channel) -> bool:
        if channel is Channel.EMAIL:
            return self.email_enabled
        if channel is Channel.IN_APP:
            return self.in_app_enabled
        return self.sound_enabled


@dataclass
class Notification:
    """In-app notification domain model."""
    id: str
    user_id: str
    tenant_id: str
    type: NotificationType
    category: NotificationCategory
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    action_route: Optional[str] = None
    action_label: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        user_id: str,
        tenant_id: str,
        type: NotificationType,
        category: NotificationCategory,
        title: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.INFO,
        action_route: Optional[str] = None,
        action_label: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        retention_days: int = 90,
        now: Optional[datetime] = None,
    ) -> "Notification":
        """Create a new unread notification expiring after the retention window."""
        created = now or utcnow()
        return cls(
            id=generate_id(),
            user_id=user_id,
            tenant_id=tenant_id,
            type=type,
            category=category,
            title=title,
            message=message,
            severity=severity,
            action_route=action_route,
            action_label=action_label,
            metadata=dict(metadata or {}),
            created_at=created,
            expires_at=created + timedelta(days=retention_days),
        )


@dataclass
class NotificationPage:
    """One page of notifications."""
    items: list[Notification]
    has_more: bool
    next_cursor: Optional[str]


@dataclass
class NotifyResult:
    """Outcome of a Hub delivery; never raised, always returned."""
    email_sent: bool = False
    email_error: Optional[str] = None
    in_app_sent: bool = False
    in_app_error: Optional[str] = None
    notification_id: Optional[str] = None
    # Set when delivery was held back for quiet hours instead of attempted.
    deferred_until: Optional[datetime] = None


@dataclass
class Recipient:
    """Contact details of a notification recipient."""
    user_id: str
    email: str
    first_name: Optional[str] = None
