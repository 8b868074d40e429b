"""Notification and notification preference database models."""
from datetime import datetime
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from notifyhub.infra.db.base import Base, JSONType
from notifyhub.domain.notifications.models import (
    CategoryPreference,
    Notification,
    NotificationCategory,
    NotificationPreference,
    NotificationSeverity,
    NotificationType,
)


class NotificationModel(Base):
    """In-app notification, always scoped to one (user, tenant)."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_inbox", "user_id", "tenant_id", "created_at"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    type = Column(String, nullable=False)
    category = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    action_route = Column(String, nullable=True)
    action_label = Column(String, nullable=True)
    severity = Column(String, nullable=False, default=NotificationSeverity.INFO.value)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True, index=True)

    def to_entity(self) -> Notification:
        """Convert to domain entity."""
        return Notification(
            id=self.id,
            user_id=self.user_id,
            tenant_id=self.tenant_id,
            type=NotificationType(self.type),
            category=NotificationCategory(self.category),
            title=self.title,
            message=self.message,
            severity=NotificationSeverity(self.severity),
            action_route=self.action_route,
            action_label=self.action_label,
            metadata=dict(self.extra or {}),
            is_read=self.is_read,
            read_at=self.read_at,
            created_at=self.created_at,
            expires_at=self.expires_at,
        )

    @classmethod
    def from_entity(cls, entity: Notification) -> "NotificationModel":
        """Create from domain entity."""
        return cls(
            id=entity.id,
            user_id=entity.user_id,
            tenant_id=entity.tenant_id,
            type=entity.type.value,
            category=entity.category.value,
            title=entity.title,
            message=entity.message,
            action_route=entity.action_route,
            action_label=entity.action_label,
            severity=entity.severity.value,
            is_read=entity.is_read,
            read_at=entity.read_at,
            extra=entity.metadata or None,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
        )


class NotificationPreferenceModel(Base):
    """Notification preferences, one row per (user, tenant)."""

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_notification_preferences_user_tenant"),
        CheckConstraint("sound_volume BETWEEN 0 AND 100", name="ck_notification_preferences_volume"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    email_enabled = Column(Boolean, default=True, nullable=False)
    in_app_enabled = Column(Boolean, default=True, nullable=False)
    sound_enabled = Column(Boolean, default=True, nullable=False)
    sound_volume = Column(Integer, default=50, nullable=False)
    dnd_enabled = Column(Boolean, default=False, nullable=False)
    dnd_start_time = Column(String(5), nullable=True)  # HH:MM
    dnd_end_time = Column(String(5), nullable=True)  # HH:MM
    category_preferences = Column(JSONType, nullable=True)  # {"login_alert": {"email": false}}
    paused_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_entity(self) -> NotificationPreference:
        """Convert to domain entity. Unknown category keys from older rows are dropped."""
        overrides: dict[NotificationCategory, CategoryPreference] = {}
        for key, value in (self.category_preferences or {}).items():
            try:
                overrides[NotificationCategory(key)] = CategoryPreference.from_dict(value or {})
            except ValueError:
                continue
        return NotificationPreference(
            id=self.id,
            user_id=self.user_id,
            tenant_id=self.tenant_id,
            email_enabled=self.email_enabled,
            in_app_enabled=self.in_app_enabled,
            sound_enabled=self.sound_enabled,
            sound_volume=self.sound_volume,
            dnd_enabled=self.dnd_enabled,
            dnd_start_time=self.dnd_start_time,
            dnd_end_time=self.dnd_end_time,
            category_preferences=overrides,
            paused_until=self.paused_until,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_entity(cls, entity: NotificationPreference) -> "NotificationPreferenceModel":
        """Create from domain entity."""
        model = cls(id=entity.id, user_id=entity.user_id, tenant_id=entity.tenant_id, created_at=entity.created_at)
        model.apply(entity)
        return model

    def apply(self, entity: NotificationPreference) -> None:
        """Copy mutable fields from the entity."""
        self.email_enabled = entity.email_enabled
        self.in_app_enabled = entity.in_app_enabled
        self.sound_enabled = entity.sound_enabled
        self.sound_volume = entity.sound_volume
        self.dnd_enabled = entity.dnd_enabled
        self.dnd_start_time = entity.dnd_start_time
        self.dnd_end_time = entity.dnd_end_time
        self.category_preferences = {
            category.value: override.to_dict() for category, override in entity.category_preferences.items()
        }
        self.paused_until = entity.paused_until
        self.updated_at = entity.updated_at
