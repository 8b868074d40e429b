"""Reminder log (dedup ledger) database model."""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Text, UniqueConstraint

from notifyhub.infra.db.base import Base, JSONType
from notifyhub.domain.reminders.models import Campaign, ReminderLog, Stage


class ReminderLogModel(Base):
    """One attempted reminder stage per subject. Append-only."""

    __tablename__ = "reminder_logs"
    __table_args__ = (
        # subject_key encodes null user/tenant so the constraint also covers tenant-only subjects
        UniqueConstraint("subject_key", "reminder_type", "stage", name="uq_reminder_logs_subject_type_stage"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    tenant_id = Column(String, nullable=True, index=True)
    subject_key = Column(String, nullable=False)
    reminder_type = Column(String, nullable=False)
    stage = Column(String, nullable=False)
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime, nullable=True)
    email_error = Column(Text, nullable=True)
    in_app_sent = Column(Boolean, default=False, nullable=False)
    in_app_sent_at = Column(DateTime, nullable=True)
    deadline_at = Column(DateTime, nullable=True)
    extra = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_entity(self) -> ReminderLog:
        """Convert to domain entity."""
        return ReminderLog(
            id=self.id,
            user_id=self.user_id,
            tenant_id=self.tenant_id,
            reminder_type=Campaign(self.reminder_type),
            stage=Stage(self.stage),
            email_sent=self.email_sent,
            email_sent_at=self.email_sent_at,
            email_error=self.email_error,
            in_app_sent=self.in_app_sent,
            in_app_sent_at=self.in_app_sent_at,
            deadline_at=self.deadline_at,
            metadata=dict(self.extra or {}),
            created_at=self.created_at,
        )

    @classmethod
    def from_entity(cls, entity: ReminderLog) -> "ReminderLogModel":
        """Create from domain entity."""
        return cls(
            id=entity.id,
            user_id=entity.user_id,
            tenant_id=entity.tenant_id,
            subject_key=entity.subject_key,
            reminder_type=entity.reminder_type.value,
            stage=entity.stage.value,
            email_sent=entity.email_sent,
            email_sent_at=entity.email_sent_at,
            email_error=entity.email_error,
            in_app_sent=entity.in_app_sent,
            in_app_sent_at=entity.in_app_sent_at,
            deadline_at=entity.deadline_at,
            extra=entity.metadata or None,
            created_at=entity.created_at,
        )
