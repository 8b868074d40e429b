"""Database models."""
from notifyhub.infra.db.models.user import UserModel
from notifyhub.infra.db.models.tenant import (
    TenantModel,
    TenantMemberModel,
    TenantSecurityConfigModel,
)
from notifyhub.infra.db.models.notification import NotificationModel, NotificationPreferenceModel
from notifyhub.infra.db.models.reminder_log import ReminderLogModel

__all__ = [
    "UserModel",
    "TenantModel",
    "TenantMemberModel",
    "TenantSecurityConfigModel",
    "NotificationModel",
    "NotificationPreferenceModel",
    "ReminderLogModel",
]
