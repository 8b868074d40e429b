"""Notification repository interfaces."""
from datetime import datetime
from typing import Optional, Protocol

from notifyhub.domain.notifications.models import (
    Notification,
    NotificationPreference,
    Recipient,
)


class NotificationRepository(Protocol):
    """Notification store."""

    async def create(self, notification: Notification) -> Notification:
        ...

    async def get(self, notification_id: str, user_id: str, tenant_id: str) -> Optional[Notification]:
        ...

    async def list_page(
        self,
        user_id: str,
        tenant_id: str,
        limit: int,
        cursor: Optional[Notification] = None,
        unread_only: bool = False,
        now: Optional[datetime] = None,
    ) -> list[Notification]:
        """Newest first, strictly after `cursor`; returns up to `limit` rows."""
        ...

    async def count_unread(self, user_id: str, tenant_id: str, now: Optional[datetime] = None) -> int:
        ...

    async def mark_read(self, notification_id: str, user_id: str, tenant_id: str, read_at: datetime) -> bool:
        ...

    async def mark_all_read(self, user_id: str, tenant_id: str, read_at: datetime) -> int:
        ...

    async def delete(self, notification_id: str, user_id: str, tenant_id: str) -> bool:
        ...

    async def purge_expired(self, now: datetime) -> int:
        ...


class PreferenceRepository(Protocol):
    """Per (user, tenant) preference store."""

    async def get(self, user_id: str, tenant_id: str) -> Optional[NotificationPreference]:
        ...

    async def insert(self, preference: NotificationPreference) -> bool:
        """Insert; False when a row for the pair already exists."""
        ...

    async def update(self, preference: NotificationPreference) -> NotificationPreference:
        ...


class RecipientRepository(Protocol):
    """Resolves contact details of users."""

    async def get_recipient(self, user_id: str) -> Optional[Recipient]:
        ...
