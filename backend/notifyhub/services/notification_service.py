"""Notification store and preference services."""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from notifyhub.domain.common.errors import NotFoundError, ValidationError
from notifyhub.domain.common.types import as_naive_utc, utcnow
from notifyhub.domain.notifications.models import (
    PAUSE_DURATIONS,
    CategoryPreference,
    Channel,
    Notification,
    NotificationCategory,
    NotificationPage,
    NotificationPreference,
    NotificationSeverity,
    NotificationType,
    PauseDuration,
)
from notifyhub.domain.notifications.policy import as_category, is_always_send, is_channel_enabled
from notifyhub.domain.notifications.quiet_hours import is_paused, is_quiet, parse_time_of_day, quiet_until
from notifyhub.domain.notifications.repositories import NotificationRepository, PreferenceRepository

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_limit(limit: Optional[int]) -> int:
    """Page size: default 20, capped at 100."""
    if not limit or limit < 1:
        return DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE)


class NotificationService:
    """In-app notification store operations, always scoped to (user, tenant)."""

    def __init__(
        self,
        repo: NotificationRepository,
        retention_days: int = 90,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.retention_days = retention_days
        self.clock = clock

    async def create(
        self,
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
    ) -> Notification:
        notification = Notification.create(
            user_id=user_id,
            tenant_id=tenant_id,
            type=type,
            category=as_category(category),
            title=title,
            message=message,
            severity=severity,
            action_route=action_route,
            action_label=action_label,
            metadata=metadata,
            retention_days=self.retention_days,
            now=self.clock(),
        )
        return await self.repo.create(notification)

    async def list(
        self,
        user_id: str,
        tenant_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        unread_only: bool = False,
    ) -> NotificationPage:
        """Newest-first page. Fetches one extra row to know whether more exist."""
        size = clamp_limit(limit)
        cursor_item = None
        if cursor:
            cursor_item = await self.repo.get(cursor, user_id, tenant_id)
            if cursor_item is None:
                raise NotFoundError("Notification", cursor)
        rows = await self.repo.list_page(
            user_id,
            tenant_id,
            limit=size + 1,
            cursor=cursor_item,
            unread_only=unread_only,
            now=self.clock(),
        )
        has_more = len(rows) > size
        items = rows[:size]
        return NotificationPage(
            items=items,
            has_more=has_more,
            next_cursor=items[-1].id if has_more and items else None,
        )

    async def unread_count(self, user_id: str, tenant_id: str) -> int:
        return await self.repo.count_unread(user_id, tenant_id, now=self.clock())

    async def mark_read(self, notification_id: str, user_id: str, tenant_id: str) -> Notification:
        """Mark one of the user's notifications read."""
        if not await self.repo.mark_read(notification_id, user_id, tenant_id, read_at=self.clock()):
            raise NotFoundError("Notification", notification_id)
        notification = await self.repo.get(notification_id, user_id, tenant_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        return notification

    async def mark_all_read(self, user_id: str, tenant_id: str) -> int:
        return await self.repo.mark_all_read(user_id, tenant_id, read_at=self.clock())

    async def delete(self, notification_id: str, user_id: str, tenant_id: str) -> None:
        if not await self.repo.delete(notification_id, user_id, tenant_id):
            raise NotFoundError("Notification", notification_id)

    async def purge_expired(self) -> int:
        purged = await self.repo.purge_expired(self.clock())
        if purged:
            logger.info("Purged %d expired notifications", purged)
        return purged


PREFERENCE_FIELDS = frozenset({
    "email_enabled",
    "in_app_enabled",
    "sound_enabled",
    "sound_volume",
    "dnd_enabled",
    "dnd_start_time",
    "dnd_end_time",
    "category_preferences",
})


class PreferenceService:
    """Per (user, tenant) notification preferences, created lazily with defaults."""

    def __init__(
        self,
        repo: PreferenceRepository,
        quiet_hours_timezone: str = "UTC",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.quiet_hours_timezone = quiet_hours_timezone
        self.clock = clock

    async def get_or_create(self, user_id: str, tenant_id: str) -> NotificationPreference:
        existing = await self.repo.get(user_id, tenant_id)
        if existing is not None:
            return existing
        if await self.repo.insert(NotificationPreference.default(user_id, tenant_id)):
            logger.info("Created default notification preferences for user %s in tenant %s", user_id, tenant_id)
        # Either our row or the one a concurrent caller inserted first.
        created = await self.repo.get(user_id, tenant_id)
        if created is None:
            raise NotFoundError("NotificationPreference", f"{user_id}/{tenant_id}")
        return created

    async def update(self, user_id: str, tenant_id: str, changes: dict[str, Any]) -> NotificationPreference:
        """Apply a partial update; unknown or invalid fields raise ValidationError."""
        unknown = set(changes) - PREFERENCE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
        current = await self.get_or_create(user_id, tenant_id)
        values = dict(changes)

        if "sound_volume" in values:
            volume = values["sound_volume"]
            if isinstance(volume, bool) or not isinstance(volume, int) or not 0 <= volume <= 100:
                raise ValidationError("sound_volume must be between 0 and 100")
        for key in ("dnd_start_time", "dnd_end_time"):
            if values.get(key) is not None:
                parse_time_of_day(values[key])
        if "category_preferences" in values:
            merged = dict(current.category_preferences)
            for key, override in (values["category_preferences"] or {}).items():
                category = as_category(key)
                if override is None:
                    merged.pop(category, None)
                else:
                    merged[category] = CategoryPreference.from_dict(override)
            values["category_preferences"] = merged

        updated = replace(current, **values, updated_at=self.clock())
        if updated.dnd_enabled and not (updated.dnd_start_time and updated.dnd_end_time):
            raise ValidationError("dnd_start_time and dnd_end_time are required when DND is enabled")
        return await self.repo.update(updated)

    async def is_category_enabled(
        self,
        user_id: str,
        tenant_id: str,
        category: NotificationCategory,
        channel: Channel,
    ) -> bool:
        """Channel decision for a category; ALWAYS_SEND never touches storage."""
        if is_always_send(category):
            return True
        preference = await self.repo.get(user_id, tenant_id)
        return is_channel_enabled(preference, category, channel)

    async def pause(
        self,
        user_id: str,
        tenant_id: str,
        duration: PauseDuration,
        until: Optional[datetime] = None,
    ) -> NotificationPreference:
        now = self.clock()
        if duration is PauseDuration.CUSTOM:
            if until is None:
                raise ValidationError("A custom pause needs an end time")
            paused_until = as_naive_utc(until)
            if paused_until <= now:
                raise ValidationError("Pause end time must be in the future")
        else:
            paused_until = now + PAUSE_DURATIONS[duration]
        current = await self.get_or_create(user_id, tenant_id)
        return await self.repo.update(replace(current, paused_until=paused_until, updated_at=now))

    async def resume(self, user_id: str, tenant_id: str) -> NotificationPreference:
        current = await self.get_or_create(user_id, tenant_id)
        return await self.repo.update(replace(current, paused_until=None, updated_at=self.clock()))

    async def is_paused(self, user_id: str, tenant_id: str) -> bool:
        return is_paused(await self.repo.get(user_id, tenant_id), self.clock())

    async def is_quiet(self, user_id: str, tenant_id: str) -> bool:
        """Paused, or inside the do-not-disturb window."""
        return is_quiet(await self.repo.get(user_id, tenant_id), self.clock(), self.quiet_hours_timezone)

    async def quiet_until(self, user_id: str, tenant_id: str) -> Optional[datetime]:
        """When paused or in DND, the time delivery may resume; None otherwise."""
        return quiet_until(await self.repo.get(user_id, tenant_id), self.clock(), self.quiet_hours_timezone)
