"""Notification repository."""
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, func, or_, select, true, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.domain.notifications.models import Notification
from notifyhub.infra.db.models.notification import NotificationModel


class NotificationRepositoryImpl:
    """Notification repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _scope(self, user_id: str, tenant_id: str):
        return and_(NotificationModel.user_id == user_id, NotificationModel.tenant_id == tenant_id)

    @staticmethod
    def _live(now: Optional[datetime]):
        if now is None:
            return true()
        return or_(NotificationModel.expires_at.is_(None), NotificationModel.expires_at > now)

    async def create(self, notification: Notification) -> Notification:
        """Create a notification. A failed insert is rolled back so the session stays usable."""
        model = NotificationModel.from_entity(notification)
        self.session.add(model)
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        await self.session.refresh(model)
        return model.to_entity()

    async def get(self, notification_id: str, user_id: str, tenant_id: str) -> Optional[Notification]:
        """Get a notification by ID if it belongs to the user in the tenant."""
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                self._scope(user_id, tenant_id),
            )
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def list_page(
        self,
        user_id: str,
        tenant_id: str,
        limit: int,
        cursor: Optional[Notification] = None,
        unread_only: bool = False,
        now: Optional[datetime] = None,
    ) -> list[Notification]:
        """Newest first; (created_at, id) ordering so equal timestamps page stably."""
        q = select(NotificationModel).where(self._scope(user_id, tenant_id), self._live(now))
        if unread_only:
            q = q.where(NotificationModel.is_read.is_(False))
        if cursor is not None:
            q = q.where(
                or_(
                    NotificationModel.created_at < cursor.created_at,
                    and_(
                        NotificationModel.created_at == cursor.created_at,
                        NotificationModel.id < cursor.id,
                    ),
                )
            )
        q = q.order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc()).limit(limit)
        result = await self.session.execute(q)
        return [m.to_entity() for m in result.scalars().all()]

    async def count_unread(self, user_id: str, tenant_id: str, now: Optional[datetime] = None) -> int:
        """Count unread notifications for a user in a tenant."""
        result = await self.session.execute(
            select(func.count()).select_from(NotificationModel).where(
                self._scope(user_id, tenant_id),
                NotificationModel.is_read.is_(False),
                self._live(now),
            )
        )
        return result.scalar() or 0

    async def mark_read(self, notification_id: str, user_id: str, tenant_id: str, read_at: datetime) -> bool:
        """Mark a notification as read. Returns True if found and updated."""
        result = await self.session.execute(
            update(NotificationModel)
            .where(NotificationModel.id == notification_id, self._scope(user_id, tenant_id))
            .values(is_read=True, read_at=read_at)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def mark_all_read(self, user_id: str, tenant_id: str, read_at: datetime) -> int:
        """Mark all unread notifications as read. Returns count updated."""
        result = await self.session.execute(
            update(NotificationModel)
            .where(self._scope(user_id, tenant_id), NotificationModel.is_read.is_(False))
            .values(is_read=True, read_at=read_at)
        )
        await self.session.commit()
        return result.rowcount or 0

    async def delete(self, notification_id: str, user_id: str, tenant_id: str) -> bool:
        """Delete a notification if it belongs to the user. Returns True if deleted."""
        result = await self.session.execute(
            delete(NotificationModel).where(
                NotificationModel.id == notification_id,
                self._scope(user_id, tenant_id),
            )
        )
        await self.session.commit()
        return result.rowcount > 0

    async def purge_expired(self, now: datetime) -> int:
        """Delete notifications past their retention window."""
        result = await self.session.execute(
            delete(NotificationModel).where(
                NotificationModel.expires_at.is_not(None),
                NotificationModel.expires_at <= now,
            )
        )
        await self.session.commit()
        return result.rowcount or 0
