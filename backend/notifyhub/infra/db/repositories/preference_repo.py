"""Notification preference repository."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.domain.common.errors import NotFoundError
from notifyhub.domain.notifications.models import NotificationPreference
from notifyhub.infra.db.models.notification import NotificationPreferenceModel


class PreferenceRepositoryImpl:
    """Preference repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_model(self, user_id: str, tenant_id: str) -> Optional[NotificationPreferenceModel]:
        result = await self.session.execute(
            select(NotificationPreferenceModel).where(
                NotificationPreferenceModel.user_id == user_id,
                NotificationPreferenceModel.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str, tenant_id: str) -> Optional[NotificationPreference]:
        model = await self._get_model(user_id, tenant_id)
        return model.to_entity() if model else None

    async def insert(self, preference: NotificationPreference) -> bool:
        """Insert the row; a concurrent creator winning the unique constraint returns False."""
        self.session.add(NotificationPreferenceModel.from_entity(preference))
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return False
        return True

    async def update(self, preference: NotificationPreference) -> NotificationPreference:
        model = await self._get_model(preference.user_id, preference.tenant_id)
        if model is None:
            raise NotFoundError("NotificationPreference", f"{preference.user_id}/{preference.tenant_id}")
        model.apply(preference)
        await self.session.commit()
        await self.session.refresh(model)
        return model.to_entity()
