"""User repository (read-only contact lookup)."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.domain.notifications.models import Recipient
from notifyhub.infra.db.models.user import UserModel


class UserRepositoryImpl:
    """User repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_recipient(self, user_id: str) -> Optional[Recipient]:
        """Contact details of a user that has not been deleted."""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id, UserModel.status != "deleted")
        )
        model = result.scalar_one_or_none()
        return model.to_recipient() if model else None
