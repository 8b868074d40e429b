"""Reminder log (dedup ledger) repository."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.domain.reminders.models import Campaign, ReminderLog, Stage, subject_key
from notifyhub.infra.db.models.reminder_log import ReminderLogModel

logger = logging.getLogger(__name__)


class ReminderLogRepositoryImpl:
    """Reminder log repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, user_id: Optional[str], tenant_id: Optional[str], campaign: Campaign, stage: Stage) -> bool:
        result = await self.session.execute(
            select(ReminderLogModel.id).where(
                ReminderLogModel.subject_key == subject_key(user_id, tenant_id),
                ReminderLogModel.reminder_type == campaign.value,
                ReminderLogModel.stage == stage.value,
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def record(self, entry: ReminderLog) -> bool:
        """Append a ledger row. The unique key turns a racing duplicate into a no-op."""
        self.session.add(ReminderLogModel.from_entity(entry))
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                "Reminder %s/%s for %s already recorded",
                entry.reminder_type.value,
                entry.stage.value,
                entry.subject_key,
            )
            return False
        return True

    async def list_for_subject(self, user_id: Optional[str], tenant_id: Optional[str]) -> list[ReminderLog]:
        result = await self.session.execute(
            select(ReminderLogModel)
            .where(ReminderLogModel.subject_key == subject_key(user_id, tenant_id))
            .order_by(ReminderLogModel.created_at)
        )
        return [m.to_entity() for m in result.scalars().all()]
