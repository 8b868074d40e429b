"""Tenant lifecycle repository."""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.domain.tenants.models import (
    DOWNGRADE_LICENSE_COUNT,
    DOWNGRADE_PLAN,
    SubscriptionStatus,
    Tenant,
    TenantStatus,
)
from notifyhub.infra.db.models.tenant import TenantMemberModel, TenantModel


class TenantRepositoryImpl:
    """Tenant repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_owner(self, tenant_id: str) -> Optional[str]:
        """Earliest active owner of a tenant."""
        result = await self.session.execute(
            select(TenantMemberModel.user_id)
            .where(
                TenantMemberModel.tenant_id == tenant_id,
                TenantMemberModel.is_owner.is_(True),
                TenantMemberModel.status == "active",
            )
            .order_by(TenantMemberModel.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _execute_update(self, stmt) -> bool:
        """Run a guarded UPDATE; roll back on failure so the session stays usable for the next tenant."""
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return result.rowcount > 0

    async def _with_owners(self, models: list[TenantModel]) -> list[Tenant]:
        return [m.to_entity(owner_user_id=await self.get_owner(m.id)) for m in models]

    async def list_expired_trials(self, now: datetime) -> list[Tenant]:
        result = await self.session.execute(
            select(TenantModel).where(
                TenantModel.subscription_status == SubscriptionStatus.TRIALING.value,
                TenantModel.trial_expires_at.is_not(None),
                TenantModel.trial_expires_at <= now,
            )
        )
        return await self._with_owners(list(result.scalars().all()))

    async def downgrade_trial(self, tenant_id: str, now: datetime) -> bool:
        """Move an expired trial to the base plan; guarded so a re-run is a no-op."""
        return await self._execute_update(
            update(TenantModel)
            .where(
                TenantModel.id == tenant_id,
                TenantModel.subscription_status == SubscriptionStatus.TRIALING.value,
            )
            .values(
                plan=DOWNGRADE_PLAN,
                subscription_status=SubscriptionStatus.ACTIVE.value,
                license_count=DOWNGRADE_LICENSE_COUNT,
                updated_at=now,
            )
        )

    async def list_due_deletions(self, now: datetime) -> list[Tenant]:
        result = await self.session.execute(
            select(TenantModel).where(
                TenantModel.status == TenantStatus.PENDING_DELETION.value,
                TenantModel.deletion_scheduled_at.is_not(None),
                TenantModel.deletion_scheduled_at <= now,
            )
        )
        return await self._with_owners(list(result.scalars().all()))

    async def mark_deleted(self, tenant_id: str, now: datetime) -> bool:
        return await self._execute_update(
            update(TenantModel)
            .where(
                TenantModel.id == tenant_id,
                TenantModel.status == TenantStatus.PENDING_DELETION.value,
            )
            .values(status=TenantStatus.DELETED.value, deleted_at=now, updated_at=now)
        )
