"""Reminder eligibility queries."""
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.domain.reminders.models import Campaign, ReminderSubject
from notifyhub.domain.tenants.models import SubscriptionStatus, TenantStatus
from notifyhub.infra.db.models.tenant import TenantMemberModel, TenantModel, TenantSecurityConfigModel
from notifyhub.infra.db.models.user import UserModel

ACTIVE = "active"


class SubjectRepositoryImpl:
    """Finds users and tenants that still owe an action before a deadline."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _member_candidates(
        self,
        campaign: Campaign,
        done_flag,
        required_flag,
        deadline_days_column,
        default_deadline_days: int,
    ) -> list[ReminderSubject]:
        # No security config row, or a null requirement, means the platform default: required.
        stmt = (
            select(
                UserModel.id,
                UserModel.email,
                UserModel.first_name,
                UserModel.created_at,
                TenantModel.id,
                TenantModel.name,
                deadline_days_column,
            )
            .join(TenantMemberModel, TenantMemberModel.user_id == UserModel.id)
            .join(TenantModel, TenantModel.id == TenantMemberModel.tenant_id)
            .outerjoin(TenantSecurityConfigModel, TenantSecurityConfigModel.tenant_id == TenantModel.id)
            .where(
                done_flag.is_(False),
                UserModel.status == ACTIVE,
                TenantMemberModel.status == ACTIVE,
                TenantModel.status == TenantStatus.ACTIVE.value,
                or_(required_flag.is_(True), required_flag.is_(None)),
            )
        )
        result = await self.session.execute(stmt)
        subjects = []
        for user_id, email, first_name, created_at, tenant_id, tenant_name, deadline_days in result.all():
            days = deadline_days if deadline_days is not None else default_deadline_days
            subjects.append(
                ReminderSubject(
                    campaign=campaign,
                    user_id=user_id,
                    tenant_id=tenant_id,
                    tenant_name=tenant_name,
                    recipient_user_id=user_id,
                    email=email,
                    first_name=first_name,
                    deadline_at=created_at + timedelta(days=days),
                )
            )
        return subjects

    async def mfa_candidates(self, default_deadline_days: int) -> list[ReminderSubject]:
        return await self._member_candidates(
            Campaign.MFA_ENABLEMENT,
            UserModel.mfa_enabled,
            TenantSecurityConfigModel.require_mfa,
            TenantSecurityConfigModel.mfa_deadline_days,
            default_deadline_days,
        )

    async def phone_candidates(self, default_deadline_days: int) -> list[ReminderSubject]:
        return await self._member_candidates(
            Campaign.PHONE_VERIFICATION,
            UserModel.phone_verified,
            TenantSecurityConfigModel.require_phone_verification,
            TenantSecurityConfigModel.phone_verification_deadline_days,
            default_deadline_days,
        )

    async def _owner_candidates(self, campaign: Campaign, deadline_column, *conditions) -> list[ReminderSubject]:
        stmt = (
            select(
                TenantModel.id,
                TenantModel.name,
                deadline_column,
                UserModel.id,
                UserModel.email,
                UserModel.first_name,
            )
            .join(TenantMemberModel, TenantMemberModel.tenant_id == TenantModel.id)
            .join(UserModel, UserModel.id == TenantMemberModel.user_id)
            .where(
                deadline_column.is_not(None),
                TenantMemberModel.is_owner.is_(True),
                TenantMemberModel.status == ACTIVE,
                UserModel.status == ACTIVE,
                *conditions,
            )
            .order_by(TenantModel.id, TenantMemberModel.created_at)
        )
        result = await self.session.execute(stmt)
        subjects: list[ReminderSubject] = []
        seen: set[str] = set()
        for tenant_id, tenant_name, deadline_at, owner_id, email, first_name in result.all():
            # Subject is the tenant; the earliest owner receives the reminder.
            if tenant_id in seen:
                continue
            seen.add(tenant_id)
            subjects.append(
                ReminderSubject(
                    campaign=campaign,
                    user_id=None,
                    tenant_id=tenant_id,
                    tenant_name=tenant_name,
                    recipient_user_id=owner_id,
                    email=email,
                    first_name=first_name,
                    deadline_at=deadline_at,
                )
            )
        return subjects

    async def trial_candidates(self) -> list[ReminderSubject]:
        return await self._owner_candidates(
            Campaign.TRIAL_EXPIRATION,
            TenantModel.trial_expires_at,
            TenantModel.subscription_status == SubscriptionStatus.TRIALING.value,
            TenantModel.status == TenantStatus.ACTIVE.value,
        )

    async def deletion_candidates(self, now: datetime) -> list[ReminderSubject]:
        return await self._owner_candidates(
            Campaign.TENANT_DELETION,
            TenantModel.deletion_scheduled_at,
            TenantModel.status == TenantStatus.PENDING_DELETION.value,
            TenantModel.deletion_scheduled_at > now,
        )
