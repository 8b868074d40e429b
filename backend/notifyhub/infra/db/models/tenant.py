"""Tenant, membership and security config models."""
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, UniqueConstraint

from notifyhub.infra.db.base import Base
from notifyhub.domain.tenants.models import SubscriptionStatus, Tenant, TenantStatus


class TenantModel(Base):
    """Tenant (workspace)."""

    __tablename__ = "tenants"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default=TenantStatus.ACTIVE.value, index=True)
    plan = Column(String, nullable=False, default="core")
    subscription_status = Column(String, nullable=True, index=True)
    license_count = Column(Integer, nullable=False, default=1)
    trial_expires_at = Column(DateTime, nullable=True)
    deletion_requested_at = Column(DateTime, nullable=True)
    deletion_scheduled_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_entity(self, owner_user_id: Optional[str] = None) -> Tenant:
        """Convert to domain entity."""
        return Tenant(
            id=self.id,
            name=self.name,
            status=TenantStatus(self.status),
            plan=self.plan,
            subscription_status=SubscriptionStatus(self.subscription_status) if self.subscription_status else None,
            license_count=self.license_count,
            trial_expires_at=self.trial_expires_at,
            deletion_scheduled_at=self.deletion_scheduled_at,
            deleted_at=self.deleted_at,
            owner_user_id=owner_user_id,
        )


class TenantMemberModel(Base):
    """User membership in a tenant."""

    __tablename__ = "tenant_members"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", name="uq_tenant_members_tenant_user"),)

    id = Column(String, primary_key=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_owner = Column(Boolean, default=False, nullable=False)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TenantSecurityConfigModel(Base):
    """Per-tenant security requirements; a missing row means platform defaults (required)."""

    __tablename__ = "tenant_security_configs"

    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True)
    require_mfa = Column(Boolean, nullable=True, default=True)
    mfa_deadline_days = Column(Integer, nullable=True)
    require_phone_verification = Column(Boolean, nullable=True, default=True)
    phone_verification_deadline_days = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
