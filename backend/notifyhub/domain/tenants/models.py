"""Tenant lifecycle domain models."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TenantStatus(str, Enum):
    """Tenant status enum."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING_DELETION = "pending_deletion"
    DELETED = "deleted"


class SubscriptionStatus(str, Enum):
    """Subscription status enum."""
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


DOWNGRADE_PLAN = "core"
DOWNGRADE_LICENSE_COUNT = 1


@dataclass
class Tenant:
    """Tenant domain model (only the fields the engine reads or writes)."""
    id: str
    name: str
    status: TenantStatus
    plan: str
    subscription_status: Optional[SubscriptionStatus]
    license_count: int
    trial_expires_at: Optional[datetime]
    deletion_scheduled_at: Optional[datetime]
    deleted_at: Optional[datetime]
    owner_user_id: Optional[str] = None
