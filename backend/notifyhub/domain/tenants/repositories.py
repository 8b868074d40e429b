"""Tenant repository interfaces."""
from datetime import datetime
from typing import Protocol

from notifyhub.domain.tenants.models import Tenant


class TenantRepository(Protocol):
    """Tenant lifecycle writes."""

    async def list_expired_trials(self, now: datetime) -> list[Tenant]:
        ...

    async def downgrade_trial(self, tenant_id: str, now: datetime) -> bool:
        """Move an expired trial to the base plan; False if it is no longer trialing."""
        ...

    async def list_due_deletions(self, now: datetime) -> list[Tenant]:
        ...

    async def mark_deleted(self, tenant_id: str, now: datetime) -> bool:
        ...
