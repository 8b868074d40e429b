"""Tenant lifecycle jobs: trial downgrades and scheduled deletions."""
import logging
from datetime import datetime
from typing import Callable

from notifyhub.domain.common.types import utcnow
from notifyhub.domain.notifications.models import NotificationCategory, NotificationSeverity, NotificationType
from notifyhub.domain.tenants.repositories import TenantRepository
from notifyhub.services.notification_configs import render_email_html, render_email_text
from notifyhub.services.notification_hub import NotificationHub

logger = logging.getLogger(__name__)


class TenantLifecycleService:
    """Applies deadlines that passed. One tenant failing never stops the batch."""

    def __init__(
        self,
        tenants: TenantRepository,
        hub: NotificationHub,
        brand: str,
        app_url: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tenants = tenants
        self.hub = hub
        self.brand = brand
        self.app_url = app_url.rstrip("/")
        self.clock = clock

    async def process_expired_trials(self) -> int:
        """Downgrade expired trials to the base plan and tell the owner."""
        now = self.clock()
        downgraded = 0
        for tenant in await self.tenants.list_expired_trials(now):
            try:
                if not await self.tenants.downgrade_trial(tenant.id, now):
                    continue
                downgraded += 1
                logger.info("Downgraded tenant %s (%s) to core after trial expiry", tenant.id, tenant.name)
                if tenant.owner_user_id is None:
                    logger.warning("Tenant %s has no active owner to notify", tenant.id)
                    continue
                title = "Trial expired, downgraded to Core"
                message = (
                    f"Your free trial for {tenant.name} has ended. You've been moved to the Core plan. "
                    "Upgrade anytime to restore team features."
                )
                action_url = f"{self.app_url}/settings/billing"
                await self.hub.notify(
                    user_id=tenant.owner_user_id,
                    tenant_id=tenant.id,
                    category=NotificationCategory.TRIAL_EXPIRED,
                    type=NotificationType.SYSTEM,
                    title=title,
                    message=message,
                    severity=NotificationSeverity.WARNING,
                    email_subject=f"Your trial has ended - {self.brand}",
                    email_html=render_email_html(self.brand, title, message, None, action_url, "Upgrade Now"),
                    email_text=render_email_text(title, message, None, action_url),
                    action_route="/settings/billing",
                    action_label="Upgrade Now",
                    metadata={"previousPlan": tenant.plan, "newPlan": "core"},
                )
            except Exception:
                logger.exception("Failed to downgrade tenant %s", tenant.id)
        logger.info("Trial expiration processing complete: %d tenants downgraded", downgraded)
        return downgraded

    async def process_pending_deletions(self) -> int:
        """Mark tenants whose deletion grace period ended as deleted."""
        now = self.clock()
        deleted = 0
        for tenant in await self.tenants.list_due_deletions(now):
            try:
                if await self.tenants.mark_deleted(tenant.id, now):
                    deleted += 1
                    logger.info("Deleted tenant %s (%s)", tenant.id, tenant.name)
            except Exception:
                logger.exception("Failed to delete tenant %s", tenant.id)
        logger.info("Tenant deletion processing complete: %d tenants deleted", deleted)
        return deleted
