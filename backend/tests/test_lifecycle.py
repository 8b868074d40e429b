"""Tests for trial downgrades and scheduled tenant deletions."""
from datetime import timedelta

from conftest import T0, add_member, seed_tenant, seed_user
from notifyhub.domain.notifications.models import NotificationCategory, NotificationType
from notifyhub.infra.db.models import TenantModel
from notifyhub.services.lifecycle_service import TenantLifecycleService


async def _tenant(db_session, tenant_id) -> TenantModel:
    tenant = await db_session.get(TenantModel, tenant_id)
    await db_session.refresh(tenant)
    return tenant


class TestTrialExpiration:
    """Expired trials move to the base plan."""

    async def test_downgrade_and_notify_owner(self, services, db_session, email_sender):
        expired = await seed_tenant(
            db_session, subscription_status="trialing", trial_expires_at=T0 - timedelta(hours=1)
        )
        running = await seed_tenant(
            db_session, subscription_status="trialing", trial_expires_at=T0 + timedelta(days=3)
        )
        owner = await seed_user(db_session, email="owner@example.com")
        await add_member(db_session, expired, owner, is_owner=True)

        assert await services.lifecycle.process_expired_trials() == 1

        tenant = await _tenant(db_session, expired)
        assert (tenant.plan, tenant.subscription_status, tenant.license_count) == ("core", "active", 1)
        assert (await _tenant(db_session, running)).subscription_status == "trialing"

        [n] = (await services.notifications.list(owner, expired)).items
        assert n.category is NotificationCategory.TRIAL_EXPIRED
        assert n.metadata["newPlan"] == "core"
        assert email_sender.sent[0]["to"] == "owner@example.com"

        # Nothing left to downgrade on a re-run.
        assert await services.lifecycle.process_expired_trials() == 0
        assert len(email_sender.sent) == 1

    async def test_tenant_without_owner_is_still_downgraded(self, services, db_session):
        tenant_id = await seed_tenant(
            db_session, subscription_status="trialing", trial_expires_at=T0 - timedelta(days=1)
        )
        assert await services.lifecycle.process_expired_trials() == 1
        assert (await _tenant(db_session, tenant_id)).plan == "core"

    async def test_one_failure_does_not_stop_the_batch(self, services, db_session, clock):
        first = await seed_tenant(db_session, subscription_status="trialing", trial_expires_at=T0 - timedelta(days=1))
        second = await seed_tenant(db_session, subscription_status="trialing", trial_expires_at=T0 - timedelta(days=1))
        repo = services.lifecycle.tenants
        original = repo.downgrade_trial

        async def flaky_downgrade(tenant_id, now):
            if tenant_id == first:
                raise RuntimeError("lock timeout")
            return await original(tenant_id, now)

        repo.downgrade_trial = flaky_downgrade
        lifecycle = TenantLifecycleService(repo, services.hub, "Notifyhub", "https://app.example.com", clock=clock)
        assert await lifecycle.process_expired_trials() == 1
        assert (await _tenant(db_session, second)).plan == "core"
        assert (await _tenant(db_session, first)).subscription_status == "trialing"

    async def test_failed_owner_notice_does_not_stop_later_downgrades(
        self, services, db_session, email_sender, monkeypatch
    ):
        tenants = []
        for email in ("first@example.com", "second@example.com"):
            tenant_id = await seed_tenant(
                db_session, subscription_status="trialing", trial_expires_at=T0 - timedelta(days=1)
            )
            owner = await seed_user(db_session, email=email)
            await add_member(db_session, tenant_id, owner, is_owner=True)
            tenants.append((tenant_id, owner))
        taken = await services.notifications.create(
            user_id=tenants[0][1],
            tenant_id=tenants[0][0],
            type=NotificationType.SYSTEM,
            category=NotificationCategory.WELCOME,
            title="Welcome",
            message="Hello",
        )
        db_session.expunge_all()
        # Every owner notice collides on the primary key and fails to insert.
        monkeypatch.setattr("notifyhub.domain.notifications.models.generate_id", lambda: taken.id)

        assert await services.lifecycle.process_expired_trials() == 2
        for tenant_id, _ in tenants:
            assert (await _tenant(db_session, tenant_id)).plan == "core"
        assert sorted(m["to"] for m in email_sender.sent) == ["first@example.com", "second@example.com"]


class TestTenantDeletion:
    """Deletions whose grace period ended."""

    async def test_due_deletions_are_executed(self, services, db_session, clock):
        due = await seed_tenant(db_session, status="pending_deletion", deletion_scheduled_at=T0 - timedelta(minutes=1))
        later = await seed_tenant(db_session, status="pending_deletion", deletion_scheduled_at=T0 + timedelta(days=5))
        active = await seed_tenant(db_session)

        assert await services.lifecycle.process_pending_deletions() == 1
        deleted = await _tenant(db_session, due)
        assert deleted.status == "deleted"
        assert deleted.deleted_at == clock.now
        assert (await _tenant(db_session, later)).status == "pending_deletion"
        assert (await _tenant(db_session, active)).status == "active"
        assert await services.lifecycle.process_pending_deletions() == 0
