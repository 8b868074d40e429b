"""Tests for reminder scans, delivery and the dedup ledger."""
import time
from datetime import timedelta, timezone

import pytest

from conftest import T0, add_member, seed_tenant, seed_user, set_security_config
from notifyhub.domain.notifications.models import NotificationCategory, NotificationType, PauseDuration
from notifyhub.domain.reminders.models import Campaign, JobType, ReminderLog, Stage, reminder_job_id
from notifyhub.infra.db.models import TenantModel
from notifyhub.infra.jobs.queue import JobState
from notifyhub.infra.jobs.tasks import JobDispatcher
from notifyhub.infra.jobs.worker import JobWorker
from notifyhub.services.reminder_service import SendReminderPayload, format_deadline


@pytest.fixture
async def member(db_session):
    user_id = await seed_user(db_session, email="grace@example.com", first_name="Grace")
    tenant_id = await seed_tenant(db_session, name="Acme")
    await add_member(db_session, tenant_id, user_id)
    return user_id, tenant_id


@pytest.fixture
def worker(container) -> JobWorker:
    return JobWorker(container.queue, JobDispatcher(container), concurrency=1)


async def _drain(worker: JobWorker) -> int:
    processed = 0
    while await worker.process_next():
        processed += 1
    return processed


class TestMfaCampaign:
    """MFA enablement reminders end to end."""

    async def test_first_and_final_reminders_once_each(
        self, services, container, worker, member, clock, email_sender, db_session
    ):
        user_id, tenant_id = member
        ledger = services.sender.ledger

        # Day 4 of a 7-day deadline: 3 days left, first stage.
        clock.now = T0 + timedelta(days=4)
        assert await services.scanner.scan_mfa() == 1
        assert await _drain(worker) == 1
        assert len(email_sender.sent) == 1
        assert email_sender.sent[0]["to"] == "grace@example.com"
        assert "3 days" in email_sender.sent[0]["html"]

        # A second scan the same day queues nothing.
        assert await services.scanner.scan_mfa() == 0

        # Day 6: 1 day left, final stage.
        clock.now = T0 + timedelta(days=6)
        assert await services.scanner.scan_mfa() == 1
        assert await _drain(worker) == 1

        # Day 8: deadline passed, nothing more.
        clock.now = T0 + timedelta(days=8)
        assert await services.scanner.scan_mfa() == 0

        entries = await ledger.list_for_subject(user_id, tenant_id)
        assert [(e.reminder_type, e.stage) for e in entries] == [
            (Campaign.MFA_ENABLEMENT, Stage.FIRST),
            (Campaign.MFA_ENABLEMENT, Stage.FINAL),
        ]
        assert all(e.email_sent and e.in_app_sent for e in entries)
        assert len(email_sender.sent) == 2

        inbox = await services.notifications.list(user_id, tenant_id)
        assert {n.category for n in inbox.items} == {
            NotificationCategory.MFA_ENABLEMENT_FIRST,
            NotificationCategory.MFA_ENABLEMENT_FINAL,
        }

    async def test_repeated_scan_before_delivery_queues_one_job(self, services, container, member, clock):
        clock.now = T0 + timedelta(days=5)
        assert await services.scanner.scan_mfa() == 1
        assert await services.scanner.scan_mfa() == 0
        counts = await container.queue.counts()
        assert counts[JobState.WAITING.value] == 1
        job = await container.queue.get_job(f"mfa-reminder-{member[0]}-{member[1]}-first")
        assert job is not None
        assert job.type == JobType.SEND_REMINDER.value
        assert job.payload["days_remaining"] == 2

    async def test_users_with_mfa_are_skipped(self, services, db_session, clock):
        user_id = await seed_user(db_session, mfa_enabled=True)
        tenant_id = await seed_tenant(db_session)
        await add_member(db_session, tenant_id, user_id)
        clock.now = T0 + timedelta(days=5)
        assert await services.scanner.scan_mfa() == 0

    async def test_tenant_config_can_waive_or_extend(self, services, db_session, clock):
        waived_user = await seed_user(db_session)
        waived_tenant = await seed_tenant(db_session)
        await add_member(db_session, waived_tenant, waived_user)
        await set_security_config(db_session, waived_tenant, require_mfa=False)

        slow_user = await seed_user(db_session)
        slow_tenant = await seed_tenant(db_session)
        await add_member(db_session, slow_tenant, slow_user)
        await set_security_config(db_session, slow_tenant, require_mfa=True, mfa_deadline_days=30)

        clock.now = T0 + timedelta(days=5)
        assert await services.scanner.scan_mfa() == 0
        clock.now = T0 + timedelta(days=28)
        assert await services.scanner.scan_mfa() == 1

    async def test_phone_campaign_uses_its_own_default(self, services, member, clock):
        # Phone deadline defaults to 3 days, so day 0 is already the first stage.
        assert await services.scanner.scan_phone() == 1
        clock.now = T0 + timedelta(days=2, hours=1)
        assert await services.scanner.scan_phone() == 1


class TestTenantCampaigns:
    """Trial expiration and tenant deletion reminders go to the owner."""

    async def test_trial_reminder_goes_to_earliest_owner(self, services, worker, db_session, clock, email_sender):
        tenant_id = await seed_tenant(
            db_session, subscription_status="trialing", trial_expires_at=T0 + timedelta(days=2)
        )
        first_owner = await seed_user(db_session, email="first@example.com")
        second_owner = await seed_user(db_session, email="second@example.com")
        await add_member(db_session, tenant_id, second_owner, is_owner=True, created_at=T0 + timedelta(hours=1))
        await add_member(db_session, tenant_id, first_owner, is_owner=True, created_at=T0)

        assert await services.scanner.scan_trial() == 1
        await _drain(worker)
        assert [m["to"] for m in email_sender.sent] == ["first@example.com"]

        [entry] = await services.sender.ledger.list_for_subject(None, tenant_id)
        assert entry.user_id is None
        assert entry.stage is Stage.FIRST
        assert entry.metadata["recipient_user_id"] == first_owner

    async def test_deletion_reminder(self, services, db_session, clock, container):
        tenant_id = await seed_tenant(
            db_session, status="pending_deletion", deletion_scheduled_at=T0 + timedelta(hours=20)
        )
        owner = await seed_user(db_session)
        await add_member(db_session, tenant_id, owner, is_owner=True)
        assert await services.scanner.scan_tenant_deletion() == 1
        assert await container.queue.get_job(f"deletion-reminder-{tenant_id}-final") is not None


class TestSender:
    """Per-job delivery rules."""

    def _payload(self, user_id, tenant_id, stage=Stage.FIRST) -> SendReminderPayload:
        return SendReminderPayload(
            type=Campaign.MFA_ENABLEMENT,
            stage=stage,
            tenant_id=tenant_id,
            tenant_name="Acme",
            user_id=user_id,
            recipient_user_id=user_id,
            email="grace@example.com",
            deadline_at=T0 + timedelta(days=7),
            days_remaining=3,
        )

    async def test_skips_when_already_recorded(self, services, member, email_sender):
        payload = self._payload(*member)
        assert await services.sender.send(payload) is not None
        assert await services.sender.send(payload) is None
        assert len(email_sender.sent) == 1

    async def test_missing_recipient_is_a_no_op(self, services, member, email_sender):
        payload = self._payload("deleted-user", member[1])
        assert await services.sender.send(payload) is None
        assert email_sender.sent == []
        assert await services.sender.ledger.list_for_subject("deleted-user", member[1]) == []

    async def test_ledger_row_written_even_when_email_fails(self, services, member, email_sender):
        email_sender.fail_with = "bounced"
        entry = await services.sender.send(self._payload(*member))
        assert entry.email_sent is False
        assert entry.email_error == "bounced"
        assert entry.in_app_sent is True

    async def test_racing_ledger_insert_is_ignored(self, services, member):
        user_id, tenant_id = member
        ledger = services.sender.ledger
        first = ReminderLog.create(user_id, tenant_id, Campaign.MFA_ENABLEMENT, Stage.FINAL)
        duplicate = ReminderLog.create(user_id, tenant_id, Campaign.MFA_ENABLEMENT, Stage.FINAL)
        assert await ledger.record(first) is True
        assert await ledger.record(duplicate) is False
        assert len(await ledger.list_for_subject(user_id, tenant_id)) == 1

    def test_stage_none_payload_is_rejected(self):
        with pytest.raises(ValueError):
            self._payload("u1", "t1", stage=Stage.NONE)

    def test_format_deadline(self):
        assert format_deadline(T0) == "March 2, 2026"

    async def test_inbox_failure_still_records_the_stage(
        self, services, container, worker, member, clock, email_sender, db_session, monkeypatch
    ):
        user_id, tenant_id = member
        taken = await services.notifications.create(
            user_id=user_id,
            tenant_id=tenant_id,
            type=NotificationType.SYSTEM,
            category=NotificationCategory.WELCOME,
            title="Welcome",
            message="Hello",
        )
        db_session.expunge_all()
        # The reminder's inbox insert collides on the primary key and fails.
        monkeypatch.setattr("notifyhub.domain.notifications.models.generate_id", lambda: taken.id)

        clock.now = T0 + timedelta(days=4)
        assert await services.scanner.scan_mfa() == 1
        assert await _drain(worker) == 1

        counts = await container.queue.counts()
        assert counts[JobState.COMPLETED.value] == 1
        assert counts[JobState.DELAYED.value] == 0
        [entry] = await services.sender.ledger.list_for_subject(user_id, tenant_id)
        assert entry.email_sent is True
        assert entry.in_app_sent is False
        assert entry.metadata["in_app_error"]
        assert len(email_sender.sent) == 1
        assert await services.scanner.scan_mfa() == 0


class TestQuietHours:
    """Reminders that land in the recipient's quiet hours wait for them to end."""

    async def _trial_owner(self, db_session):
        tenant_id = await seed_tenant(
            db_session, subscription_status="trialing", trial_expires_at=T0 + timedelta(days=2)
        )
        owner = await seed_user(db_session, email="owner@example.com")
        await add_member(db_session, tenant_id, owner, is_owner=True)
        return owner, tenant_id

    async def test_trial_reminder_is_held_until_dnd_ends(
        self, services, container, worker, db_session, clock, email_sender, monkeypatch
    ):
        owner, tenant_id = await self._trial_owner(db_session)
        await services.preferences.update(
            owner, tenant_id, {"dnd_enabled": True, "dnd_start_time": "11:00", "dnd_end_time": "13:00"}
        )

        assert await services.scanner.scan_trial() == 1
        assert await _drain(worker) == 1
        assert email_sender.sent == []
        assert await services.sender.ledger.list_for_subject(None, tenant_id) == []
        assert await services.notifications.unread_count(owner, tenant_id) == 0

        resume_at = T0.replace(hour=13)
        resume_epoch = int(resume_at.replace(tzinfo=timezone.utc).timestamp())
        held = await container.queue.get_job(
            f"{reminder_job_id(Campaign.TRIAL_EXPIRATION, None, tenant_id, Stage.FIRST)}-held-{resume_epoch}"
        )
        assert held.state is JobState.DELAYED
        assert held.type == JobType.SEND_REMINDER.value

        # The window ends an hour later.
        clock.now = resume_at
        queue_now = time.time() + 3601
        monkeypatch.setattr(container.queue, "_clock", lambda: queue_now)
        assert await container.queue.promote_delayed() == 1
        assert await _drain(worker) == 1

        assert [m["to"] for m in email_sender.sent] == ["owner@example.com"]
        [entry] = await services.sender.ledger.list_for_subject(None, tenant_id)
        assert entry.stage is Stage.FIRST
        assert entry.email_sent and entry.in_app_sent

    async def test_paused_owner_gets_one_hold_per_quiet_period(self, services, db_session, email_sender):
        owner, tenant_id = await self._trial_owner(db_session)
        await services.preferences.pause(owner, tenant_id, PauseDuration.ONE_HOUR)
        payload = SendReminderPayload(
            type=Campaign.TRIAL_EXPIRATION,
            stage=Stage.FIRST,
            tenant_id=tenant_id,
            tenant_name="Acme",
            recipient_user_id=owner,
            email="owner@example.com",
            deadline_at=T0 + timedelta(days=2),
            days_remaining=2,
        )
        assert await services.sender.send(payload) is None
        assert await services.sender.send(payload) is None
        counts = await services.sender.queue.counts()
        assert counts[JobState.DELAYED.value] == 1
        assert email_sender.sent == []

    async def test_security_reminders_ignore_quiet_hours(self, services, member, email_sender):
        user_id, tenant_id = member
        await services.preferences.pause(user_id, tenant_id, PauseDuration.ONE_HOUR)
        payload = SendReminderPayload(
            type=Campaign.MFA_ENABLEMENT,
            stage=Stage.FINAL,
            tenant_id=tenant_id,
            tenant_name="Acme",
            user_id=user_id,
            recipient_user_id=user_id,
            email="grace@example.com",
            deadline_at=T0 + timedelta(days=1),
            days_remaining=1,
        )
        entry = await services.sender.send(payload)
        assert entry is not None and entry.email_sent
        assert len(email_sender.sent) == 1


class TestDispatch:
    """Job dispatch edge cases."""

    async def test_malformed_payload_completes(self, container, worker):
        await container.queue.enqueue(JobType.SEND_REMINDER.value, {"type": "mfa_enablement"}, job_id="bad")
        assert await worker.process_next() is True
        job = await container.queue.get_job("bad")
        assert job.state is JobState.COMPLETED

    async def test_unknown_job_type_completes(self, container, worker):
        await container.queue.enqueue("rebuild_search_index", {}, job_id="mystery")
        await worker.process_next()
        assert (await container.queue.get_job("mystery")).state is JobState.COMPLETED

    async def test_tenant_deletion_job(self, container, worker, db_session, clock):
        due = await seed_tenant(db_session, status="pending_deletion", deletion_scheduled_at=T0 - timedelta(days=1))
        await container.queue.enqueue(JobType.PROCESS_TENANT_DELETIONS.value, {}, job_id="deletions")
        await worker.process_next()
        assert (await container.queue.get_job("deletions")).state is JobState.COMPLETED
        tenant = await db_session.get(TenantModel, due)
        await db_session.refresh(tenant)
        assert tenant.status == "deleted"
        assert tenant.deleted_at == clock.now
