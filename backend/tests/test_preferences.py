"""Tests for notification preferences."""
from datetime import timedelta

import pytest

from conftest import seed_tenant, seed_user
from notifyhub.domain.common.errors import UnknownCategoryError, ValidationError
from notifyhub.domain.notifications.models import Channel, NotificationCategory, NotificationPreference, PauseDuration
from notifyhub.infra.db.repositories.preference_repo import PreferenceRepositoryImpl
from notifyhub.services.notification_service import PreferenceService


@pytest.fixture
async def ids(db_session):
    return await seed_user(db_session), await seed_tenant(db_session)


@pytest.fixture
def prefs(db_session, clock) -> PreferenceService:
    return PreferenceService(PreferenceRepositoryImpl(db_session), clock=clock)


class TestGetOrCreate:
    """Lazy default creation."""

    async def test_defaults(self, prefs, ids):
        user_id, tenant_id = ids
        pref = await prefs.get_or_create(user_id, tenant_id)
        assert pref.email_enabled and pref.in_app_enabled and pref.sound_enabled
        assert pref.sound_volume == 50
        assert pref.dnd_enabled is False
        assert pref.category_preferences == {}
        assert pref.paused_until is None

    async def test_idempotent(self, prefs, ids):
        first = await prefs.get_or_create(*ids)
        second = await prefs.get_or_create(*ids)
        assert first.id == second.id

    async def test_insert_race_returns_existing_row(self, prefs, ids):
        user_id, tenant_id = ids
        existing = await prefs.get_or_create(user_id, tenant_id)
        assert await prefs.repo.insert(NotificationPreference.default(user_id, tenant_id)) is False
        assert (await prefs.get_or_create(user_id, tenant_id)).id == existing.id


class TestUpdate:
    """Partial updates and validation."""

    async def test_update_global_toggles(self, prefs, ids):
        pref = await prefs.update(*ids, {"email_enabled": False, "sound_volume": 80})
        assert pref.email_enabled is False
        assert pref.sound_volume == 80
        assert pref.in_app_enabled is True

    async def test_rejects_invalid_values(self, prefs, ids):
        with pytest.raises(ValidationError):
            await prefs.update(*ids, {"sound_volume": 150})
        with pytest.raises(ValidationError):
            await prefs.update(*ids, {"dnd_start_time": "25:00"})
        with pytest.raises(ValidationError):
            await prefs.update(*ids, {"favourite_colour": "blue"})
        with pytest.raises(UnknownCategoryError):
            await prefs.update(*ids, {"category_preferences": {"lunch_menu": {"email": False}}})

    async def test_rejects_boolean_volume(self, prefs, ids):
        with pytest.raises(ValidationError):
            await prefs.update(*ids, {"sound_volume": True})
        assert (await prefs.get_or_create(*ids)).sound_volume == 50

    async def test_dnd_needs_both_times(self, prefs, ids):
        with pytest.raises(ValidationError):
            await prefs.update(*ids, {"dnd_enabled": True, "dnd_start_time": "22:00"})
        pref = await prefs.update(*ids, {"dnd_enabled": True, "dnd_start_time": "22:00", "dnd_end_time": "07:00"})
        assert (pref.dnd_start_time, pref.dnd_end_time) == ("22:00", "07:00")

    async def test_category_overrides_merge_and_remove(self, prefs, ids):
        await prefs.update(*ids, {"category_preferences": {"welcome": {"email": False}}})
        pref = await prefs.update(*ids, {"category_preferences": {"member_joined": {"inApp": False}}})
        assert pref.category_preferences[NotificationCategory.WELCOME].email is False
        assert pref.category_preferences[NotificationCategory.MEMBER_JOINED].in_app is False

        pref = await prefs.update(*ids, {"category_preferences": {"welcome": None}})
        assert NotificationCategory.WELCOME not in pref.category_preferences
        assert NotificationCategory.MEMBER_JOINED in pref.category_preferences


class TestCategoryEnabled:
    """Channel decisions through the service."""

    async def test_no_row_fails_open_without_creating_one(self, prefs, ids):
        assert await prefs.is_category_enabled(*ids, NotificationCategory.WELCOME, Channel.EMAIL) is True
        assert await prefs.repo.get(*ids) is None

    async def test_override_disables_channel(self, prefs, ids):
        await prefs.update(*ids, {"category_preferences": {"welcome": {"email": False}}})
        assert await prefs.is_category_enabled(*ids, NotificationCategory.WELCOME, Channel.EMAIL) is False
        assert await prefs.is_category_enabled(*ids, NotificationCategory.WELCOME, Channel.IN_APP) is True

    async def test_always_send_ignores_preferences(self, prefs, ids):
        await prefs.update(*ids, {"email_enabled": False, "in_app_enabled": False})
        assert await prefs.is_category_enabled(*ids, NotificationCategory.PASSWORD_CHANGED, Channel.EMAIL) is True


class TestPause:
    """Pause and resume."""

    async def test_preset_pause(self, prefs, ids, clock):
        pref = await prefs.pause(*ids, PauseDuration.FOUR_HOURS)
        assert pref.paused_until == clock.now + timedelta(hours=4)
        assert await prefs.is_paused(*ids) is True
        assert await prefs.is_quiet(*ids) is True
        clock.advance(hours=5)
        assert await prefs.is_paused(*ids) is False

    async def test_custom_pause(self, prefs, ids, clock):
        until = clock.now + timedelta(days=2)
        pref = await prefs.pause(*ids, PauseDuration.CUSTOM, until)
        assert pref.paused_until == until
        with pytest.raises(ValidationError):
            await prefs.pause(*ids, PauseDuration.CUSTOM)
        with pytest.raises(ValidationError):
            await prefs.pause(*ids, PauseDuration.CUSTOM, clock.now - timedelta(minutes=1))

    async def test_resume(self, prefs, ids):
        await prefs.pause(*ids, PauseDuration.ONE_HOUR)
        pref = await prefs.resume(*ids)
        assert pref.paused_until is None
        assert await prefs.is_paused(*ids) is False
