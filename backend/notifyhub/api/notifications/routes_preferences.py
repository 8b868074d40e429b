"""Notification preference routes."""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from notifyhub.api.deps import Identity, get_identity, get_services
from notifyhub.container import Services
from notifyhub.domain.notifications.models import NotificationPreference, PauseDuration

router = APIRouter()

NULLABLE_FIELDS = {"dnd_start_time", "dnd_end_time"}


class PreferenceResponse(BaseModel):
    """Notification preference response."""
    email_enabled: bool
    in_app_enabled: bool
    sound_enabled: bool
    sound_volume: int
    dnd_enabled: bool
    dnd_start_time: Optional[str] = None
    dnd_end_time: Optional[str] = None
    category_preferences: Dict[str, Dict[str, bool]]
    paused_until: Optional[datetime] = None
    is_paused: bool = False

    @classmethod
    def from_entity(cls, pref: NotificationPreference, now: datetime) -> "PreferenceResponse":
        return cls(
            email_enabled=pref.email_enabled,
            in_app_enabled=pref.in_app_enabled,
            sound_enabled=pref.sound_enabled,
            sound_volume=pref.sound_volume,
            dnd_enabled=pref.dnd_enabled,
            dnd_start_time=pref.dnd_start_time,
            dnd_end_time=pref.dnd_end_time,
            category_preferences={c.value: o.to_dict() for c, o in pref.category_preferences.items()},
            paused_until=pref.paused_until,
            is_paused=pref.paused_until is not None and pref.paused_until > now,
        )


class PreferenceUpdateRequest(BaseModel):
    """Partial preference update. Omitted fields are left unchanged."""
    email_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    sound_enabled: Optional[bool] = None
    sound_volume: Optional[int] = None
    dnd_enabled: Optional[bool] = None
    dnd_start_time: Optional[str] = None
    dnd_end_time: Optional[str] = None
    # A null override removes the category's overrides.
    category_preferences: Optional[Dict[str, Optional[Dict[str, Any]]]] = None


class PauseRequest(BaseModel):
    """Pause request; `until` is required for a custom duration."""
    duration: PauseDuration
    until: Optional[datetime] = None


@router.get("", response_model=PreferenceResponse)
async def get_preferences(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Get the caller's preferences, creating defaults on first access."""
    pref = await services.preferences.get_or_create(identity.user_id, identity.tenant_id)
    return PreferenceResponse.from_entity(pref, services.preferences.clock())


@router.patch("", response_model=PreferenceResponse)
async def update_preferences(
    request: PreferenceUpdateRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    changes = request.model_dump(exclude_unset=True)
    # Only the DND times can be cleared with an explicit null.
    changes = {k: v for k, v in changes.items() if v is not None or k in NULLABLE_FIELDS}
    pref = await services.preferences.update(identity.user_id, identity.tenant_id, changes)
    return PreferenceResponse.from_entity(pref, services.preferences.clock())


@router.post("/pause", response_model=PreferenceResponse)
async def pause_notifications(
    request: PauseRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    pref = await services.preferences.pause(identity.user_id, identity.tenant_id, request.duration, request.until)
    return PreferenceResponse.from_entity(pref, services.preferences.clock())


@router.post("/resume", response_model=PreferenceResponse)
async def resume_notifications(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    pref = await services.preferences.resume(identity.user_id, identity.tenant_id)
    return PreferenceResponse.from_entity(pref, services.preferences.clock())
