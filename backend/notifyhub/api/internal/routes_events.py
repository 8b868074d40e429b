"""Security event intake. Delivery runs in the background; callers never wait on email."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from notifyhub.api.deps import get_container
from notifyhub.container import ServiceContainer
from notifyhub.services.notification_configs import get_event_config

router = APIRouter()


class EventRequest(BaseModel):
    """A named account event for one user."""
    event: str
    user_id: str
    tenant_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def submit_event(request: EventRequest, container: ServiceContainer = Depends(get_container)):
    # Unknown events are rejected up front (422) instead of failing in the background.
    get_event_config(request.event)
    await container.notify_event_in_background(request.event, request.user_id, request.tenant_id, request.details)
    return {"accepted": True, "event": request.event}
