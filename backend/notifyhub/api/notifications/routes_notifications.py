"""Notification inbox routes."""
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from notifyhub.api.deps import Identity, get_identity, get_services
from notifyhub.container import Services
from notifyhub.domain.notifications.models import Notification

router = APIRouter()


class NotificationResponse(BaseModel):
    """Notification response."""
    id: str
    type: str
    category: str
    title: str
    message: str
    severity: str
    action_route: Optional[str] = None
    action_label: Optional[str] = None
    metadata: dict[str, Any]
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, n: Notification) -> "NotificationResponse":
        return cls(
            id=n.id,
            type=n.type.value,
            category=n.category.value,
            title=n.title,
            message=n.message,
            severity=n.severity.value,
            action_route=n.action_route,
            action_label=n.action_label,
            metadata=n.metadata,
            is_read=n.is_read,
            read_at=n.read_at,
            created_at=n.created_at,
            expires_at=n.expires_at,
        )


class NotificationListResponse(BaseModel):
    """One page of notifications."""
    items: List[NotificationResponse]
    has_more: bool
    next_cursor: Optional[str] = None


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    unread_only: bool = False,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """List the caller's notifications, newest first."""
    page = await services.notifications.list(
        identity.user_id, identity.tenant_id, cursor=cursor, limit=limit, unread_only=unread_only
    )
    return NotificationListResponse(
        items=[NotificationResponse.from_entity(n) for n in page.items],
        has_more=page.has_more,
        next_cursor=page.next_cursor,
    )


@router.get("/unread-count")
async def get_unread_count(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    count = await services.notifications.unread_count(identity.user_id, identity.tenant_id)
    return {"unread": count}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Mark a notification as read. 404 if it is not the caller's."""
    notification = await services.notifications.mark_read(notification_id, identity.user_id, identity.tenant_id)
    return NotificationResponse.from_entity(notification)


@router.post("/read-all")
async def mark_all_read(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    updated = await services.notifications.mark_all_read(identity.user_id, identity.tenant_id)
    return {"updated": updated}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    await services.notifications.delete(notification_id, identity.user_id, identity.tenant_id)
