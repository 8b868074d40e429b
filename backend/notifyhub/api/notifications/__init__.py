"""Notifications API."""
from fastapi import APIRouter

from notifyhub.api.notifications import routes_notifications, routes_preferences

router = APIRouter()

# Preferences first so /notifications/preferences is not captured by /{notification_id}.
router.include_router(routes_preferences.router, prefix="/notifications/preferences", tags=["preferences"])
router.include_router(routes_notifications.router, prefix="/notifications", tags=["notifications"])
