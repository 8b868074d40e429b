"""Internal service-to-service routes."""
from fastapi import APIRouter

from notifyhub.api.internal import routes_events

router = APIRouter()

router.include_router(routes_events.router, prefix="/internal", tags=["internal"])
