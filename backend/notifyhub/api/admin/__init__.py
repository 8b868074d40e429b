"""Admin API routes."""
from fastapi import APIRouter

from notifyhub.api.admin import routes_reminders

router = APIRouter()

router.include_router(routes_reminders.router, prefix="/admin/reminders", tags=["admin"])
