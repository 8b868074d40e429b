"""Reminder scheduling admin routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from notifyhub.api.deps import get_container
from notifyhub.container import ServiceContainer

router = APIRouter()


class TriggerResponse(BaseModel):
    """Manual trigger response."""
    kind: str
    job_id: str


class ScheduleResponse(BaseModel):
    """Registered recurring trigger."""
    key: str
    job_type: str
    cron: str
    timezone: str
    next_run_at: Optional[datetime] = None


@router.post("/trigger/{kind}", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_reminders(kind: str, container: ServiceContainer = Depends(get_container)):
    """Queue one scan now (mfa, phone, trial, trial_expiration, tenant_deletion)."""
    job_id = await container.scheduler.trigger_manual(kind)
    return TriggerResponse(kind=kind, job_id=job_id)


@router.get("/schedules", response_model=List[ScheduleResponse])
async def list_schedules(container: ServiceContainer = Depends(get_container)):
    schedules = await container.scheduler.list_schedules()
    return [
        ScheduleResponse(
            key=s.key,
            job_type=s.job_type,
            cron=s.cron,
            timezone=s.timezone,
            next_run_at=s.next_run_at,
        )
        for s in schedules
    ]


@router.get("/queue")
async def queue_counts(container: ServiceContainer = Depends(get_container)):
    """Job counts per state."""
    return await container.queue.counts()
