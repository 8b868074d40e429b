"""Reminder repository interfaces."""
from datetime import datetime
from typing import Optional, Protocol

from notifyhub.domain.reminders.models import Campaign, ReminderLog, ReminderSubject, Stage


class ReminderLogRepository(Protocol):
    """Dedup ledger."""

    async def exists(self, user_id: Optional[str], tenant_id: Optional[str], campaign: Campaign, stage: Stage) -> bool:
        ...

    async def record(self, entry: ReminderLog) -> bool:
        """Append an entry; False when (subject, campaign, stage) is already recorded."""
        ...

    async def list_for_subject(self, user_id: Optional[str], tenant_id: Optional[str]) -> list[ReminderLog]:
        ...


class SubjectRepository(Protocol):
    """Eligible populations for each campaign."""

    async def mfa_candidates(self, default_deadline_days: int) -> list[ReminderSubject]:
        ...

    async def phone_candidates(self, default_deadline_days: int) -> list[ReminderSubject]:
        ...

    async def trial_candidates(self) -> list[ReminderSubject]:
        ...

    async def deletion_candidates(self, now: datetime) -> list[ReminderSubject]:
        ...
