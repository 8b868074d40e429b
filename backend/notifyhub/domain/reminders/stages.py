"""Deadline math and stage selection."""
import math
from datetime import datetime, timedelta

from notifyhub.domain.reminders.models import Stage, StageThresholds

DAY = timedelta(days=1)


def compute_deadline(anchor: datetime, offset_days: int = 0) -> datetime:
    """Deadline = anchor + offset days (offset 0 when the anchor is the deadline)."""
    return anchor + timedelta(days=offset_days)


def days_remaining(deadline: datetime, now: datetime) -> int:
    """Whole days left before the deadline, rounded up."""
    return math.ceil((deadline - now) / DAY)


def select_stage(remaining: int, thresholds: StageThresholds = StageThresholds()) -> Stage:
    """Pick the reminder stage for the days remaining.

    Final wins when both thresholds match. Past deadlines get no reminder;
    those are handled by the expiration/deletion jobs.
    """
    if remaining < 0:
        return Stage.NONE
    if remaining <= thresholds.final:
        return Stage.FINAL
    if remaining <= thresholds.first:
        return Stage.FIRST
    return Stage.NONE
