"""Do-not-disturb and pause evaluation."""
import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from notifyhub.domain.common.errors import ValidationError
from notifyhub.domain.notifications.models import NotificationPreference

TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time_of_day(value: str) -> time:
    """Parse an HH:MM string; raises ValidationError when malformed."""
    match = TIME_OF_DAY.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time of day {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def in_window(current: time, start: time, end: time) -> bool:
    """Half-open [start, end) window that may wrap past midnight."""
    if start == end:
        return False
    if start < end:
        return start <= current < end
    return current >= start or current < end


def is_paused(preference: Optional[NotificationPreference], now: datetime) -> bool:
    return bool(preference and preference.paused_until and preference.paused_until > now)


def dnd_window_end(
    preference: Optional[NotificationPreference],
    now: datetime,
    tz_name: str = "UTC",
) -> Optional[datetime]:
    """End of the DND window `now` falls in, as naive UTC; None outside the window."""
    if not (preference and preference.dnd_enabled and preference.dnd_start_time and preference.dnd_end_time):
        return None
    local = now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))
    end = parse_time_of_day(preference.dnd_end_time)
    if not in_window(
        local.time().replace(second=0, microsecond=0),
        parse_time_of_day(preference.dnd_start_time),
        end,
    ):
        return None
    end_local = local.replace(hour=end.hour, minute=end.minute, second=0, microsecond=0)
    if end_local <= local:
        end_local += timedelta(days=1)
    return end_local.astimezone(timezone.utc).replace(tzinfo=None)


def is_quiet(
    preference: Optional[NotificationPreference],
    now: datetime,
    tz_name: str = "UTC",
) -> bool:
    """True when the preference is paused or the local time falls in the DND window.

    `now` is naive UTC, like every stored timestamp.
    """
    return quiet_until(preference, now, tz_name) is not None


def quiet_until(
    preference: Optional[NotificationPreference],
    now: datetime,
    tz_name: str = "UTC",
) -> Optional[datetime]:
    """When delivery may resume, as naive UTC; None when not quiet now.

    A pause that ends inside the DND window runs on to the end of that window.
    """
    if preference is None:
        return None
    resume_at = preference.paused_until if is_paused(preference, now) else now
    window_end = dnd_window_end(preference, resume_at, tz_name)
    if window_end is not None:
        return window_end
    return resume_at if resume_at > now else None
