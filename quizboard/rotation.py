"""Rotation windows for daily content, anchored to a fixed local reset hour.

A window runs from ``reset_hour:00`` local time to the next day's
``reset_hour:00``: 24 hours, or 23/25 hours across a DST change. The start is
inclusive and the end exclusive, so every instant belongs to exactly one
window and consecutive windows touch.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .errors import ValidationError

TIME_FILTERS = ("all-time", "this-week", "this-month")


@dataclass(frozen=True)
class RotationWindow:
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start_utc <= _aware(instant).astimezone(timezone.utc) < self.end_utc

    @property
    def next_reset(self) -> datetime:
        return self.end

    @property
    def start_utc(self) -> datetime:
        return self.start.astimezone(timezone.utc)

    @property
    def end_utc(self) -> datetime:
        return self.end.astimezone(timezone.utc)


def _aware(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


class RotationSchedule:
    """The one place that knows the rotation timezone and reset hour."""

    def __init__(self, tz_name: str, reset_hour: int = 8):
        if not 0 <= reset_hour <= 23:
            raise ValueError(f"reset hour out of range: {reset_hour}")
        self.tz = ZoneInfo(tz_name)
        self.reset_hour = reset_hour

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def local(self, instant: datetime = None) -> datetime:
        if instant is None:
            return self.now()
        return _aware(instant).astimezone(self.tz)

    def window_at(self, instant: datetime = None) -> RotationWindow:
        local_now = self.local(instant)
        day = local_now.date()
        if local_now.hour < self.reset_hour:
            day -= timedelta(days=1)
        start = datetime.combine(day, time(self.reset_hour), tzinfo=self.tz)
        # next local reset, so windows stay contiguous; 23h or 25h across a DST change
        end = datetime.combine(day + timedelta(days=1), time(self.reset_hour), tzinfo=self.tz)
        return RotationWindow(start=start, end=end)

    def next_reset(self, instant: datetime = None) -> datetime:
        return self.window_at(instant).end

    def time_until_reset(self, instant: datetime = None) -> str:
        """Human readable countdown such as ``5h 23m`` or ``23m``."""
        local_now = self.local(instant)
        remaining = self.window_at(local_now).end_utc - local_now.astimezone(timezone.utc)
        minutes = int(remaining.total_seconds() // 60)
        if minutes < 0:
            return "0m"
        hours, minutes = divmod(minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    def period_start(self, time_filter: str, instant: datetime = None):
        """Start of a leaderboard period, or None for all-time.

        Weeks start Monday 00:00 local and months on the 1st 00:00 local.
        """
        if time_filter == "all-time":
            return None
        today = self.local(instant).date()
        if time_filter == "this-week":
            day = today - timedelta(days=today.weekday())
        elif time_filter == "this-month":
            day = today.replace(day=1)
        else:
            raise ValidationError(f"Unknown time filter: {time_filter}")
        return datetime.combine(day, time(0), tzinfo=self.tz)
