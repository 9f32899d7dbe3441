"""
Clock and calendar adapter.

Supplies the current time, the logical queue day and the time-of-day bucket
used by the wait-time estimator.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import get_settings


class TimeBucket(str, Enum):
    PEAK = "peak"
    LULL = "lull"
    NORMAL = "normal"


class Clock:
    """Wall clock pinned to the queue timezone."""

    def __init__(self, tz_name: Optional[str] = None):
        settings = get_settings()
        self.tz = ZoneInfo(tz_name or settings.QUEUE_TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self.tz)

    def queue_day(self, at: Optional[datetime] = None) -> str:
        """Calendar date (YYYY-MM-DD) of `at`, or of now, in the queue timezone."""
        moment = at.astimezone(self.tz) if at else self.now()
        return moment.strftime("%Y-%m-%d")

    def hour_of_day(self, at: Optional[datetime] = None) -> int:
        moment = at.astimezone(self.tz) if at else self.now()
        return moment.hour


class FixedClock(Clock):
    """Clock frozen at a given instant (tests and replays)."""

    def __init__(self, at: datetime, tz_name: Optional[str] = None):
        super().__init__(tz_name)
        if at.tzinfo is None:
            at = at.replace(tzinfo=self.tz)
        self.at = at

    def now(self) -> datetime:
        return self.at.astimezone(self.tz)

    def advance(self, **delta) -> None:
        self.at = self.at + timedelta(**delta)


def time_bucket(hour: int) -> TimeBucket:
    """Classify an hour of day (0-23) into its tariff bucket."""
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be within 0..23, got {hour}")

    settings = get_settings()
    if settings.PEAK_START_HOUR <= hour <= settings.PEAK_END_HOUR:
        return TimeBucket.PEAK
    if settings.LULL_START_HOUR <= hour <= settings.LULL_END_HOUR:
        return TimeBucket.LULL
    return TimeBucket.NORMAL


def parse_slot_hour(slot_time: Optional[str]) -> Optional[int]:
    """Hour component of an "HH:MM" slot, or None when absent or malformed."""
    if not slot_time:
        return None
    try:
        hour = int(slot_time.split(":")[0])
    except ValueError:
        return None
    return hour if 0 <= hour <= 23 else None
