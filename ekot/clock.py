"""Slots and local time in the broadcaster's timezone."""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class Slot:
    """One of the fixed daily broadcasts, e.g. ``08:00`` polled from 08:20."""
    label: str
    poll_start_hour: int
    poll_start_minute: int

    @property
    def poll_start_minutes(self) -> int:
        return self.poll_start_hour * 60 + self.poll_start_minute


@dataclass(frozen=True)
class Now:
    date: date
    hour: int
    minute: int

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute


class TimeSource:
    def __init__(self, timezone: str):
        self.tz = ZoneInfo(timezone)

    def now(self, instant: Optional[datetime] = None) -> Now:
        local = (instant or datetime.now(self.tz)).astimezone(self.tz)
        return Now(local.date(), local.hour, local.minute)

    def today(self) -> date:
        return self.now().date

    def local_date(self, instant: datetime) -> date:
        """Calendar date of an aware timestamp in the configured timezone."""
        return instant.astimezone(self.tz).date()
