from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from yournal.utils.time_utils import utc_now

DEFAULT_WINDOW_DAYS = 7


@dataclass(frozen=True)
class TimeWindow:
    """Half-open ``[start, end)`` instant range."""

    start: datetime
    end: datetime
    label: str

    def contains(self, value: datetime) -> bool:
        return self.start <= value < self.end


def resolve_time_window(
    text: str,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> TimeWindow:
    """Map a temporal question to a concrete window.

    Phrases are checked in a fixed order (yesterday, today, last week,
    this week). Anything else, including "recent", "past" or "ago"
    phrasing, gets the trailing week up to the end of today. Never raises.
    """

    zone = tz or timezone.utc
    current = (now or utc_now()).astimezone(zone)
    today = datetime.combine(current.date(), time.min, tzinfo=zone)
    tomorrow = today + timedelta(days=1)
    lowered = (text or "").lower()

    if "yesterday" in lowered:
        return TimeWindow(today - timedelta(days=1), today, "yesterday")
    if "today" in lowered:
        return TimeWindow(today, tomorrow, "today")
    if "last week" in lowered:
        return TimeWindow(today - timedelta(days=DEFAULT_WINDOW_DAYS), today, "last week")
    if "this week" in lowered:
        # Weeks start on Sunday.
        days_since_sunday = (today.weekday() + 1) % 7
        return TimeWindow(today - timedelta(days=days_since_sunday), tomorrow, "this week")
    return TimeWindow(today - timedelta(days=DEFAULT_WINDOW_DAYS), tomorrow, "recent")
