from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

import config

SUNDAY = 6


class BusinessCalendar:
    """
    Working-day rule used to move missed deliveries forward.

    Only whole weekdays can be marked as non-working; all arithmetic is done on
    calendar dates in the calendar's reference timezone.
    """

    def __init__(self, non_working_weekdays: Iterable[int] = (SUNDAY,), timezone: str = "UTC"):
        days = frozenset(int(d) for d in non_working_weekdays)
        if any(d < 0 or d > 6 for d in days):
            raise ValueError(f"Weekdays must be between 0 (Monday) and 6 (Sunday): {sorted(days)}")
        if len(days) == 7:
            raise ValueError("At least one weekday must be a working day")
        self.non_working_weekdays = days
        self.timezone = ZoneInfo(timezone)

    def to_date(self, value: date | datetime) -> date:
        # datetime is a subclass of date, so check it first
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(self.timezone)
            return value.date()
        return value

    def today(self, now: Optional[datetime] = None) -> date:
        now = now or datetime.now(self.timezone)
        return self.to_date(now)

    def is_business_day(self, day: date | datetime) -> bool:
        return self.to_date(day).weekday() not in self.non_working_weekdays

    def next_business_day(self, day: date | datetime) -> date:
        nxt = self.to_date(day) + timedelta(days=1)
        while nxt.weekday() in self.non_working_weekdays:
            nxt += timedelta(days=1)
        return nxt

    def __repr__(self) -> str:
        return f"BusinessCalendar(non_working_weekdays={sorted(self.non_working_weekdays)}, timezone={self.timezone.key!r})"


def default_calendar() -> BusinessCalendar:
    return BusinessCalendar(
        non_working_weekdays=config.parse_weekdays(config.NON_WORKING_WEEKDAYS),
        timezone=config.BUSINESS_TIMEZONE,
    )
