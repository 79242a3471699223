"""Expand an artist's weekly working-hours rules into concrete UTC intervals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Iterable, Iterator, Sequence
from zoneinfo import ZoneInfo

from inkslot.app.core.constants import (
    DEFAULT_DAY_END_HOUR,
    DEFAULT_DAY_START_HOUR,
    DEFAULT_WORK_DAYS,
)
from inkslot.app.domain.intervals import TimeInterval
from inkslot.app.domain.models import WorkingHour

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayWindow:
    start: time
    end: time


def default_week() -> dict[int, DayWindow]:
    try:
        window = DayWindow(time(hour=DEFAULT_DAY_START_HOUR), time(hour=DEFAULT_DAY_END_HOUR))
    except ValueError:
        logger.warning(
            "Invalid default working hours %s-%s, using 9-18", DEFAULT_DAY_START_HOUR, DEFAULT_DAY_END_HOUR
        )
        window = DayWindow(time(9), time(18))
    return {day: window for day in DEFAULT_WORK_DAYS}


def effective_week(rules: Sequence[WorkingHour]) -> dict[int, DayWindow]:
    """Map ISO weekday to its open window.

    No rules at all means the default week. Otherwise only active rules count,
    and for a weekday with several active rules the first one (lowest id) wins.
    """
    if not rules:
        return default_week()
    week: dict[int, DayWindow] = {}
    for rule in sorted(rules, key=lambda r: r.id or 0):
        if not rule.is_active:
            continue
        day = int(rule.day_of_week)
        if not 1 <= day <= 7 or day in week:
            continue
        if rule.start_time >= rule.end_time:
            logger.debug("Ignoring empty working-hours rule id=%s day=%s", rule.id, day)
            continue
        week[day] = DayWindow(rule.start_time, rule.end_time)
    return week


def iter_working_intervals(
    week: dict[int, DayWindow],
    range_start: datetime,
    range_end: datetime,
    tz: ZoneInfo,
    leaves: Iterable[date] = (),
    clip: bool = True,
) -> Iterator[TimeInterval]:
    """Yield one UTC interval per open local day inside ``[range_start, range_end)``.

    With ``clip`` the first and last days are cut to the range. A day whose
    open window lies entirely outside the range yields nothing either way.
    """
    if range_start >= range_end:
        return
    days_off = set(leaves)
    day = range_start.astimezone(tz).date()
    last_day = range_end.astimezone(tz).date()
    while day <= last_day:
        window = week.get(day.isoweekday())
        if window is not None and day not in days_off:
            opens = datetime.combine(day, window.start, tzinfo=tz).astimezone(UTC)
            closes = datetime.combine(day, window.end, tzinfo=tz).astimezone(UTC)
            if opens < closes and opens < range_end and closes > range_start:
                interval = TimeInterval(opens, closes)
                yield interval.clip(range_start, range_end) if clip else interval
        day += timedelta(days=1)


def local_date_span(range_start: datetime, range_end: datetime, tz: ZoneInfo) -> tuple[date, date]:
    return range_start.astimezone(tz).date(), range_end.astimezone(tz).date()


class WorkingHoursResolver:
    """Load rules and leaves for an artist and expand them on demand.

    Nothing is cached between calls; rules may change between queries.
    """

    def __init__(self, store) -> None:
        self._store = store

    async def intervals(
        self, artist_id, range_start: datetime, range_end: datetime, tz: ZoneInfo, *, clip: bool = True
    ) -> list[TimeInterval]:
        rules = await self._store.list_working_hours(artist_id)
        first, last = local_date_span(range_start, range_end, tz)
        leaves = await self._store.list_leaves(artist_id, first, last)
        return list(iter_working_intervals(effective_week(rules), range_start, range_end, tz, leaves, clip=clip))

    async def covers(self, artist_id, candidate: TimeInterval, tz: ZoneInfo) -> bool:
        """True when ``candidate`` lies entirely inside one working interval."""
        day = timedelta(days=1)
        for interval in await self.intervals(artist_id, candidate.start - day, candidate.end + day, tz):
            if interval.contains(candidate):
                return True
        return False


__all__ = [
    "DayWindow",
    "default_week",
    "effective_week",
    "iter_working_intervals",
    "local_date_span",
    "WorkingHoursResolver",
]
