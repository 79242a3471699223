import uuid
from datetime import UTC, date, datetime, time
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from inkslot.app.core import constants
from inkslot.app.domain.intervals import TimeInterval
from inkslot.app.services import working_hours as wh


def rule(rule_id, day, start, end, active=True):
    return SimpleNamespace(id=rule_id, day_of_week=day, start_time=start, end_time=end, is_active=active)


def test_no_rules_falls_back_to_default_week():
    week = wh.effective_week([])
    assert set(week) == set(constants.DEFAULT_WORK_DAYS)


def test_first_active_rule_per_day_wins():
    week = wh.effective_week(
        [
            rule(3, 1, time(12), time(20)),
            rule(1, 1, time(9), time(18), active=False),
            rule(2, 1, time(10), time(16)),
            rule(4, 2, time(15), time(10)),
        ]
    )
    assert week == {1: wh.DayWindow(time(10), time(16))}


def test_only_inactive_rules_means_closed_week():
    assert wh.effective_week([rule(1, 1, time(9), time(18), active=False)]) == {}


def test_iter_working_intervals_skips_closed_days_and_leaves():
    week = {1: wh.DayWindow(time(9), time(18)), 3: wh.DayWindow(time(12), time(14))}
    start = datetime(2024, 6, 3, tzinfo=UTC)
    end = datetime(2024, 6, 17, tzinfo=UTC)
    got = list(wh.iter_working_intervals(week, start, end, ZoneInfo("UTC"), leaves={date(2024, 6, 10)}))
    assert [(i.start, i.end) for i in got] == [
        (datetime(2024, 6, 3, 9, tzinfo=UTC), datetime(2024, 6, 3, 18, tzinfo=UTC)),
        (datetime(2024, 6, 5, 12, tzinfo=UTC), datetime(2024, 6, 5, 14, tzinfo=UTC)),
        (datetime(2024, 6, 12, 12, tzinfo=UTC), datetime(2024, 6, 12, 14, tzinfo=UTC)),
    ]


def test_iter_working_intervals_converts_local_hours():
    week = {1: wh.DayWindow(time(9), time(18))}
    start = datetime(2024, 6, 3, tzinfo=UTC)
    end = datetime(2024, 6, 4, tzinfo=UTC)
    (only,) = wh.iter_working_intervals(week, start, end, ZoneInfo("Europe/Paris"))
    # CEST is UTC+2 in June
    assert only.start == datetime(2024, 6, 3, 7, tzinfo=UTC)
    assert only.end == datetime(2024, 6, 3, 16, tzinfo=UTC)


def test_partial_first_day_is_clipped_unless_disabled():
    week = {1: wh.DayWindow(time(9), time(18))}
    start = datetime(2024, 6, 3, 13, 15, tzinfo=UTC)
    end = datetime(2024, 6, 4, tzinfo=UTC)
    (clipped,) = wh.iter_working_intervals(week, start, end, ZoneInfo("UTC"))
    (whole,) = wh.iter_working_intervals(week, start, end, ZoneInfo("UTC"), clip=False)
    assert clipped.start == start
    assert whole.start == datetime(2024, 6, 3, 9, tzinfo=UTC)


def test_day_entirely_before_range_is_dropped():
    week = {1: wh.DayWindow(time(9), time(18))}
    start = datetime(2024, 6, 3, 19, tzinfo=UTC)
    end = datetime(2024, 6, 4, tzinfo=UTC)
    assert list(wh.iter_working_intervals(week, start, end, ZoneInfo("UTC"), clip=False)) == []


class _Store:
    def __init__(self, rules, leaves=()):
        self.rules = rules
        self.leaves = set(leaves)

    async def list_working_hours(self, artist_id):
        return self.rules

    async def list_leaves(self, artist_id, start, end):
        return {d for d in self.leaves if start <= d <= end}


@pytest.mark.asyncio
async def test_resolver_covers_checks_whole_candidate():
    resolver = wh.WorkingHoursResolver(_Store([rule(1, 1, time(9), time(18))]))
    tz = ZoneInfo("UTC")
    artist_id = uuid.uuid4()
    inside = TimeInterval(datetime(2024, 6, 3, 17, tzinfo=UTC), datetime(2024, 6, 3, 18, tzinfo=UTC))
    crossing = TimeInterval(datetime(2024, 6, 3, 17, 30, tzinfo=UTC), datetime(2024, 6, 3, 18, 30, tzinfo=UTC))
    tuesday = TimeInterval(datetime(2024, 6, 4, 10, tzinfo=UTC), datetime(2024, 6, 4, 11, tzinfo=UTC))
    assert await resolver.covers(artist_id, inside, tz) is True
    assert await resolver.covers(artist_id, crossing, tz) is False
    assert await resolver.covers(artist_id, tuesday, tz) is False


@pytest.mark.asyncio
async def test_resolver_honours_leave_days():
    store = _Store([rule(1, 1, time(9), time(18))], leaves=[date(2024, 6, 3)])
    resolver = wh.WorkingHoursResolver(store)
    got = await resolver.intervals(
        uuid.uuid4(), datetime(2024, 6, 3, tzinfo=UTC), datetime(2024, 6, 11, tzinfo=UTC), ZoneInfo("UTC")
    )
    assert [i.start.date() for i in got] == [date(2024, 6, 10)]
