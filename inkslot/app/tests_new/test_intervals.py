from datetime import UTC, datetime, timedelta

import pytest

from inkslot.app.domain.intervals import TimeInterval, iter_steps, merge, overlaps, subtract


def h(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, 3, hour, minute, tzinfo=UTC)


def iv(a: int, b: int) -> TimeInterval:
    return TimeInterval(h(a), h(b))


def test_interval_rejects_empty_or_reversed():
    with pytest.raises(ValueError):
        TimeInterval(h(10), h(10))
    with pytest.raises(ValueError):
        TimeInterval(h(11), h(10))


def test_touching_intervals_do_not_overlap():
    assert not overlaps(iv(9, 10), iv(10, 11))
    assert overlaps(iv(9, 11), iv(10, 12))
    assert iv(9, 12).contains(iv(10, 11))
    assert not iv(9, 12).contains(iv(11, 13))


def test_clip_returns_none_when_nothing_left():
    assert iv(9, 18).clip(h(12)) == iv(12, 18)
    assert iv(9, 18).clip(end=h(10)) == iv(9, 10)
    assert iv(9, 10).clip(h(10)) is None


def test_merge_coalesces_overlapping_and_touching():
    merged = merge([iv(13, 14), iv(9, 10), iv(10, 11), iv(9, 10), iv(15, 17), iv(16, 18)])
    assert merged == [iv(9, 11), iv(13, 14), iv(15, 18)]


def test_subtract_leaves_gaps_between_blocks():
    free = subtract(iv(9, 18), [iv(12, 13), iv(10, 11), iv(17, 20)])
    assert free == [iv(9, 10), iv(11, 12), iv(13, 17)]


def test_subtract_fully_blocked_and_unblocked():
    assert subtract(iv(9, 18), [iv(8, 19)]) == []
    assert subtract(iv(9, 18), []) == [iv(9, 18)]
    assert subtract(iv(9, 18), [iv(6, 7), iv(19, 20)]) == [iv(9, 18)]


def test_iter_steps_never_truncates_last_candidate():
    starts = [c.start for c in iter_steps(TimeInterval(h(9), h(11, 30)), timedelta(hours=1), timedelta(minutes=30))]
    assert starts == [h(9), h(9, 30), h(10), h(10, 30)]


def test_iter_steps_requires_positive_sizes():
    with pytest.raises(ValueError):
        list(iter_steps(iv(9, 10), timedelta(0), timedelta(minutes=30)))
