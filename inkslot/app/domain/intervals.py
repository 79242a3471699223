"""Half-open calendar intervals and the merge/subtract math used for slots.

All instants are expected to be timezone-aware. Touching endpoints do not
overlap: ``[09:00, 10:00)`` and ``[10:00, 11:00)`` are disjoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator


@dataclass(frozen=True, slots=True)
class TimeInterval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"interval start must precede end: {self.start} >= {self.end}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def clip(self, start: datetime | None = None, end: datetime | None = None) -> "TimeInterval | None":
        """Return the part of this interval inside ``[start, end)``, or None when empty."""
        lo = self.start if start is None else max(self.start, start)
        hi = self.end if end is None else min(self.end, end)
        if lo >= hi:
            return None
        return TimeInterval(lo, hi)


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    return a.start < b.end and b.start < a.end


def merge(intervals: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Sort and coalesce overlapping or touching intervals."""
    merged: list[TimeInterval] = []
    for item in sorted(intervals, key=lambda iv: (iv.start, iv.end)):
        if merged and item.start <= merged[-1].end:
            last = merged[-1]
            if item.end > last.end:
                merged[-1] = TimeInterval(last.start, item.end)
            continue
        merged.append(item)
    return merged


def subtract(universe: TimeInterval, blocked: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Return the free pieces of ``universe`` once every blocked range is removed.

    ``blocked`` may be unsorted and self-overlapping; it is merged first.
    """
    free: list[TimeInterval] = []
    cursor = universe.start
    for busy in merge(blocked):
        if busy.end <= cursor:
            continue
        if busy.start >= universe.end:
            break
        if busy.start > cursor:
            free.append(TimeInterval(cursor, busy.start))
        cursor = max(cursor, busy.end)
        if cursor >= universe.end:
            break
    if cursor < universe.end:
        free.append(TimeInterval(cursor, universe.end))
    return free


def iter_steps(free: TimeInterval, length: timedelta, step: timedelta) -> Iterator[TimeInterval]:
    """Yield ``length``-long candidates inside ``free`` starting every ``step`` from its start."""
    if length <= timedelta(0) or step <= timedelta(0):
        raise ValueError("length and step must be positive")
    current = free.start
    while current + length <= free.end:
        yield TimeInterval(current, current + length)
        current += step


__all__ = ["TimeInterval", "overlaps", "merge", "subtract", "iter_steps"]
