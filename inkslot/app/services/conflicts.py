"""Snapshot of an artist's blocking reservations for one computation."""

from __future__ import annotations

import bisect
import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable

from inkslot.app.domain.intervals import TimeInterval, merge
from inkslot.app.domain.models import Reservation

logger = logging.getLogger(__name__)


class ConflictIndex:
    """Overlap predicate over pending/confirmed reservations.

    Each reservation blocks ``[start_time, blocked_until)``. A candidate
    ``[s, e)`` also drags the artist's buffer behind it, so it collides when
    ``[s, e + buffer)`` meets a blocked range. Ranges are stored widened
    backwards by the buffer instead, which lets callers test and subtract
    plain candidate intervals.
    """

    def __init__(self, reservations: Iterable[Reservation] = (), buffer_minutes: int = 0) -> None:
        self.buffer = timedelta(minutes=max(0, int(buffer_minutes or 0)))
        self.reservation_ids: list[uuid.UUID] = []
        ranges: list[TimeInterval] = []
        for res in reservations:
            self.reservation_ids.append(res.id)
            blocked = res.blocked_interval
            ranges.append(TimeInterval(blocked.start - self.buffer, blocked.end))
        self._ranges = merge(ranges)
        self._ends = [r.end for r in self._ranges]

    @classmethod
    async def load(
        cls,
        store,
        artist_id: uuid.UUID,
        range_start: datetime,
        range_end: datetime,
        buffer_minutes: int = 0,
    ) -> "ConflictIndex":
        buffer = timedelta(minutes=max(0, int(buffer_minutes or 0)))
        # Widen the fetch so reservations straddling either edge are seen
        rows = await store.list_blocking_reservations(artist_id, range_start - buffer, range_end + buffer)
        logger.debug("Loaded %d blocking reservations for artist=%s", len(rows), artist_id)
        return cls(rows, buffer_minutes)

    @property
    def blocked(self) -> list[TimeInterval]:
        return list(self._ranges)

    def __len__(self) -> int:
        return len(self.reservation_ids)

    def is_blocked(self, candidate: TimeInterval) -> bool:
        # First merged range ending after the candidate start is the only one
        # that can overlap; ranges are disjoint and sorted.
        idx = bisect.bisect_right(self._ends, candidate.start)
        return idx < len(self._ranges) and self._ranges[idx].start < candidate.end


__all__ = ["ConflictIndex"]
