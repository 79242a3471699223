"""Public availability: open slots for an artist over a date range.

Candidate windows come from a slot source (the artist's working hours, or
the Cal.com embed). Every source goes through the same pipeline: clip to
the range and the lead time, subtract the conflict index, step through the
free pieces, and drop anything the index still reports as blocked.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Callable, Iterable, Iterator, Protocol
from zoneinfo import ZoneInfo

from inkslot.app.core.constants import (
    AVAILABILITY_WINDOW_DAYS,
    DEFAULT_SLOT_STEP_MINUTES,
    MAX_SERVICE_DURATION_MINUTES,
    MIN_SERVICE_DURATION_MINUTES,
)
from inkslot.app.domain.intervals import TimeInterval, iter_steps, subtract
from inkslot.app.domain.models import Artist, Offering, OfferingKind, OfferingStatus
from inkslot.app.integrations.calcom import CalComClient
from inkslot.app.services.conflicts import ConflictIndex
from inkslot.app.services.errors import ArtistOrServiceNotFound, InvalidInput, ServiceUnavailable
from inkslot.app.services.working_hours import WorkingHoursResolver
from inkslot.config import resolve_timezone

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Slot:
    date: str
    start_time: str
    end_time: str
    iso_start: str
    available: bool = True

    @classmethod
    def from_interval(cls, interval: TimeInterval, tz: ZoneInfo) -> "Slot":
        local_start = interval.start.astimezone(tz)
        local_end = interval.end.astimezone(tz)
        return cls(
            date=local_start.strftime("%Y-%m-%d"),
            start_time=local_start.strftime("%H:%M"),
            end_time=local_end.strftime("%H:%M"),
            iso_start=interval.start.astimezone(UTC).isoformat().replace("+00:00", "Z"),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "isoStart": self.iso_start,
            "available": self.available,
        }


@dataclass(frozen=True)
class AvailabilityQuery:
    artist_id: uuid.UUID
    range_start: datetime | None = None
    range_end: datetime | None = None
    duration_minutes: int | None = None
    step_minutes: int | None = None
    offering_id: uuid.UUID | None = None
    # Local calendar day in the artist's timezone; overrides the range
    day: date | None = None
    # Without ``day``, use the artist's current local day
    single_day: bool = False


@dataclass
class Availability:
    timezone: str
    duration_minutes: int
    step_minutes: int
    slots: Iterator[Slot]


def validate_duration(minutes: int | None) -> int:
    try:
        value = int(minutes)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise InvalidInput("duration_minutes must be an integer") from None
    if not MIN_SERVICE_DURATION_MINUTES <= value <= MAX_SERVICE_DURATION_MINUTES:
        raise InvalidInput(
            f"duration must be between {MIN_SERVICE_DURATION_MINUTES} and {MAX_SERVICE_DURATION_MINUTES} minutes"
        )
    return value


def require_aware(value: datetime, field: str) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidInput(f"{field} must include a timezone offset")
    return value.astimezone(UTC)


def default_step_for(offering: Offering | None, duration_minutes: int) -> int:
    """Flashes step by their own duration, services by their configured step."""
    if offering is None or offering.kind == OfferingKind.FLASH:
        return duration_minutes
    return int(offering.slot_step_minutes or DEFAULT_SLOT_STEP_MINUTES)


def resolve_duration(offering: Offering | None, requested: int | None) -> int:
    """Flashes always take their own length; services accept an override."""
    if offering is not None and (requested is None or offering.kind == OfferingKind.FLASH):
        return validate_duration(offering.duration_minutes)
    if requested is None:
        raise InvalidInput("duration_minutes or offering_id is required")
    return validate_duration(requested)


def ensure_offered(offering: Offering) -> None:
    if offering.status == OfferingStatus.DISABLED:
        raise ServiceUnavailable("offering is disabled")
    if offering.is_sold_out:
        raise ServiceUnavailable("offering is sold out")


def earliest_bookable(now: datetime, lead_time_hours: int | None) -> datetime:
    return now + timedelta(hours=max(0, int(lead_time_hours or 0)))


def align_up(anchor: datetime, lower: datetime, step: timedelta) -> datetime:
    """First instant ``>= lower`` on the grid ``anchor + k * step``."""
    if lower <= anchor:
        return anchor
    k = math.ceil((lower - anchor) / step)
    return anchor + k * step


def generate_slots(
    windows: Iterable[TimeInterval],
    index: ConflictIndex,
    *,
    duration: timedelta,
    step: timedelta,
    now: datetime,
    earliest: datetime,
    tz: ZoneInfo,
    range_start: datetime | None = None,
    range_end: datetime | None = None,
) -> Iterator[Slot]:
    """Yield slots in ascending order.

    Each window is clipped to the range and to ``earliest`` on its own step
    grid (anchored at the window start), then the blocked ranges are
    subtracted before stepping, so no candidate can straddle a reservation.
    """
    floor = earliest if range_start is None else max(earliest, range_start)
    for window in sorted(windows, key=lambda w: w.start):
        lower = align_up(window.start, floor, step)
        if lower <= now:
            lower += step
        usable = window.clip(start=lower, end=range_end)
        if usable is None:
            continue
        for free in subtract(usable, index.blocked):
            for candidate in iter_steps(free, duration, step):
                if index.is_blocked(candidate):
                    continue
                yield Slot.from_interval(candidate, tz)


class SlotSource(Protocol):
    async def windows(
        self, artist: Artist, range_start: datetime, range_end: datetime, tz: ZoneInfo, duration: timedelta
    ) -> list[TimeInterval]:
        """Intervals within which candidate starts may be placed."""
        ...


class WorkingHoursSlotSource:
    def __init__(self, store) -> None:
        self._resolver = WorkingHoursResolver(store)

    async def windows(
        self, artist: Artist, range_start: datetime, range_end: datetime, tz: ZoneInfo, duration: timedelta
    ) -> list[TimeInterval]:
        # Unclipped days keep the opening time as the step anchor
        return await self._resolver.intervals(artist.id, range_start, range_end, tz, clip=False)


class EmbedSlotSource:
    """Slots reported by the artist's Cal.com event type.

    Each reported slot becomes a window exactly one service long, so the
    shared pipeline keeps or drops it whole.
    """

    def __init__(self, client: CalComClient) -> None:
        self._client = client

    async def windows(
        self, artist: Artist, range_start: datetime, range_end: datetime, tz: ZoneInfo, duration: timedelta
    ) -> list[TimeInterval]:
        if not (artist.cal_com_username and artist.cal_com_event_type_id):
            raise InvalidInput("Cal.com is not configured for this artist")
        first = range_start.astimezone(tz).date()
        last = (range_end - timedelta(microseconds=1)).astimezone(tz).date()
        days: list[date] = []
        day = first
        while day <= last:
            days.append(day)
            day += timedelta(days=1)
        batches = await asyncio.gather(
            *(
                self._client.get_available_slots(artist.cal_com_username, artist.cal_com_event_type_id, d, tz)
                for d in days
            )
        )
        out: list[TimeInterval] = []
        for batch in batches:
            for reported in batch:
                candidate = TimeInterval(reported.start, reported.start + duration)
                if range_start <= candidate.start and candidate.end <= range_end:
                    out.append(candidate)
        return out


class SlotGenerator:
    def __init__(self, store, *, clock: Clock = utc_now, source: SlotSource | None = None) -> None:
        self._store = store
        self._clock = clock
        self._source: SlotSource = source or WorkingHoursSlotSource(store)

    async def _resolve(self, query: AvailabilityQuery) -> tuple[Artist, Offering | None]:
        artist = await self._store.get_artist(query.artist_id)
        if artist is None:
            raise ArtistOrServiceNotFound("artist not found")
        offering: Offering | None = None
        if query.offering_id is not None:
            offering = await self._store.get_offering(query.offering_id)
            if offering is None or offering.artist_id != artist.id:
                raise ArtistOrServiceNotFound("offering not found")
            ensure_offered(offering)
        return artist, offering

    async def availability(self, query: AvailabilityQuery, *, source: SlotSource | None = None) -> Availability:
        now = self._clock()
        if query.duration_minutes is None and query.offering_id is None:
            raise InvalidInput("duration_minutes or offering_id is required")
        if query.duration_minutes is not None:
            validate_duration(query.duration_minutes)
        if query.step_minutes is not None and int(query.step_minutes) <= 0:
            raise InvalidInput("step_minutes must be positive")
        range_start = require_aware(query.range_start, "range_start") if query.range_start else now
        range_end = (
            require_aware(query.range_end, "range_end")
            if query.range_end
            else range_start + timedelta(days=AVAILABILITY_WINDOW_DAYS)
        )
        if range_start >= range_end:
            raise InvalidInput("range_start must precede range_end")

        artist, offering = await self._resolve(query)
        tz = resolve_timezone(artist.timezone)
        if query.day is not None or query.single_day:
            range_start, range_end = day_range(query.day or now.astimezone(tz).date(), tz)
        duration_minutes = resolve_duration(offering, query.duration_minutes)
        step_minutes = int(query.step_minutes or default_step_for(offering, duration_minutes))

        duration = timedelta(minutes=duration_minutes)
        slot_source = source or self._source

        # Both reads are independent; join them before subtracting
        windows, index = await asyncio.gather(
            slot_source.windows(artist, range_start, range_end, tz, duration),
            ConflictIndex.load(self._store, artist.id, range_start, range_end, artist.buffer_minutes),
        )
        logger.debug(
            "Availability artist=%s windows=%d blocked=%d duration=%s step=%s",
            artist.id,
            len(windows),
            len(index),
            duration_minutes,
            step_minutes,
        )
        slots = generate_slots(
            windows,
            index,
            duration=duration,
            step=timedelta(minutes=step_minutes),
            now=now,
            earliest=earliest_bookable(now, artist.minimum_lead_time_hours),
            tz=tz,
            range_start=range_start,
            range_end=range_end,
        )
        return Availability(
            timezone=tz.key,
            duration_minutes=duration_minutes,
            step_minutes=step_minutes,
            slots=slots,
        )


def day_range(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds of a local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


__all__ = [
    "Slot",
    "AvailabilityQuery",
    "Availability",
    "SlotSource",
    "WorkingHoursSlotSource",
    "EmbedSlotSource",
    "SlotGenerator",
    "generate_slots",
    "validate_duration",
    "require_aware",
    "default_step_for",
    "ensure_offered",
    "resolve_duration",
    "earliest_bookable",
    "align_up",
    "day_range",
    "utc_now",
]
