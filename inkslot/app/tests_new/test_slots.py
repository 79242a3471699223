from datetime import UTC, datetime, timedelta

import pytest

from inkslot.app.domain.intervals import TimeInterval
from inkslot.app.domain.models import BookingStatus, OfferingStatus
from inkslot.app.services.conflicts import ConflictIndex
from inkslot.app.services.errors import ArtistOrServiceNotFound, InvalidInput, ServiceUnavailable
from inkslot.app.services.slots import (
    AvailabilityQuery,
    EmbedSlotSource,
    Slot,
    SlotGenerator,
    align_up,
    default_step_for,
    resolve_duration,
)


def _query(artist, at, **kw):
    kw.setdefault("duration_minutes", 60)
    return AvailabilityQuery(artist_id=artist.id, range_start=at(0), range_end=at(0, days=1), **kw)


async def _starts(generator, query):
    availability = await generator.availability(query)
    return [slot.start_time for slot in availability.slots]


@pytest.mark.asyncio
async def test_one_monday_gives_nine_hourly_slots(store, artist, clock, at):
    starts = await _starts(SlotGenerator(store, clock=clock), _query(artist, at))
    assert starts == [f"{h:02d}:00" for h in range(9, 18)]


@pytest.mark.asyncio
async def test_existing_reservation_removes_only_its_slot(store, artist, clock, at, make_reservation):
    res = make_reservation(at(10))
    store.reservations[res.id] = res
    starts = await _starts(SlotGenerator(store, clock=clock), _query(artist, at))
    assert "10:00" not in starts
    assert starts == ["09:00"] + [f"{h:02d}:00" for h in range(11, 18)]


@pytest.mark.asyncio
async def test_slot_ending_at_reservation_start_is_offered(store, artist, clock, at, make_reservation):
    res = make_reservation(at(10), 120)
    store.reservations[res.id] = res
    availability = await SlotGenerator(store, clock=clock).availability(_query(artist, at))
    slots = list(availability.slots)
    first = slots[0]
    assert (first.start_time, first.end_time) == ("09:00", "10:00")
    assert slots[1].start_time == "12:00"


@pytest.mark.asyncio
async def test_cancelled_reservation_does_not_block(store, artist, clock, at, make_reservation):
    res = make_reservation(at(10), status=BookingStatus.CANCELLED)
    store.reservations[res.id] = res
    starts = await _starts(SlotGenerator(store, clock=clock), _query(artist, at))
    assert "10:00" in starts
    assert len(starts) == 9


@pytest.mark.asyncio
async def test_lead_time_pushes_first_slot_to_next_day(store, artist, clock, at):
    artist.minimum_lead_time_hours = 24
    clock.now = at(10)
    query = AvailabilityQuery(
        artist_id=artist.id, range_start=at(0), range_end=at(0, days=2), duration_minutes=60
    )
    availability = await SlotGenerator(store, clock=clock).availability(query)
    slots = list(availability.slots)
    assert (slots[0].date, slots[0].start_time) == ("2024-06-04", "10:00")
    assert all(s.iso_start >= "2024-06-04T10:00:00Z" for s in slots)


@pytest.mark.asyncio
async def test_partial_day_stays_on_opening_grid(store, artist, clock, at):
    clock.now = at(13, 15)
    query = AvailabilityQuery(artist_id=artist.id, range_end=at(0, days=1), duration_minutes=60)
    starts = await _starts(SlotGenerator(store, clock=clock), query)
    assert starts == ["14:00", "15:00", "16:00", "17:00"]


@pytest.mark.asyncio
async def test_buffer_blocks_time_before_and_after(store, artist, clock, at, make_reservation):
    artist.buffer_minutes = 30
    res = make_reservation(at(12), buffer_minutes=30)
    store.reservations[res.id] = res
    starts = await _starts(SlotGenerator(store, clock=clock), _query(artist, at))
    # [11:00, 12:00) would need its cleanup until 12:30
    assert "11:00" not in starts
    assert "12:00" not in starts
    assert starts[:2] == ["09:00", "10:00"]
    assert "13:30" in starts


@pytest.mark.asyncio
async def test_service_steps_by_its_own_granularity(store, artist, service, clock, at):
    query = AvailabilityQuery(
        artist_id=artist.id, range_start=at(0), range_end=at(0, days=1), offering_id=service.id
    )
    availability = await SlotGenerator(store, clock=clock).availability(query)
    slots = list(availability.slots)
    assert availability.step_minutes == 30
    assert availability.duration_minutes == 120
    assert slots[0].start_time == "09:00"
    assert slots[1].start_time == "09:30"
    assert slots[-1].start_time == "16:00"


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [5, 600])
async def test_duration_out_of_bounds_rejected_before_io(store, artist, clock, at, minutes):
    with pytest.raises(InvalidInput):
        await SlotGenerator(store, clock=clock).availability(_query(artist, at, duration_minutes=minutes))
    assert sum(store.calls.values()) == 0


@pytest.mark.asyncio
async def test_naive_range_rejected(store, artist, clock):
    query = AvailabilityQuery(
        artist_id=artist.id,
        range_start=datetime(2024, 6, 3),
        range_end=datetime(2024, 6, 4),
        duration_minutes=60,
    )
    with pytest.raises(InvalidInput):
        await SlotGenerator(store, clock=clock).availability(query)


@pytest.mark.asyncio
async def test_unknown_artist_and_sold_out_offering(store, artist, flash, clock, at):
    generator = SlotGenerator(store, clock=clock)
    missing = AvailabilityQuery(artist_id=flash.id, duration_minutes=60)
    with pytest.raises(ArtistOrServiceNotFound):
        await generator.availability(missing)
    flash.status = OfferingStatus.SOLD_OUT
    with pytest.raises(ServiceUnavailable):
        await generator.availability(_query(artist, at, offering_id=flash.id))


class _FakeCalCom:
    def __init__(self, intervals):
        self.intervals = intervals
        self.days = []

    async def get_available_slots(self, username, event_type_id, day, tz):
        self.days.append(day)
        return [iv for iv in self.intervals if iv.start.astimezone(tz).date() == day]


@pytest.mark.asyncio
async def test_embed_source_goes_through_conflict_filter(store, artist, clock, at, make_reservation):
    artist.cal_com_username = "mara"
    artist.cal_com_event_type_id = "42"
    res = make_reservation(at(10))
    store.reservations[res.id] = res
    calcom = _FakeCalCom([TimeInterval(at(h), at(h + 1)) for h in (9, 10, 11)])
    availability = await SlotGenerator(store, clock=clock).availability(
        _query(artist, at), source=EmbedSlotSource(calcom)
    )
    assert [s.start_time for s in availability.slots] == ["09:00", "11:00"]
    assert calcom.days == [at(0).date()]


@pytest.mark.asyncio
async def test_embed_source_requires_calcom_settings(store, artist, clock, at):
    with pytest.raises(InvalidInput):
        await SlotGenerator(store, clock=clock).availability(
            _query(artist, at), source=EmbedSlotSource(_FakeCalCom([]))
        )


@pytest.mark.asyncio
async def test_single_day_defaults_to_artist_local_today(store, artist, clock, at):
    artist.timezone = "Europe/Paris"
    artist.cal_com_username = "mara"
    artist.cal_com_event_type_id = "42"
    clock.now = at(22, 30, days=-1)  # still Sunday in UTC, Monday in Paris
    calcom = _FakeCalCom([TimeInterval(at(h), at(h + 1)) for h in (8, 9)])
    availability = await SlotGenerator(store, clock=clock).availability(
        AvailabilityQuery(artist_id=artist.id, duration_minutes=60, single_day=True),
        source=EmbedSlotSource(calcom),
    )
    assert calcom.days == [at(0).date()]
    assert [(s.date, s.start_time) for s in availability.slots] == [
        ("2024-06-03", "10:00"),
        ("2024-06-03", "11:00"),
    ]


def test_resolve_duration_rules(flash, service):
    flash.duration_minutes = 90
    assert resolve_duration(flash, 60) == 90
    assert resolve_duration(flash, None) == 90
    assert resolve_duration(service, 180) == 180
    assert resolve_duration(service, None) == 120
    assert resolve_duration(None, 45) == 45
    with pytest.raises(InvalidInput):
        resolve_duration(None, None)


def test_conflict_index_widens_backwards_by_buffer(make_reservation, at):
    res = make_reservation(at(12), buffer_minutes=15)
    index = ConflictIndex([res], buffer_minutes=15)
    assert index.is_blocked(TimeInterval(at(11), at(12)))
    assert not index.is_blocked(TimeInterval(at(10, 45), at(11, 45)))
    assert index.is_blocked(TimeInterval(at(13), at(13, 15)))
    assert not index.is_blocked(TimeInterval(at(13, 15), at(14)))
    assert len(index) == 1


def test_align_up_and_default_step(flash, service):
    anchor = datetime(2024, 6, 3, 9, tzinfo=UTC)
    step = timedelta(minutes=45)
    assert align_up(anchor, anchor - timedelta(hours=1), step) == anchor
    assert align_up(anchor, anchor + timedelta(minutes=46), step) == anchor + timedelta(minutes=90)
    assert default_step_for(flash, 60) == 60
    assert default_step_for(service, 120) == 30
    assert default_step_for(None, 90) == 90


def test_slot_dict_uses_local_time_and_utc_iso(at):
    from zoneinfo import ZoneInfo

    slot = Slot.from_interval(TimeInterval(at(8), at(9)), ZoneInfo("Europe/Paris"))
    assert slot.to_dict() == {
        "date": "2024-06-03",
        "startTime": "10:00",
        "endTime": "11:00",
        "isoStart": "2024-06-03T08:00:00Z",
        "available": True,
    }
