"""Diff engine: status transitions, reservation preservation, range compression."""
from datetime import date

from services.availability_diff_service import (
    AvailabilityStatus,
    ChangeEvent,
    ChangeKind,
    ExistingRecord,
    compress_dates,
    diff_unit,
    target_status,
)
from services.feed_parser import FeedEntry

UNIT = 'unit-5'


def entry(day, available):
    return FeedEntry('5', date.fromisoformat(day), available)


def record(day, status, reservation_id=None, record_id=None):
    d = date.fromisoformat(day)
    return d, ExistingRecord(record_id or f"rec-{day}", UNIT, d, AvailabilityStatus(status), reservation_id)


def test_transition_table():
    A, B, X = AvailabilityStatus.AVAILABLE, AvailabilityStatus.BOOKED, AvailabilityStatus.BLOCKED

    assert target_status(A, feed_available=False) == B
    assert target_status(X, feed_available=False) == B
    assert target_status(B, feed_available=False) is None
    assert target_status(A, feed_available=True) is None
    assert target_status(B, feed_available=True) == A
    assert target_status(X, feed_available=True) == A


def test_unavailable_date_with_no_record_is_inserted_as_booked():
    result = diff_unit(UNIT, {}, [entry('2026-03-01', False)])

    assert len(result.writes) == 1
    write = result.writes[0]
    assert not write.is_update
    assert write.status == AvailabilityStatus.BOOKED
    assert write.to_row() == {
        'unit_id': UNIT, 'date': '2026-03-01', 'status': 'booked', 'reservation_id': None,
    }
    assert result.events == [
        ChangeEvent(UNIT, date(2026, 3, 1), date(2026, 3, 1), ChangeKind.BECAME_BLOCKED)
    ]


def test_available_date_with_no_record_needs_no_write():
    result = diff_unit(UNIT, {}, [entry('2026-03-01', True)])

    assert result.writes == []
    assert result.events == []


def test_blocked_record_is_overridden_to_booked():
    existing = dict([record('2026-05-01', 'blocked')])

    result = diff_unit(UNIT, existing, [entry('2026-05-01', False)])

    assert result.writes[0].status == AvailabilityStatus.BOOKED
    assert result.writes[0].record_id == 'rec-2026-05-01'


def test_blocked_record_becomes_available_when_feed_is_free():
    existing = dict([record('2026-05-01', 'blocked')])

    result = diff_unit(UNIT, existing, [entry('2026-05-01', True)])

    assert result.writes[0].status == AvailabilityStatus.AVAILABLE
    assert result.events[0].kind == ChangeKind.BECAME_AVAILABLE


def test_update_preserves_reservation_id():
    existing = dict([record('2026-06-10', 'booked', reservation_id='res-42', record_id='rec-1')])

    result = diff_unit(UNIT, existing, [entry('2026-06-10', True)])

    row = result.writes[0].to_row()
    assert row['id'] == 'rec-1'
    assert row['reservation_id'] == 'res-42'
    assert row['status'] == 'available'


def test_unchanged_state_produces_nothing():
    existing = dict([record('2026-03-01', 'booked'), record('2026-03-02', 'available')])

    result = diff_unit(UNIT, existing, [entry('2026-03-01', False), entry('2026-03-02', True)])

    assert result.writes == []
    assert result.events == []


def test_consecutive_nights_compress_to_one_event():
    feed = [entry('2026-01-10', False), entry('2026-01-11', False), entry('2026-01-12', False)]

    result = diff_unit(UNIT, {}, feed)

    assert len(result.writes) == 3
    assert result.events == [
        ChangeEvent(UNIT, date(2026, 1, 10), date(2026, 1, 12), ChangeKind.BECAME_BLOCKED)
    ]


def test_events_split_by_gap_and_direction():
    existing = dict([record('2026-01-20', 'booked'), record('2026-01-21', 'booked')])
    feed = [
        entry('2026-01-10', False),
        entry('2026-01-11', False),
        entry('2026-01-13', False),
        entry('2026-01-20', True),
        entry('2026-01-21', True),
    ]

    result = diff_unit(UNIT, existing, feed)

    assert result.events == [
        ChangeEvent(UNIT, date(2026, 1, 10), date(2026, 1, 11), ChangeKind.BECAME_BLOCKED),
        ChangeEvent(UNIT, date(2026, 1, 13), date(2026, 1, 13), ChangeKind.BECAME_BLOCKED),
        ChangeEvent(UNIT, date(2026, 1, 20), date(2026, 1, 21), ChangeKind.BECAME_AVAILABLE),
    ]


def test_first_sync_suppresses_events_but_keeps_writes():
    feed = [entry('2026-01-10', False), entry('2026-01-11', False)]

    result = diff_unit(UNIT, {}, feed, emit_events=False)

    assert len(result.writes) == 2
    assert result.events == []


def test_repeated_feed_date_last_entry_wins():
    result = diff_unit(UNIT, {}, [entry('2026-02-01', False), entry('2026-02-01', True)])

    assert result.writes == []


def test_compress_dates_handles_unsorted_duplicates():
    days = [date(2026, 3, 3), date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 2), date(2026, 3, 9)]

    events = compress_dates(days, ChangeKind.BECAME_AVAILABLE, UNIT)

    assert [(e.start, e.end) for e in events] == [
        (date(2026, 3, 1), date(2026, 3, 3)),
        (date(2026, 3, 9), date(2026, 3, 9)),
    ]
    assert compress_dates([], ChangeKind.BECAME_AVAILABLE, UNIT) == []


def test_existing_record_from_row_normalizes_timestamp_dates():
    rec = ExistingRecord.from_row({
        'id': 'r1', 'unit_id': UNIT, 'date': '2026-03-01T00:00:00+00:00',
        'status': 'blocked', 'reservation_id': None,
    })

    assert rec.date == date(2026, 3, 1)
    assert rec.status == AvailabilityStatus.BLOCKED
