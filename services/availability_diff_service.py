"""
Availability Diff Service

Compares the availability reported by the feed against the stored
per-date status of a unit and produces the minimal set of writes, plus
change events grouped into contiguous date ranges.

The store only holds exceptions to full availability: a date with no
record is available.

Override policy: the feed wins over a manual block when it reports the
date occupied (blocked -> booked) and when it reports the date free
(blocked -> available). A manual block is never preserved against the feed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .feed_parser import FeedEntry

logger = logging.getLogger(__name__)


class AvailabilityStatus(str, Enum):
    AVAILABLE = 'available'
    BOOKED = 'booked'
    BLOCKED = 'blocked'


class ChangeKind(str, Enum):
    BECAME_BLOCKED = 'became_blocked'
    BECAME_AVAILABLE = 'became_available'


@dataclass(frozen=True)
class ExistingRecord:
    """A stored availability row"""
    id: str
    unit_id: str
    date: date
    status: AvailabilityStatus
    reservation_id: Optional[Any] = None

    @classmethod
    def from_row(cls, row: Dict) -> 'ExistingRecord':
        raw_date = str(row['date'])
        return cls(
            id=row['id'],
            unit_id=row['unit_id'],
            date=date.fromisoformat(raw_date.split('T')[0][:10]),
            status=AvailabilityStatus(row.get('status') or 'available'),
            reservation_id=row.get('reservation_id'),
        )


@dataclass(frozen=True)
class WriteOp:
    """An insert (record_id is None) or an update by identity"""
    unit_id: str
    date: date
    status: AvailabilityStatus
    reservation_id: Optional[Any] = None
    record_id: Optional[str] = None

    @property
    def is_update(self) -> bool:
        return self.record_id is not None

    def to_row(self) -> Dict:
        row = {
            'unit_id': self.unit_id,
            'date': self.date.isoformat(),
            'status': self.status.value,
            'reservation_id': self.reservation_id,
        }
        if self.record_id is not None:
            row['id'] = self.record_id
        return row


@dataclass(frozen=True)
class ChangeEvent:
    """A contiguous date range whose status moved in one direction"""
    unit_id: str
    start: date
    end: date
    kind: ChangeKind


@dataclass
class DiffResult:
    writes: List[WriteOp] = field(default_factory=list)
    events: List[ChangeEvent] = field(default_factory=list)


def target_status(current: AvailabilityStatus, feed_available: bool) -> Optional[AvailabilityStatus]:
    """
    Decide the status a date must move to, or None when no write is needed.
    """
    if not feed_available and current != AvailabilityStatus.BOOKED:
        return AvailabilityStatus.BOOKED
    if feed_available and current in (AvailabilityStatus.BOOKED, AvailabilityStatus.BLOCKED):
        return AvailabilityStatus.AVAILABLE
    return None


def diff_unit(
    unit_id: str,
    existing: Dict[date, ExistingRecord],
    feed_entries: Iterable[FeedEntry],
    emit_events: bool = True
) -> DiffResult:
    """
    Diff one unit's feed entries against its stored records.

    Args:
        unit_id: Internal unit id
        existing: Stored records for the unit in the synced range, keyed by date
        feed_entries: Feed entries for this unit
        emit_events: False on a property's first sync, writes still happen

    Returns:
        DiffResult with writes and compressed change events
    """
    # Last entry wins when the feed repeats a date
    feed_by_date: Dict[date, bool] = {}
    for entry in feed_entries:
        feed_by_date[entry.date] = entry.is_available

    result = DiffResult()
    became_blocked: List[date] = []
    became_available: List[date] = []

    for day in sorted(feed_by_date):
        record = existing.get(day)
        current = record.status if record else AvailabilityStatus.AVAILABLE

        new_status = target_status(current, feed_by_date[day])
        if new_status is None:
            continue

        result.writes.append(WriteOp(
            unit_id=unit_id,
            date=day,
            status=new_status,
            reservation_id=record.reservation_id if record else None,
            record_id=record.id if record else None,
        ))

        if new_status == AvailabilityStatus.BOOKED:
            became_blocked.append(day)
        else:
            became_available.append(day)

    if emit_events:
        result.events.extend(compress_dates(became_blocked, ChangeKind.BECAME_BLOCKED, unit_id))
        result.events.extend(compress_dates(became_available, ChangeKind.BECAME_AVAILABLE, unit_id))
        result.events.sort(key=lambda event: (event.start, event.kind.value))

    logger.debug(f"Unit {unit_id}: {len(feed_by_date)} feed dates, {len(result.writes)} writes, "
                 f"{len(result.events)} change events")
    return result


def compress_dates(dates: Iterable[date], kind: ChangeKind, unit_id: str) -> List[ChangeEvent]:
    """Collapse dates into contiguous ranges; a gap of more than one day starts a new range"""
    ordered = sorted(set(dates))
    if not ordered:
        return []

    events = []
    start = previous = ordered[0]
    for day in ordered[1:]:
        if day - previous > timedelta(days=1):
            events.append(ChangeEvent(unit_id, start, previous, kind))
            start = day
        previous = day
    events.append(ChangeEvent(unit_id, start, previous, kind))

    return events


def index_existing(records: Iterable[ExistingRecord]) -> Dict[str, Dict[date, ExistingRecord]]:
    """Group stored records by unit id and date"""
    indexed: Dict[str, Dict[date, ExistingRecord]] = {}
    for record in records:
        indexed.setdefault(record.unit_id, {})[record.date] = record
    return indexed
