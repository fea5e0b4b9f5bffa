"""
Availability Writer

Reads the stored availability for the synced range and applies diff
writes to the availability table in bounded batches. A failing batch is
logged and skipped; the report carries honest attempted/succeeded counts.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from supabase import Client

from config.sync_config import SyncConfig, get_config
from .availability_diff_service import ExistingRecord, WriteOp, index_existing

logger = logging.getLogger(__name__)

# Keeps .in_() filters well under URL length limits
UNIT_FILTER_CHUNK = 100

# Must not exceed the API's max-rows setting (PostgREST default 1000)
SELECT_PAGE_SIZE = 1000


@dataclass
class FailedBatch:
    """A batch the store rejected"""
    operation: str  # insert | upsert
    offset: int
    size: int
    error: str


@dataclass
class WriteReport:
    """Outcome of applying a set of writes"""
    inserts_attempted: int = 0
    inserts_succeeded: int = 0
    updates_attempted: int = 0
    updates_succeeded: int = 0
    failed_batches: List[FailedBatch] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_batches)

    @property
    def total_succeeded(self) -> int:
        return self.inserts_succeeded + self.updates_succeeded


class AvailabilityWriter:
    """
    Batched reads and writes against the availability table
    """

    def __init__(self, supabase_client: Client, config: Optional[SyncConfig] = None):
        self.supabase = supabase_client
        self.config = config or get_config()
        self.table = self.config.tables.availability
        self.batch_size = self.config.write_batch_size
        self.page_size = SELECT_PAGE_SIZE

    async def fetch_existing(
        self,
        unit_ids: List[str],
        date_from: date,
        date_till: date
    ) -> Dict[str, Dict[date, ExistingRecord]]:
        """
        Read the stored availability rows for the given units and range.

        Returns:
            Records keyed by unit id, then by date
        """
        records: List[ExistingRecord] = []

        for i in range(0, len(unit_ids), UNIT_FILTER_CHUNK):
            chunk = unit_ids[i:i + UNIT_FILTER_CHUNK]
            offset = 0

            while True:
                response = self.supabase.table(self.table).select(
                    'id, unit_id, date, status, reservation_id'
                ).in_('unit_id', chunk).gte(
                    'date', date_from.isoformat()
                ).lte('date', date_till.isoformat()).order('unit_id').order('date').range(
                    offset, offset + self.page_size - 1
                ).execute()

                rows = response.data or []
                for row in rows:
                    try:
                        records.append(ExistingRecord.from_row(row))
                    except (KeyError, ValueError) as e:
                        logger.warning(f"Ignoring malformed availability row {row.get('id')}: {e}")

                if len(rows) < self.page_size:
                    break
                offset += self.page_size

        logger.info(f"Loaded {len(records)} stored availability records for {len(unit_ids)} units")
        return index_existing(records)

    async def apply_writes(self, writes: List[WriteOp]) -> WriteReport:
        """
        Apply inserts and updates in batches.

        Inserts are plain inserts; updates are upserts keyed by record id so
        they can never create a duplicate row.

        Args:
            writes: Write operations from the diff

        Returns:
            WriteReport with attempted/succeeded counts
        """
        report = WriteReport()

        inserts = [w.to_row() for w in writes if not w.is_update]
        updates = [w.to_row() for w in writes if w.is_update]

        report.inserts_attempted = len(inserts)
        report.updates_attempted = len(updates)

        if inserts:
            logger.info(f"Inserting {len(inserts)} availability records")
            report.inserts_succeeded = self._write_batches('insert', inserts, report)

        if updates:
            logger.info(f"Updating {len(updates)} availability records")
            report.updates_succeeded = self._write_batches('upsert', updates, report)

        if report.has_failures:
            logger.warning(f"{len(report.failed_batches)} availability batches failed; "
                           f"{report.total_succeeded}/{len(writes)} records written")

        return report

    def _write_batches(self, operation: str, rows: List[Dict], report: WriteReport) -> int:
        succeeded = 0

        for i in range(0, len(rows), self.batch_size):
            batch = rows[i:i + self.batch_size]
            try:
                table = self.supabase.table(self.table)
                if operation == 'insert':
                    table.insert(batch).execute()
                else:
                    table.upsert(batch, on_conflict='id').execute()
                succeeded += len(batch)
            except Exception as e:
                logger.warning(f"Availability {operation} batch at offset {i} "
                               f"({len(batch)} rows) failed: {e}")
                report.failed_batches.append(FailedBatch(operation, i, len(batch), str(e)))

        return succeeded
