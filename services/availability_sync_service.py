"""
Availability Sync Service

Coordinates one reconciliation run for a property:
feed fetch -> parse -> unit resolve -> diff -> batched write ->
notifications -> completion bookkeeping.

The service owns the property's persisted "sync in progress" flag. The
flag is acquired with a conditional update so two processes can never both
start a run for the same property, and it is released on every exit path.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from supabase import Client

from config.sync_config import SyncConfig, get_config
from .availability_diff_service import ChangeEvent, WriteOp, diff_unit
from .availability_writer import AvailabilityWriter, FailedBatch
from .errors import SyncConfigurationError
from .feed_gateway import FeedGateway
from .feed_parser import FeedParser
from .notification_service import NotificationService
from .unit_resolver import UnitResolver, group_entries, units_by_id

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    SUCCESS = 'success'
    ALREADY_SYNCING = 'already_syncing'
    FAILED = 'failed'


@dataclass
class SyncOutcome:
    """Result of a sync attempt"""
    status: SyncStatus
    property_id: str
    message: str = ""
    units_matched: int = 0
    unmatched_entries: int = 0
    inserted: int = 0
    updated: int = 0
    notifications_created: int = 0
    first_sync: bool = False
    failed_batches: List[FailedBatch] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_batches)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilitySyncService:
    """
    Main coordinator for availability reconciliation
    """

    def __init__(
        self,
        supabase_client: Client,
        config: Optional[SyncConfig] = None,
        gateway: Optional[FeedGateway] = None,
        parser: Optional[FeedParser] = None,
        resolver: Optional[UnitResolver] = None,
        writer: Optional[AvailabilityWriter] = None,
        notifier: Optional[NotificationService] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.supabase = supabase_client
        self.config = config or get_config()
        self.gateway = gateway or FeedGateway(self.config)
        self.parser = parser or FeedParser()
        self.resolver = resolver or UnitResolver(supabase_client, self.config)
        self.writer = writer or AvailabilityWriter(supabase_client, self.config)
        self.notifier = notifier or NotificationService(supabase_client, self.config)
        self.clock = clock or _utcnow

        self.properties_table = self.config.tables.properties
        self.columns = self.config.columns

    async def sync_now(
        self,
        external_id: str,
        property_id: str,
        user_id: Optional[str] = None
    ) -> SyncOutcome:
        """
        Run one reconciliation for a property.

        Args:
            external_id: Property identifier in the upstream feed
            property_id: Internal property id
            user_id: Recipient of change notifications (defaults to the property owner)

        Returns:
            SyncOutcome with SUCCESS or ALREADY_SYNCING

        Raises:
            FetchFailed, ParseFailed, SyncConfigurationError, or any store error,
            always after the guard flag has been released
        """
        start_time = time.time()

        if not await self._acquire_guard(property_id):
            logger.info(f"Sync already in progress for property {property_id}, skipping")
            return SyncOutcome(
                status=SyncStatus.ALREADY_SYNCING,
                property_id=property_id,
                message="Sync already in progress"
            )

        completed = False
        try:
            logger.info(f"Starting availability sync for property {property_id} (feed id {external_id})")

            outcome = await self._run(external_id, property_id, user_id)

            await self._complete(property_id)
            completed = True

            outcome.duration_seconds = time.time() - start_time
            logger.info(f"Availability sync finished for property {property_id}: {outcome.message} "
                        f"({outcome.duration_seconds:.1f}s)")
            return outcome

        except Exception as e:
            logger.error(f"Availability sync failed for property {property_id}: {e}")
            raise

        finally:
            if not completed:
                await self._release_guard(property_id)

    async def run_once(
        self,
        external_id: str,
        property_id: str,
        user_id: Optional[str] = None
    ) -> SyncOutcome:
        """
        Like sync_now, but a failure is returned as a FAILED outcome instead of raised.
        """
        start_time = time.time()
        try:
            return await self.sync_now(external_id, property_id, user_id)
        except Exception as e:
            return SyncOutcome(
                status=SyncStatus.FAILED,
                property_id=property_id,
                message=f"Sync failed: {e}",
                error=str(e),
                duration_seconds=time.time() - start_time
            )

    async def _run(self, external_id: str, property_id: str, user_id: Optional[str]) -> SyncOutcome:
        property_row = await self._get_property(property_id)
        user_id = user_id or property_row.get('user_id')
        first_sync = property_row.get(self.columns.last_synced_at) is None

        date_from, date_till = self.config.sync_window(self.clock().date())

        # Step 1: Fetch and parse the feed
        target_url = self.gateway.build_availability_url(external_id, date_from, date_till)
        raw_text = await self.gateway.fetch_feed(target_url)
        entries = self.parser.parse(raw_text)

        in_window = [e for e in entries if date_from <= e.date <= date_till]
        if len(in_window) != len(entries):
            logger.warning(f"Ignoring {len(entries) - len(in_window)} feed entries outside "
                           f"{date_from.isoformat()}..{date_till.isoformat()}")

        # Step 2: Resolve units
        unit_map = await self.resolver.resolve(property_id)
        if not unit_map:
            raise SyncConfigurationError(
                f"Property {property_id} has no units with external ids; import units first"
            )
        units = units_by_id(unit_map)
        grouped = group_entries(in_window, unit_map)

        # Step 3: Diff against a single read of the stored records
        existing = await self.writer.fetch_existing(list(grouped.by_unit), date_from, date_till)

        writes: List[WriteOp] = []
        events_by_unit: Dict[str, List[ChangeEvent]] = {}
        for unit_id, unit_entries in grouped.by_unit.items():
            result = diff_unit(unit_id, existing.get(unit_id, {}), unit_entries, emit_events=not first_sync)
            writes.extend(result.writes)
            if result.events:
                events_by_unit[unit_id] = result.events

        # Step 4: Write
        report = await self.writer.apply_writes(writes)

        # Step 5: Notify
        outcome = SyncOutcome(
            status=SyncStatus.SUCCESS,
            property_id=property_id,
            units_matched=len(grouped.by_unit),
            unmatched_entries=grouped.unmatched_entries,
            inserted=report.inserts_succeeded,
            updated=report.updates_succeeded,
            first_sync=first_sync,
            failed_batches=report.failed_batches,
        )

        if first_sync:
            logger.info(f"First sync for property {property_id}, change notifications suppressed")
        elif events_by_unit and not user_id:
            logger.warning(f"Property {property_id} has no owner; skipping change notifications")
        else:
            for unit_id, events in events_by_unit.items():
                try:
                    outcome.notifications_created += await self.notifier.emit(
                        events, property_row, units[unit_id], user_id
                    )
                except Exception as e:
                    error_msg = f"Error creating notifications for unit {unit_id}: {e}"
                    logger.warning(error_msg)
                    outcome.errors.append(error_msg)

        outcome.message = self._summarize(outcome)
        return outcome

    def _summarize(self, outcome: SyncOutcome) -> str:
        message = (f"Synced {outcome.units_matched} units: {outcome.inserted} inserted, "
                   f"{outcome.updated} updated, {outcome.notifications_created} notifications")
        if outcome.first_sync:
            message += " (first sync, notifications start from the next run)"
        if outcome.unmatched_entries:
            message += f"; {outcome.unmatched_entries} entries for unknown units skipped"
        if outcome.is_partial:
            message += f"; partial: {len(outcome.failed_batches)} write batches failed"
        return message

    async def _get_property(self, property_id: str) -> Dict:
        response = self.supabase.table(self.properties_table).select('*').eq('id', property_id).execute()
        if not response.data:
            raise SyncConfigurationError(f"Property {property_id} not found")
        return response.data[0]

    async def _acquire_guard(self, property_id: str) -> bool:
        """
        Set the in-progress flag only if it is currently false (or NULL).

        Returns:
            True when this caller now owns the guard
        """
        flag = self.columns.sync_in_progress

        response = self.supabase.table(self.properties_table).update(
            {flag: True}
        ).eq('id', property_id).or_(f"{flag}.is.null,{flag}.eq.false").execute()

        if response.data:
            return True

        exists = self.supabase.table(self.properties_table).select('id').eq('id', property_id).execute()
        if not exists.data:
            raise SyncConfigurationError(f"Property {property_id} not found")

        return False

    async def _release_guard(self, property_id: str):
        try:
            self.supabase.table(self.properties_table).update(
                {self.columns.sync_in_progress: False}
            ).eq('id', property_id).execute()
        except Exception as e:
            logger.error(f"Could not release sync guard for property {property_id}: {e}")
            raise

    async def _complete(self, property_id: str):
        self.supabase.table(self.properties_table).update({
            self.columns.last_synced_at: self.clock().isoformat(),
            self.columns.sync_in_progress: False,
        }).eq('id', property_id).execute()

    async def get_sync_state(self, property_id: str) -> Dict:
        """Last sync time and guard flag, for status displays"""
        response = self.supabase.table(self.properties_table).select(
            f"id, name, {self.columns.external_id}, "
            f"{self.columns.last_synced_at}, {self.columns.sync_in_progress}"
        ).eq('id', property_id).execute()

        if not response.data:
            raise SyncConfigurationError(f"Property {property_id} not found")

        row = response.data[0]
        return {
            'property_id': row['id'],
            'name': row.get('name'),
            'external_id': row.get(self.columns.external_id),
            'last_synced_at': row.get(self.columns.last_synced_at),
            'sync_in_progress': bool(row.get(self.columns.sync_in_progress)),
        }

    async def release_stale_guard(self, property_id: str) -> bool:
        """
        Clear a guard left set by a process that died mid-run.

        Returns:
            True if the flag was set and has been cleared
        """
        state = await self.get_sync_state(property_id)
        if not state['sync_in_progress']:
            return False

        logger.warning(f"Releasing stale sync guard for property {property_id}")
        await self._release_guard(property_id)
        return True
