"""
Availability Sync Services

This package implements availability reconciliation between an external
booking feed and the property dashboard's Supabase tables: feed gateway,
parser, unit resolver, diff, batched writer, notifications, the sync
coordinator and its auto-sync scheduler.
"""

from .errors import AvailabilitySyncError, FetchFailed, ParseFailed, SyncConfigurationError
from .feed_gateway import FeedGateway
from .feed_parser import FeedParser, FeedEntry, FeedRoom
from .unit_resolver import UnitResolver, UnitRef, GroupedEntries, group_entries
from .availability_diff_service import (
    AvailabilityStatus,
    ChangeKind,
    ExistingRecord,
    WriteOp,
    ChangeEvent,
    DiffResult,
    diff_unit,
    compress_dates,
)
from .availability_writer import AvailabilityWriter, WriteReport, FailedBatch
from .notification_service import NotificationService, build_notification_rows
from .availability_sync_service import AvailabilitySyncService, SyncOutcome, SyncStatus
from .scheduler_service import AutoSyncScheduler
from .unit_import_service import UnitImportService, UnitImportResult

__all__ = [
    # Errors
    'AvailabilitySyncError',
    'FetchFailed',
    'ParseFailed',
    'SyncConfigurationError',

    # Feed
    'FeedGateway',
    'FeedParser',
    'FeedEntry',
    'FeedRoom',

    # Reconciliation
    'UnitResolver',
    'UnitRef',
    'GroupedEntries',
    'group_entries',
    'AvailabilityStatus',
    'ChangeKind',
    'ExistingRecord',
    'WriteOp',
    'ChangeEvent',
    'DiffResult',
    'diff_unit',
    'compress_dates',
    'AvailabilityWriter',
    'WriteReport',
    'FailedBatch',
    'NotificationService',
    'build_notification_rows',

    # Coordination
    'AvailabilitySyncService',
    'SyncOutcome',
    'SyncStatus',
    'AutoSyncScheduler',
    'UnitImportService',
    'UnitImportResult',
]

__version__ = '1.0.0'
