#!/usr/bin/env python3
"""
CLI Interface for the Availability Sync system

Provides commands for:
- Syncing a property's availability now
- Running fixed-interval auto-sync
- Viewing a property's sync status
- Releasing a stale sync guard
- Importing units from the upstream room list
- Listing notifications

Usage:
    python availability_sync_cli.py sync <property_id>
    python availability_sync_cli.py auto-sync <property_id> --interval 3600 [--enable]
    python availability_sync_cli.py status <property_id>
    python availability_sync_cli.py release-guard <property_id>
    python availability_sync_cli.py import-units <property_id>
    python availability_sync_cli.py notifications <user_id>
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime

from dotenv import load_dotenv
from supabase import create_client, Client

from config.sync_config import SyncConfig, get_config
from services.availability_sync_service import AvailabilitySyncService, SyncStatus
from services.errors import AvailabilitySyncError
from services.notification_service import NotificationService
from services.scheduler_service import AutoSyncScheduler
from services.unit_import_service import UnitImportService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def configure_logging(config: SyncConfig):
    """Log to the console and to the configured log file."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(config.log_file)
        ]
    )


def get_supabase_client() -> Client:
    """Create and return a Supabase client."""
    url = os.getenv('SUPABASE_URL')
    # Support both SUPABASE_KEY and SUPABASE_ANON_KEY for compatibility
    key = os.getenv('SUPABASE_KEY') or os.getenv('SUPABASE_ANON_KEY')

    if not url or not key:
        print("Error: SUPABASE_URL and SUPABASE_KEY environment variables required")
        sys.exit(1)

    return create_client(url, key)


async def resolve_external_id(service: AvailabilitySyncService, args) -> str:
    """Use --external-id when given, otherwise the property's stored feed id."""
    if getattr(args, 'external_id', None):
        return args.external_id

    state = await service.get_sync_state(args.property_id)
    if not state['external_id']:
        print(f"Error: property {args.property_id} has no feed id; it is not sync-enabled")
        sys.exit(1)
    return str(state['external_id'])


async def cmd_sync(args):
    """Sync one property now."""
    supabase = get_supabase_client()
    service = AvailabilitySyncService(supabase, get_config())
    external_id = await resolve_external_id(service, args)

    print(f"\nSyncing property {args.property_id} (feed id {external_id})...")
    print(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

    try:
        outcome = await service.sync_now(external_id, args.property_id, args.user_id)
    except AvailabilitySyncError as e:
        print(f"❌ Sync failed: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Sync error: {e}")
        logger.exception("Sync error")
        sys.exit(1)

    if outcome.status == SyncStatus.ALREADY_SYNCING:
        print("⏳ A sync for this property is already in progress.")
        return

    print(f"✅ {outcome.message}")
    print(f"Duration: {outcome.duration_seconds:.1f} seconds")

    if outcome.failed_batches:
        print("\nFailed batches:")
        for batch in outcome.failed_batches:
            print(f"  - {batch.operation} offset {batch.offset} ({batch.size} rows): {batch.error}")

    for error in outcome.errors:
        print(f"  - {error}")


def build_scheduler(service: AvailabilitySyncService, external_id: str, args, config: SyncConfig) -> AutoSyncScheduler:
    """Scheduler from config, with command-line overrides."""
    return AutoSyncScheduler(
        service,
        external_id,
        args.property_id,
        interval_seconds=args.interval or config.auto_sync_interval_seconds,
        enabled=config.auto_sync_enabled or args.enable,
        user_id=args.user_id,
        max_iterations=args.iterations
    )


async def cmd_auto_sync(args):
    """Run auto-sync for one property until interrupted."""
    config = get_config()

    supabase = get_supabase_client()
    service = AvailabilitySyncService(supabase, config)
    external_id = await resolve_external_id(service, args)

    scheduler = build_scheduler(service, external_id, args, config)
    if not scheduler.enabled:
        print("Auto-sync is disabled (auto_sync.enabled in sync_config.yaml); pass --enable to run anyway.")
        return

    print("\n" + "=" * 60)
    print(f"AUTO-SYNC FOR PROPERTY {args.property_id}")
    print("=" * 60)
    print(f"Interval: {scheduler.interval_seconds} seconds")
    print("\nPress Ctrl+C to stop...\n")

    async with scheduler:
        await scheduler.wait()

    print(f"Last sync: {scheduler.last_message}")


async def cmd_status(args):
    """Show a property's sync status."""
    supabase = get_supabase_client()
    service = AvailabilitySyncService(supabase, get_config())

    try:
        state = await service.get_sync_state(args.property_id)
    except AvailabilitySyncError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print("\n" + "-" * 60)
    print(f"Property:     {state['name']} ({state['property_id']})")
    print(f"Feed id:      {state['external_id'] or 'not sync-enabled'}")
    print(f"Last synced:  {state['last_synced_at'] or 'Never'}")
    print(f"Status:       {'🔄 Syncing' if state['sync_in_progress'] else '✅ Idle'}")
    print("-" * 60 + "\n")


async def cmd_release_guard(args):
    """Clear a sync flag left behind by a crashed run."""
    supabase = get_supabase_client()
    service = AvailabilitySyncService(supabase, get_config())

    if await service.release_stale_guard(args.property_id):
        print(f"Released sync guard for property {args.property_id}")
    else:
        print(f"Property {args.property_id} was not marked as syncing")


async def cmd_import_units(args):
    """Create units from the upstream room list."""
    supabase = get_supabase_client()
    config = get_config()
    service = AvailabilitySyncService(supabase, config)
    external_id = await resolve_external_id(service, args)

    importer = UnitImportService(supabase, config)
    try:
        result = await importer.import_units(external_id, args.property_id)
    except AvailabilitySyncError as e:
        print(f"❌ Import failed: {e}")
        sys.exit(1)

    print(f"Rooms found upstream: {result.rooms_found}")
    print(f"Units created:        {result.units_created}")
    print(f"Already present:      {len(result.already_present)}")


async def cmd_notifications(args):
    """List a user's notifications."""
    supabase = get_supabase_client()
    notifier = NotificationService(supabase, get_config())

    notifications = await notifier.fetch_for_user(args.user_id, limit=args.limit)

    print(f"\n{'Created':<20} {'Unit':<20} {'Change':<10} {'Dates':<24} {'Read':<5}")
    print("-" * 80)
    for n in notifications:
        dates = n['start_date'] if n['start_date'] == n['end_date'] else f"{n['start_date']}..{n['end_date']}"
        print(f"{str(n.get('created_at', ''))[:19]:<20} {n['unit_name'][:19]:<20} "
              f"{n['change_type']:<10} {dates:<24} {'yes' if n.get('is_read') else 'no':<5}")
    print(f"\n{len([n for n in notifications if not n.get('is_read')])} unread\n")

    if args.mark_read:
        await notifier.mark_all_as_read(args.user_id)
        print("All notifications marked as read.")


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description='Property Availability Sync CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sync 7c1e...                       Sync a property now
  %(prog)s auto-sync 7c1e... --interval 900 --enable   Re-sync every 15 minutes
  %(prog)s status 7c1e...                     Show last sync and guard flag
  %(prog)s release-guard 7c1e...              Clear a stuck sync flag
  %(prog)s import-units 7c1e...               Create units from the room list
  %(prog)s notifications 91b0... --mark-read  List and acknowledge notifications
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    def property_command(name, help_text, func):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('property_id', help='Internal property id')
        sub.add_argument('--external-id', help='Feed id (defaults to the property\'s stored feed id)')
        sub.set_defaults(func=func)
        return sub

    sync_parser = property_command('sync', 'Sync availability now', cmd_sync)
    sync_parser.add_argument('--user-id', help='Notification recipient (defaults to the property owner)')

    auto_parser = property_command('auto-sync', 'Sync on a fixed interval', cmd_auto_sync)
    auto_parser.add_argument('--interval', type=int, help='Seconds between syncs')
    auto_parser.add_argument('--iterations', type=int, help='Stop after this many runs')
    auto_parser.add_argument('--enable', action='store_true', help='Run even if auto_sync.enabled is false')
    auto_parser.add_argument('--user-id', help='Notification recipient (defaults to the property owner)')

    property_command('status', 'Show sync status', cmd_status)
    property_command('release-guard', 'Clear a stale sync flag', cmd_release_guard)
    property_command('import-units', 'Import units from the upstream room list', cmd_import_units)

    notifications_parser = subparsers.add_parser('notifications', help='List notifications for a user')
    notifications_parser.add_argument('user_id', help='User id')
    notifications_parser.add_argument('--limit', type=int, default=100, help='Number of records to show')
    notifications_parser.add_argument('--mark-read', action='store_true', help='Mark all as read afterwards')
    notifications_parser.set_defaults(func=cmd_notifications)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    configure_logging(get_config())

    # Run the async command
    try:
        asyncio.run(args.func(args))
    except KeyboardInterrupt:
        print("\nInterrupted.")


if __name__ == '__main__':
    main()
