"""
Notification Service

Turns availability change events into notification records, and provides
the read/delete operations behind the dashboard's notification panel.

Push delivery is handled by an external worker that reacts to rows being
inserted into the notifications table.
"""

import logging
from typing import Dict, List, Optional

from supabase import Client

from config.sync_config import SyncConfig, get_config
from .availability_diff_service import ChangeEvent, ChangeKind
from .unit_resolver import UnitRef

logger = logging.getLogger(__name__)

CHANGE_TYPES = {
    ChangeKind.BECAME_BLOCKED: 'blocked',
    ChangeKind.BECAME_AVAILABLE: 'available',
}


def build_notification_rows(
    events: List[ChangeEvent],
    property_row: Dict,
    unit: UnitRef,
    user_id: str
) -> List[Dict]:
    """One notification row per change event, with names denormalized"""
    return [
        {
            'user_id': user_id,
            'property_id': property_row['id'],
            'unit_id': unit.id,
            'property_name': property_row.get('name') or '',
            'unit_name': unit.name,
            'change_type': CHANGE_TYPES[event.kind],
            'start_date': event.start.isoformat(),
            'end_date': event.end.isoformat(),
            'is_read': False,
        }
        for event in events
    ]


class NotificationService:
    """
    Service for creating and managing availability notifications
    """

    def __init__(self, supabase_client: Client, config: Optional[SyncConfig] = None):
        self.supabase = supabase_client
        self.config = config or get_config()
        self.table = self.config.tables.notifications

    async def emit(
        self,
        events: List[ChangeEvent],
        property_row: Dict,
        unit: UnitRef,
        user_id: str
    ) -> int:
        """
        Persist one notification per change event.

        Args:
            events: Change events for a single unit
            property_row: Property record (id, name)
            unit: Unit the events belong to
            user_id: Owner who receives the notifications

        Returns:
            Number of notification records created
        """
        if not events:
            return 0

        rows = build_notification_rows(events, property_row, unit, user_id)
        self.supabase.table(self.table).insert(rows).execute()

        logger.info(f"Created {len(rows)} notifications for unit {unit.name} ({unit.id})")
        return len(rows)

    async def fetch_for_user(self, user_id: str, limit: int = 100) -> List[Dict]:
        """Most recent notifications for a user, newest first"""
        response = self.supabase.table(self.table).select('*').eq(
            'user_id', user_id
        ).order('created_at', desc=True).limit(limit).execute()
        return response.data or []

    async def unread_count(self, user_id: str) -> int:
        response = self.supabase.table(self.table).select(
            'id', count='exact'
        ).eq('user_id', user_id).eq('is_read', False).execute()
        return response.count or 0

    async def mark_as_read(self, notification_id: str):
        self.supabase.table(self.table).update({'is_read': True}).eq('id', notification_id).execute()

    async def mark_all_as_read(self, user_id: str):
        self.supabase.table(self.table).update({'is_read': True}).eq('user_id', user_id).execute()

    async def delete_read(self, user_id: str):
        """Delete every notification the user has already read"""
        self.supabase.table(self.table).delete().eq('user_id', user_id).eq('is_read', True).execute()

    async def delete(self, notification_id: str):
        self.supabase.table(self.table).delete().eq('id', notification_id).execute()
