"""
Unit Import Service

Creates unit records from the upstream room list so availability can be
matched to them. Rooms whose external id already exists for the property
are left untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from supabase import Client

from config.sync_config import SyncConfig, get_config
from .feed_gateway import FeedGateway
from .feed_parser import FeedParser

logger = logging.getLogger(__name__)


@dataclass
class UnitImportResult:
    rooms_found: int = 0
    units_created: int = 0
    already_present: List[str] = field(default_factory=list)


class UnitImportService:
    """
    Service for importing units from the upstream room list
    """

    def __init__(
        self,
        supabase_client: Client,
        config: Optional[SyncConfig] = None,
        gateway: Optional[FeedGateway] = None,
        parser: Optional[FeedParser] = None
    ):
        self.supabase = supabase_client
        self.config = config or get_config()
        self.gateway = gateway or FeedGateway(self.config)
        self.parser = parser or FeedParser()

    async def import_units(self, external_id: str, property_id: str) -> UnitImportResult:
        """
        Fetch the room list for a property and insert the missing units.

        Args:
            external_id: Property identifier in the upstream feed
            property_id: Internal property id

        Returns:
            UnitImportResult
        """
        raw_text = await self.gateway.fetch_feed(self.gateway.build_rooms_url(external_id))
        rooms = self.parser.parse_rooms(raw_text)

        result = UnitImportResult(rooms_found=len(rooms))
        if not rooms:
            logger.warning(f"No rooms found upstream for feed id {external_id}")
            return result

        existing_response = self.supabase.table(self.config.tables.units).select(
            'external_id'
        ).eq('property_id', property_id).execute()
        existing_ids = {
            str(row['external_id']).strip()
            for row in existing_response.data or []
            if row.get('external_id') is not None
        }

        new_units = []
        for room in rooms:
            if room.external_id in existing_ids:
                result.already_present.append(room.external_id)
                continue
            existing_ids.add(room.external_id)
            new_units.append({
                'property_id': property_id,
                'name': room.name,
                'type': 'room',
                'capacity': room.capacity,
                'external_id': room.external_id,
                'description': f"Imported from feed (room id {room.external_id})",
            })

        if new_units:
            self.supabase.table(self.config.tables.units).insert(new_units).execute()
            result.units_created = len(new_units)

        logger.info(f"Unit import for property {property_id}: {result.units_created} created, "
                    f"{len(result.already_present)} already present")
        return result
