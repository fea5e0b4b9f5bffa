"""
Unit Resolver for the Availability Sync system

Maps the unit identifiers used by the upstream feed to the unit records
stored for a property.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from supabase import Client

from config.sync_config import SyncConfig, get_config
from .feed_parser import FeedEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitRef:
    """Reference to a stored unit"""
    id: str
    name: str
    external_id: str


@dataclass
class GroupedEntries:
    """Feed entries grouped by internal unit id"""
    by_unit: Dict[str, List[FeedEntry]]
    unmatched_entries: int = 0
    unmatched_ids: Set[str] = None

    def __post_init__(self):
        if self.unmatched_ids is None:
            self.unmatched_ids = set()


class UnitResolver:
    """
    Resolves external unit identifiers against the units table
    """

    def __init__(self, supabase_client: Client, config: Optional[SyncConfig] = None):
        self.supabase = supabase_client
        self.config = config or get_config()

    async def resolve(self, property_id: str) -> Dict[str, UnitRef]:
        """
        Build the external id -> unit map for a property.

        Units without an external id are left out. Identifiers are trimmed,
        upstream ids occasionally arrive with surrounding whitespace.
        """
        response = self.supabase.table(self.config.tables.units).select(
            'id, name, external_id'
        ).eq('property_id', property_id).execute()

        unit_map: Dict[str, UnitRef] = {}
        for row in response.data or []:
            external_id = row.get('external_id')
            if external_id is None or not str(external_id).strip():
                continue
            key = str(external_id).strip()
            unit_map[key] = UnitRef(id=row['id'], name=row.get('name') or '', external_id=key)

        logger.info(f"Resolved {len(unit_map)} units with external ids for property {property_id}")
        return unit_map


def group_entries(entries: List[FeedEntry], unit_map: Dict[str, UnitRef]) -> GroupedEntries:
    """
    Group feed entries by internal unit id, counting the ones with no match.
    """
    by_unit: Dict[str, List[FeedEntry]] = defaultdict(list)
    unmatched_ids: Set[str] = set()
    unmatched = 0

    for entry in entries:
        unit = unit_map.get(entry.external_unit_id.strip())
        if unit is None:
            unmatched += 1
            unmatched_ids.add(entry.external_unit_id.strip())
            continue
        by_unit[unit.id].append(entry)

    if unmatched:
        logger.warning(f"Skipped {unmatched} feed entries for unknown unit ids: "
                       f"{', '.join(sorted(unmatched_ids))}")

    return GroupedEntries(by_unit=dict(by_unit), unmatched_entries=unmatched, unmatched_ids=unmatched_ids)


def units_by_id(unit_map: Dict[str, UnitRef]) -> Dict[str, UnitRef]:
    """Re-key a resolved unit map by internal unit id"""
    return {unit.id: unit for unit in unit_map.values()}
