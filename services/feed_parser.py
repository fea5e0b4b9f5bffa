"""
Feed Parser for the Availability Sync system

Decodes the raw upstream payload into normalized feed entries. The upstream
API answers with JSON most of the time, but has been seen returning XML and
double-encoded JSON, and its availability flag switches between booleans,
numbers and strings from one call to the next.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .errors import ParseFailed

logger = logging.getLogger(__name__)

ITEM_TAGS = ['type', 'room', 'item']


@dataclass(frozen=True)
class FeedEntry:
    """One (unit, date, availability) fact reported by the feed"""
    external_unit_id: str
    date: date
    is_available: bool


@dataclass
class FeedRoom:
    """A room (unit) described by the upstream room list"""
    external_id: str
    name: str
    capacity: int = 2


def decode_available(value: Any) -> bool:
    """True, numeric 1 and the string "1" mean available; anything else does not"""
    if value is True:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 1
    return value == "1"


def normalize_date(value: Any) -> Optional[date]:
    """Reduce an upstream date or timestamp to a calendar date"""
    if value is None:
        return None
    text = str(value).strip()
    if 'T' in text:
        text = text.split('T')[0]
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


class FeedParser:
    """
    Parser for availability and room payloads.
    """

    def parse(self, raw_text: str) -> List[FeedEntry]:
        """
        Parse an availability payload.

        Args:
            raw_text: Raw feed text

        Returns:
            List of FeedEntry objects

        Raises:
            ParseFailed: when the payload is neither JSON nor XML
        """
        text = _clean(raw_text)

        data = _load_json(text)
        if data is not None:
            if isinstance(data, dict) and data.get('result') == 'error':
                raise ParseFailed(f"Feed reported an error: {data.get('message', 'unknown error')}")
            entries = self._entries_from_json(data)
            logger.info(f"Parsed {len(entries)} feed entries from JSON")
            return entries

        soup = _load_xml(text)
        if soup is None:
            raise ParseFailed("Feed payload is neither valid JSON nor XML")

        entries = self._entries_from_xml(soup)
        logger.info(f"Parsed {len(entries)} feed entries from XML")
        return entries

    def _entries_from_json(self, data: Any) -> List[FeedEntry]:
        entries = []
        items_found = 0
        skipped_dates = 0

        for item in _extract_json_items(data):
            if not isinstance(item, dict) or item.get('type_id') is None:
                continue
            external_id = str(item['type_id']).strip()

            dates = item.get('dates')
            if not isinstance(dates, list):
                continue
            items_found += 1

            for day in dates:
                if not isinstance(day, dict):
                    continue
                day_date = normalize_date(day.get('date'))
                if day_date is None:
                    skipped_dates += 1
                    continue
                entries.append(FeedEntry(external_id, day_date, decode_available(day.get('available'))))

        if not items_found:
            raise ParseFailed("Feed JSON contains no availability items")

        if skipped_dates:
            logger.warning(f"Skipped {skipped_dates} feed dates that could not be parsed")

        return entries

    def _entries_from_xml(self, soup: BeautifulSoup) -> List[FeedEntry]:
        entries = []
        items_found = 0
        skipped_dates = 0

        for element in soup.find_all(ITEM_TAGS):
            external_id = _attr_or_child(element, 'type_id')
            if not external_id:
                continue
            items_found += 1

            for day in element.find_all('date'):
                available = _attr_or_child(day, 'available')
                if available is None:
                    # Inner <date> text node of a <date><date/><available/></date> pair
                    continue

                raw_date = day.get('date') or day.get('value')
                if raw_date is None:
                    child = day.find('date', recursive=False)
                    raw_date = child.get_text(strip=True) if child else day.get_text(strip=True)

                day_date = normalize_date(raw_date)
                if day_date is None:
                    skipped_dates += 1
                    continue
                entries.append(FeedEntry(external_id.strip(), day_date, decode_available(available)))

        if not items_found:
            raise ParseFailed("Feed XML contains no availability items")

        if skipped_dates:
            logger.warning(f"Skipped {skipped_dates} feed dates that could not be parsed")

        return entries

    def parse_rooms(self, raw_text: str) -> List[FeedRoom]:
        """
        Parse the upstream room list used to import units.

        Raises:
            ParseFailed: when the payload is neither JSON nor XML
        """
        text = _clean(raw_text)

        data = _load_json(text)
        if data is not None:
            if isinstance(data, dict) and data.get('result') == 'error':
                raise ParseFailed(f"Feed reported an error: {data.get('message', 'unknown error')}")

            if isinstance(data, dict) and 'room_id' in data:
                rooms_list = [data]
            elif isinstance(data, list):
                rooms_list = data
            elif isinstance(data, dict):
                rooms_list = list(data.values())
            else:
                rooms_list = []

            return [room for room in (_room_from_json(r) for r in rooms_list) if room]

        soup = _load_xml(text)
        if soup is None:
            raise ParseFailed("Room list is neither valid JSON nor XML")

        rooms = []
        for i, element in enumerate(soup.find_all('room'), start=1):
            room_id = _attr_or_child(element, 'room_id')
            if not room_id:
                continue
            name = _attr_or_child(element, 'room_name') or f"Room {i}"
            people = _attr_or_child(element, 'people')
            capacity = int(people) if people and people.isdigit() else 2
            rooms.append(FeedRoom(room_id.strip(), name.strip(), capacity))

        return rooms


def _clean(raw_text: Optional[str]) -> str:
    if raw_text is None:
        raise ParseFailed("Empty feed payload")
    text = raw_text.strip().lstrip('\ufeff').strip()
    if not text:
        raise ParseFailed("Empty feed payload")
    return text


def _load_json(text: str) -> Any:
    """Decode JSON, unwrapping one level of double encoding; None if not JSON"""
    try:
        data = json.loads(text)
        if isinstance(data, str):
            data = json.loads(data)
        return data
    except (ValueError, TypeError):
        return None


def _load_xml(text: str) -> Optional[BeautifulSoup]:
    """Parse XML; None when the text has no markup root"""
    if not text.startswith('<'):
        return None
    soup = BeautifulSoup(text, 'xml')
    if soup.find() is None:
        return None
    return soup


def _extract_json_items(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data

    if not isinstance(data, dict):
        return []

    if 'type_id' in data and isinstance(data.get('dates'), list):
        return [data]

    values = list(data.values())

    for value in values:
        if isinstance(value, list) and value and isinstance(value[0], dict) \
                and ('type_id' in value[0] or 'dates' in value[0]):
            return value

    return [
        value for value in values
        if isinstance(value, dict) and ('type_id' in value or isinstance(value.get('dates'), list))
    ]


def _attr_or_child(element, name: str) -> Optional[str]:
    if element.get(name) is not None:
        return str(element.get(name))
    child = element.find(name, recursive=False)
    if child is not None:
        return child.get_text(strip=True)
    return None


def _room_from_json(room: Dict) -> Optional[FeedRoom]:
    if not isinstance(room, dict) or not room.get('room_id'):
        return None

    capacity = 2
    code = room.get('code') or ''
    match = re.search(r'(\d+)\s*os', str(code))
    if match:
        capacity = int(match.group(1))

    if capacity == 2:
        try:
            calculated = (int(room.get('double') or 0) * 2
                          + int(room.get('single') or 0)
                          + int(room.get('sofa') or 0))
        except (TypeError, ValueError):
            calculated = 0
        if calculated > 0:
            capacity = calculated

    name = room.get('code') or room.get('room_name') or f"Room {room['room_id']}"
    return FeedRoom(str(room['room_id']).strip(), str(name).strip(), capacity)
