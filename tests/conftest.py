"""
Test fixtures for the availability sync services.

Supabase is replaced by an in-memory fake and the feed gateway by a stub
returning canned payloads, so tests never touch the network.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from config.sync_config import SyncConfig, ProxySettings, PROXY_MODE_JSON_CONTENTS
from services.availability_sync_service import AvailabilitySyncService
from services.errors import FetchFailed
from tests.fake_supabase import FakeSupabase


PROPERTY_ID = "prop-1"
OWNER_ID = "user-1"
FEED_ID = "1234"
FIXED_NOW = datetime(2026, 2, 15, 9, 30, tzinfo=timezone.utc)


def seed_tables(last_synced_at: Optional[str] = None, sync_in_progress: bool = False):
    return {
        'properties': [
            {
                'id': PROPERTY_ID,
                'user_id': OWNER_ID,
                'name': 'Seaside Rooms',
                'hotres_id': FEED_ID,
                'availability_sync_in_progress': sync_in_progress,
                'availability_last_synced_at': last_synced_at,
            },
            {
                'id': 'prop-2',
                'user_id': OWNER_ID,
                'name': 'Mountain Lodge',
                'hotres_id': '999',
                'availability_sync_in_progress': False,
                'availability_last_synced_at': None,
            },
        ],
        'units': [
            {'id': 'unit-5', 'property_id': PROPERTY_ID, 'name': 'Room 5', 'external_id': '5'},
            {'id': 'unit-7', 'property_id': PROPERTY_ID, 'name': 'Room 7', 'external_id': ' 7 '},
            {'id': 'unit-x', 'property_id': PROPERTY_ID, 'name': 'Storage', 'external_id': None},
            {'id': 'unit-m', 'property_id': 'prop-2', 'name': 'Chalet', 'external_id': '1'},
        ],
        'availability': [],
        'notifications': [],
    }


def feed_json(*items) -> str:
    """Build an availability payload: items are (type_id, [(date, available), ...])"""
    return json.dumps([
        {'type_id': type_id, 'dates': [{'date': d, 'available': a} for d, a in dates]}
        for type_id, dates in items
    ])


class StubGateway:
    """Feed gateway returning queued payloads instead of hitting proxies"""

    def __init__(self, payloads: Optional[List] = None):
        self.payloads = list(payloads or [])
        self.urls: List[str] = []
        self.release: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    def build_availability_url(self, external_id, date_from, date_till):
        return f"https://feed.test/availability?oid={external_id}&from={date_from}&till={date_till}"

    def build_rooms_url(self, external_id):
        return f"https://feed.test/rooms?oid={external_id}"

    async def fetch_feed(self, target_url):
        self.urls.append(target_url)
        self.entered.set()
        if self.release is not None:
            await self.release.wait()
        if not self.payloads:
            raise FetchFailed("Could not reach the feed through any proxy: no data returned")
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return payload


@pytest.fixture
def sync_config():
    return SyncConfig(
        api_user='owner@example.com',
        api_password='p@ss word',
        sync_year=2026,
        proxies=[
            ProxySettings('wrapped', 'https://wrap.test/get?url={url}', PROXY_MODE_JSON_CONTENTS),
            ProxySettings('raw-one', 'https://raw-one.test/?quest={url}'),
            ProxySettings('raw-two', 'https://raw-two.test/?{url}'),
        ],
        write_batch_size=1000,
    )


@pytest.fixture
def db():
    return FakeSupabase(seed_tables())


@pytest.fixture
def synced_db():
    """A property that has completed a sync before"""
    return FakeSupabase(seed_tables(last_synced_at='2026-02-01T08:00:00+00:00'))


@pytest.fixture
def make_service(sync_config):
    def _make(db, payloads=None, gateway=None):
        gateway = gateway or StubGateway(payloads)
        return AvailabilitySyncService(db, sync_config, gateway=gateway, clock=lambda: FIXED_NOW)
    return _make
