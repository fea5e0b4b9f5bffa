"""
Feed Gateway for the Availability Sync system

The upstream booking engine does not allow cross-origin requests, so the
feed is fetched through an ordered list of public CORS proxies. Each proxy
gets a single attempt; the first one returning usable content wins.
"""

import asyncio
import logging
import time
from datetime import date
from typing import List, Optional
from urllib.parse import quote

import requests

from config.sync_config import (
    SyncConfig,
    ProxySettings,
    PROXY_MODE_JSON_CONTENTS,
    get_config,
)
from .errors import FetchFailed

logger = logging.getLogger(__name__)

# Bodies containing these markers are error pages relayed by the proxy
REJECTED_MARKERS = ('Access Denied', '404 Not Found')


class FeedGateway:
    """
    Fetches raw feed text through fallback proxies.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        session: Optional[requests.Session] = None,
        proxies: Optional[List[ProxySettings]] = None
    ):
        self.config = config or get_config()
        self.proxies = proxies if proxies is not None else list(self.config.proxies)

        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': 'application/json,application/xml;q=0.9,*/*;q=0.8',
        })

    def build_availability_url(self, external_id: str, date_from: date, date_till: date) -> str:
        """Build the upstream availability URL for one property and date range"""
        return self.config.availability_url.format(
            user=quote(self.config.api_user, safe=''),
            password=quote(self.config.api_password, safe=''),
            oid=quote(str(external_id).strip(), safe=''),
            date_from=date_from.isoformat(),
            date_till=date_till.isoformat(),
        )

    def build_rooms_url(self, external_id: str) -> str:
        """Build the upstream room list URL for one property"""
        return self.config.rooms_url.format(
            user=quote(self.config.api_user, safe=''),
            password=quote(self.config.api_password, safe=''),
            oid=quote(str(external_id).strip(), safe=''),
        )

    async def fetch_feed(self, target_url: str) -> str:
        """
        Fetch the target URL through the first proxy that returns content.

        Args:
            target_url: Upstream URL to fetch

        Returns:
            Decoded response text

        Raises:
            FetchFailed: when every proxy failed
        """
        if not self.proxies:
            raise FetchFailed("No feed proxies configured")

        separator = '&' if '?' in target_url else '?'
        no_cache_url = f"{target_url}{separator}_t={int(time.time() * 1000)}"

        last_error: Optional[BaseException] = None

        for proxy in self.proxies:
            try:
                text = await asyncio.to_thread(self._fetch_through, proxy, no_cache_url)
            except Exception as e:
                logger.warning(f"Proxy {proxy.name} failed: {e}")
                last_error = e
                continue

            if is_usable_body(text):
                logger.info(f"Fetched feed through proxy {proxy.name} ({len(text)} chars)")
                return text

            logger.warning(f"Proxy {proxy.name} returned no usable content")

        detail = str(last_error) if last_error else "no data returned"
        raise FetchFailed(f"Could not reach the feed through any proxy: {detail}", last_error)

    def _fetch_through(self, proxy: ProxySettings, url: str) -> str:
        """Single blocking attempt through one proxy"""
        proxy_url = proxy.template.format(url=quote(url, safe=''))
        response = self.session.get(proxy_url, timeout=self.config.request_timeout)

        if response.status_code < 200 or response.status_code >= 300:
            raise FetchFailed(f"{proxy.name} status: {response.status_code}")

        if proxy.mode == PROXY_MODE_JSON_CONTENTS:
            return response.json().get('contents') or ''

        return response.text


def is_usable_body(text: Optional[str]) -> bool:
    """Reject empty bodies and relayed error pages"""
    if not text or not text.strip():
        return False
    return not any(marker in text for marker in REJECTED_MARKERS)
