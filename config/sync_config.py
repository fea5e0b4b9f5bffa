"""
Configuration for the Availability Sync system

This module loads configuration from sync_config.yaml and provides
typed access to feed, proxy, writer and scheduler settings.

Secrets (upstream API credentials) are never read from YAML; they come
from the environment, optionally populated from a .env file.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


PROXY_MODE_RAW = "raw"
PROXY_MODE_JSON_CONTENTS = "json_contents"


@dataclass
class ProxySettings:
    """A single CORS proxy the feed can be fetched through"""
    name: str
    template: str  # must contain a {url} placeholder
    mode: str = PROXY_MODE_RAW

    def __post_init__(self):
        assert "{url}" in self.template, f"Proxy template missing {{url}}: {self.template}"
        assert self.mode in (PROXY_MODE_RAW, PROXY_MODE_JSON_CONTENTS), f"Invalid proxy mode: {self.mode}"


@dataclass
class TableNames:
    properties: str = "properties"
    units: str = "units"
    availability: str = "availability"
    notifications: str = "notifications"


@dataclass
class PropertyColumns:
    """Column names on the properties table owned by the sync"""
    external_id: str = "hotres_id"
    sync_in_progress: str = "availability_sync_in_progress"
    last_synced_at: str = "availability_last_synced_at"


def _default_proxies() -> List[ProxySettings]:
    return [
        ProxySettings("allorigins", "https://api.allorigins.win/get?url={url}", PROXY_MODE_JSON_CONTENTS),
        ProxySettings("codetabs", "https://api.codetabs.com/v1/proxy?quest={url}"),
        ProxySettings("corsproxy", "https://corsproxy.io/?{url}"),
    ]


@dataclass
class SyncConfig:
    """Main configuration class for the availability sync"""

    # Upstream feed
    availability_url: str = (
        "https://panel.hotres.pl/api_availability?user={user}&password={password}"
        "&oid={oid}&from={date_from}&till={date_till}"
    )
    rooms_url: str = "https://panel.hotres.pl/api_rooms?user={user}&password={password}&oid={oid}"
    api_user: str = ""
    api_password: str = ""
    sync_year: Optional[int] = None  # None = current year

    # Proxies, tried in order
    proxies: List[ProxySettings] = field(default_factory=_default_proxies)

    # Browser/HTTP settings
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    request_timeout: Optional[float] = None

    # Writer
    write_batch_size: int = 1000

    # Auto-sync
    auto_sync_enabled: bool = False
    auto_sync_interval_seconds: int = 3600

    # Storage layout
    tables: TableNames = field(default_factory=TableNames)
    columns: PropertyColumns = field(default_factory=PropertyColumns)

    # Logging
    log_file: str = "availability_sync.log"
    log_level: str = "INFO"

    def __post_init__(self):
        assert self.write_batch_size > 0, f"Batch size must be positive: {self.write_batch_size}"
        assert self.auto_sync_interval_seconds > 0, f"Interval must be positive: {self.auto_sync_interval_seconds}"

    def sync_window(self, today: Optional[date] = None) -> tuple:
        """Return the (first_day, last_day) of the calendar year to reconcile"""
        year = self.sync_year or (today or date.today()).year
        return date(year, 1, 1), date(year, 12, 31)


def _load_yaml_config() -> Dict:
    """Load configuration from YAML file"""
    config_path = Path(__file__).parent / "sync_config.yaml"

    if not config_path.exists():
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
            logger.info(f"Loaded configuration from {config_path}")
            return config or {}
    except Exception as e:
        logger.error(f"Error loading config from {config_path}: {e}")
        return {}


def _build_config_from_yaml(yaml_config: Dict) -> SyncConfig:
    """Build SyncConfig from YAML configuration with environment overrides"""
    defaults = SyncConfig()

    feed = yaml_config.get('feed', {})
    browser = yaml_config.get('browser', {})
    writer = yaml_config.get('writer', {})
    auto_sync = yaml_config.get('auto_sync', {})
    tables = yaml_config.get('tables', {})
    columns = yaml_config.get('columns', {})
    logging_config = yaml_config.get('logging', {})

    proxies_yaml = yaml_config.get('proxies')
    if proxies_yaml:
        proxies = [
            ProxySettings(
                name=p.get('name', f"proxy_{i}"),
                template=p['template'],
                mode=p.get('mode', PROXY_MODE_RAW),
            )
            for i, p in enumerate(proxies_yaml)
        ]
    else:
        proxies = _default_proxies()

    sync_year = os.getenv('SYNC_YEAR') or feed.get('sync_year')

    return SyncConfig(
        availability_url=feed.get('availability_url', defaults.availability_url),
        rooms_url=feed.get('rooms_url', defaults.rooms_url),
        api_user=os.getenv('HOTRES_API_USER', ''),
        api_password=os.getenv('HOTRES_API_PASSWORD', ''),
        sync_year=int(sync_year) if sync_year else None,

        proxies=proxies,

        user_agent=browser.get('user_agent', defaults.user_agent),
        request_timeout=browser.get('request_timeout'),

        write_batch_size=int(writer.get('batch_size', 1000)),

        auto_sync_enabled=bool(auto_sync.get('enabled', False)),
        auto_sync_interval_seconds=int(
            os.getenv('AUTO_SYNC_INTERVAL_SECONDS', auto_sync.get('interval_seconds', 3600))
        ),

        tables=TableNames(**{**TableNames().__dict__, **tables}),
        columns=PropertyColumns(**{**PropertyColumns().__dict__, **columns}),

        log_file=logging_config.get('log_file', "availability_sync.log"),
        log_level=os.getenv("SYNC_LOG_LEVEL", logging_config.get('log_level', "INFO")),
    )


# Global configuration instance
_config: Optional[SyncConfig] = None


def get_config(reload: bool = False) -> SyncConfig:
    """
    Get the global configuration instance.

    Args:
        reload: If True, reload configuration from YAML file

    Returns:
        SyncConfig instance
    """
    global _config
    if _config is None or reload:
        yaml_config = _load_yaml_config()
        _config = _build_config_from_yaml(yaml_config)
    return _config


def reload_config() -> SyncConfig:
    """Force reload configuration from YAML file"""
    return get_config(reload=True)


def set_config(config: SyncConfig) -> None:
    """Set the global configuration instance (useful for testing)"""
    global _config
    _config = config
