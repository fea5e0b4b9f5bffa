"""
Configuration module for the availability sync system.
"""

from .sync_config import (
    SyncConfig,
    ProxySettings,
    TableNames,
    PropertyColumns,
    PROXY_MODE_RAW,
    PROXY_MODE_JSON_CONTENTS,
    get_config,
    reload_config,
    set_config,
)

__all__ = [
    'SyncConfig',
    'ProxySettings',
    'TableNames',
    'PropertyColumns',
    'PROXY_MODE_RAW',
    'PROXY_MODE_JSON_CONTENTS',
    'get_config',
    'reload_config',
    'set_config',
]
