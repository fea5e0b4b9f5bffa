"""
Exceptions raised by the availability sync services
"""

from typing import Optional


class AvailabilitySyncError(Exception):
    """Base class for all availability sync errors"""


class FetchFailed(AvailabilitySyncError):
    """Every feed proxy failed; carries the last underlying error"""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


class ParseFailed(AvailabilitySyncError):
    """Feed payload matched neither supported format"""


class SyncConfigurationError(AvailabilitySyncError):
    """Property or its units are not set up for syncing"""
