"""Exceptions raised by vuln-watch.

WatchError
├── ConfigurationError  bad config, unknown source, source with zero pages
├── FetchError          source or GitHub retrieval failed
├── PersistenceError    catalog read/write failed
├── DeliveryError       a notification sink failed to send
└── Cancelled           the run loop was asked to stop
"""

from typing import Optional


class WatchError(Exception):
    """Base exception for vuln-watch."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        self.source_name = source_name
        super().__init__(message)

    def __str__(self):
        if self.source_name:
            return f"[{self.source_name}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(WatchError):
    pass


class FetchError(WatchError):
    """Raised when a source or the GitHub API could not be read."""

    def __init__(self, message: str, source_name: Optional[str] = None, url: Optional[str] = None):
        self.url = url
        super().__init__(message, source_name)


class PersistenceError(WatchError):
    pass


class DeliveryError(WatchError):
    """Raised when a notification sink could not deliver a message."""


class Cancelled(WatchError):
    def __init__(self, message: str = "cancelled"):
        super().__init__(message)
