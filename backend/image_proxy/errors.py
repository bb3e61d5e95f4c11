"""
Image Proxy Errors

Exception taxonomy shared by the cache store, sweeper and proxy orchestrator.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""


class CacheNotFoundError(RelayError):
    """Key is absent from the cache."""

    def __init__(self, key: str):
        super().__init__(f"Cache entry not found: {key}")
        self.key = key


class InvalidKeyError(RelayError):
    """Key would escape the cache directory or collide with temp files."""

    def __init__(self, key: str):
        super().__init__(f"Invalid cache key: {key!r}")
        self.key = key


class CacheIOError(RelayError):
    """Local read/write/stat failure."""


class StatEnumerationError(CacheIOError):
    """Cache directory could not be listed."""


class RemoteFetchError(RelayError):
    """Upstream returned non-2xx or the transport failed."""

    def __init__(self, key: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"Remote fetch failed for {key}: {reason}")
        self.key = key
        self.reason = reason
        self.status_code = status_code
