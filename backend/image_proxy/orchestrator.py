"""
Proxy Orchestrator

Fetch-or-serve logic for GET /proxy/{filename}:

    CHECK_CACHE -> SERVE_CACHED -> DONE
    CHECK_CACHE -> FETCH_REMOTE -> WRITE_CACHE -> MAYBE_SWEEP -> SERVE_FETCHED -> DONE
    FETCH_REMOTE -> FAIL

Stale entries are never served and never deleted here; they are
overwritten by the next successful fetch or removed by a sweep.
"""

import os
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from .cache_manager import CacheStore
from .errors import CacheIOError, CacheNotFoundError, RemoteFetchError
from .expiry import ExpiryPolicy
from .sweeper import CacheSweeper, SweepResult

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}


def content_type_for(key: str) -> str:
    """Infer the content type from the key's extension."""
    ext = os.path.splitext(key)[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


class ContentSource(Protocol):
    """Remote store the proxy falls back to on a cache miss."""

    async def fetch(self, key: str) -> bytes:
        """Return the blob for ``key`` or raise RemoteFetchError."""
        ...


class ProxyState(str, Enum):
    CHECK_CACHE = "check_cache"
    SERVE_CACHED = "serve_cached"
    FETCH_REMOTE = "fetch_remote"
    WRITE_CACHE = "write_cache"
    MAYBE_SWEEP = "maybe_sweep"
    SERVE_FETCHED = "serve_fetched"
    DONE = "done"
    FAIL = "fail"


@dataclass
class ProxyResult:
    """Blob to serve plus how it was obtained."""
    key: str
    data: bytes
    content_type: str
    cache_status: str  # "HIT" or "MISS"
    states: List[ProxyState] = field(default_factory=list)
    sweep: Optional[SweepResult] = None


class ProxyOrchestrator:
    """
    Serves keys from the disk cache, falling back to a remote content source.

    No locking is applied: two concurrent misses for the same key both
    fetch and both write, and the last writer wins.
    """

    def __init__(
        self,
        store: CacheStore,
        policy: ExpiryPolicy,
        sweeper: CacheSweeper,
        source: ContentSource,
        max_cache_size_bytes: int,
    ):
        self.store = store
        self.policy = policy
        self.sweeper = sweeper
        self.source = source
        self.max_cache_size_bytes = max_cache_size_bytes

    async def serve(self, key: str) -> ProxyResult:
        """
        Resolve ``key`` to a blob.

        Raises:
            InvalidKeyError: if the key is not a safe filename.
            RemoteFetchError: on a miss whose remote fetch failed.
        """
        states = [ProxyState.CHECK_CACHE]
        content_type = content_type_for(key)

        cached = await self._read_valid(key)
        if cached is not None:
            states += [ProxyState.SERVE_CACHED, ProxyState.DONE]
            return ProxyResult(key, cached, content_type, "HIT", states)

        # Miss or stale
        states.append(ProxyState.FETCH_REMOTE)
        logger.info(f"[ImageProxy] Cache miss or expired, fetching: {key}")
        try:
            data = await self.source.fetch(key)
        except RemoteFetchError:
            states.append(ProxyState.FAIL)
            raise

        states.append(ProxyState.WRITE_CACHE)
        try:
            await self.store.write(key, data)
            logger.info(f"[ImageProxy] Cached file: {key} ({len(data) / 1024:.1f}KB)")
        except CacheIOError as e:
            logger.error(f"[ImageProxy] Failed to cache {key}: {e}")

        states.append(ProxyState.MAYBE_SWEEP)
        sweep = await self._maybe_sweep()

        states += [ProxyState.SERVE_FETCHED, ProxyState.DONE]
        return ProxyResult(key, data, content_type, "MISS", states, sweep)

    async def _read_valid(self, key: str) -> Optional[bytes]:
        """Return the cached blob if present and still valid."""
        try:
            entry = await self.store.stat(key)
            if entry is None or not self.policy.is_valid(entry):
                return None
            data = await self.store.read(key)
        except CacheNotFoundError:
            # Deleted by a sweep between stat and read
            return None
        except CacheIOError as e:
            logger.warning(f"[ImageProxy] Cache read failed for {key}, refetching: {e}")
            return None

        logger.info(
            f"[ImageProxy] Serving from cache: {key} "
            f"({entry.size_bytes / 1024:.1f}KB, {entry.age_days(self.policy.now())} days old)"
        )
        return data

    async def _maybe_sweep(self) -> Optional[SweepResult]:
        stats = await self.store.stats()
        if stats.total_size_bytes <= self.max_cache_size_bytes:
            return None
        logger.info(
            f"[ImageProxy] Cache size ({stats.total_size_mb:.2f}MB) exceeds limit "
            f"({self.max_cache_size_bytes / 1024 / 1024:.0f}MB), running cleanup..."
        )
        return await self.sweeper.sweep(reason="size limit")
