"""
Image Cache Store

Disk-backed key -> blob map for proxied images:
- One flat directory, one file per key
- Directory listing is the only persisted state (no metadata file)
- Atomic writes through a hidden temp file + rename
- Best-effort enumeration for stats and expiry scans
"""

import os
import time
import uuid
import asyncio
import logging
from pathlib import Path
from stat import S_ISREG
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

from .errors import CacheIOError, CacheNotFoundError, InvalidKeyError, StatEnumerationError

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


@dataclass(frozen=True)
class CacheEntry:
    """Metadata for a cached file, derived from the filesystem."""
    name: str
    path: Path
    size_bytes: int
    last_modified: float

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.last_modified

    def age_days(self, now: Optional[float] = None) -> int:
        return round(self.age_seconds(now) / 86400)


@dataclass(frozen=True)
class EntryFailure:
    """A single entry that could not be processed during a batch operation."""
    name: str
    operation: str  # "stat", "delete" or "list"
    reason: str


@dataclass(frozen=True)
class CacheStats:
    """Aggregate snapshot of the cache directory."""
    total_files: int
    total_size_bytes: int

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / (1024 * 1024)


@dataclass
class CacheScan:
    """One pass over the cache directory."""
    entries: List[CacheEntry] = field(default_factory=list)
    temp_files: List[CacheEntry] = field(default_factory=list)
    failures: List[EntryFailure] = field(default_factory=list)


class CacheStore:
    """
    Flat file cache keyed by filename.

    Cache structure:
    cache_dir/
    ├── 1712345678901-123456789.png
    ├── 1712345679000-987654321.jpg
    └── .tmp-<uuid>   (in-flight writes, reclaimed by the sweeper if orphaned)
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self._init_cache_dir()

    def _init_cache_dir(self) -> None:
        """Create cache directory if it doesn't exist."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[ImageCache] Cache directory: {self.cache_dir}")

    def path_for(self, key: str) -> Path:
        """
        Map a key to its file path.

        Raises:
            InvalidKeyError: if the key could escape the cache directory
                or clash with in-flight temp files.
        """
        if (
            not key
            or key in (".", "..")
            or key.startswith(".")
            or "/" in key
            or "\\" in key
            or "\x00" in key
        ):
            raise InvalidKeyError(key)
        return self.cache_dir / key

    # ============================================
    # Single-entry operations
    # ============================================

    async def read(self, key: str) -> bytes:
        """
        Read a cached blob. No validity check is performed here.

        Raises:
            CacheNotFoundError: if the key is not cached.
            CacheIOError: on any other local failure.
        """
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError):
            raise CacheNotFoundError(key)
        except OSError as e:
            raise CacheIOError(f"Failed to read {key}: {e}") from e

    async def write(self, key: str, data: bytes) -> CacheEntry:
        """
        Store a blob under ``key``, replacing any previous entry.

        Raises:
            CacheIOError: if the blob could not be written.
        """
        path = self.path_for(key)
        try:
            entry = await asyncio.to_thread(self._write_atomic, key, path, data)
        except OSError as e:
            raise CacheIOError(f"Failed to write {key}: {e}") from e
        logger.debug(f"[ImageCache] Cached: {key} ({len(data)} bytes)")
        return entry

    def _write_atomic(self, key: str, path: Path, data: bytes) -> CacheEntry:
        tmp_path = self.cache_dir / f"{TEMP_PREFIX}{uuid.uuid4().hex}"
        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        st = path.stat()
        return CacheEntry(name=key, path=path, size_bytes=st.st_size, last_modified=st.st_mtime)

    async def stat(self, key: str) -> Optional[CacheEntry]:
        """Return metadata for ``key``, or None if it is not cached."""
        path = self.path_for(key)
        try:
            st = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(f"Failed to stat {key}: {e}") from e
        return CacheEntry(name=key, path=path, size_bytes=st.st_size, last_modified=st.st_mtime)

    async def delete(self, entry: CacheEntry) -> None:
        """Remove a cached file. Raises OSError on failure."""
        await asyncio.to_thread(entry.path.unlink)

    # ============================================
    # Enumeration
    # ============================================

    async def entries(self) -> Tuple[List[CacheEntry], List[EntryFailure]]:
        """
        List every cached file.

        Per-entry stat failures are logged and returned alongside the
        successful entries. If the directory itself can't be listed the
        result is empty with a single "list" failure.
        """
        scan = await asyncio.to_thread(self._scan)
        return scan.entries, scan.failures

    async def temp_files(self) -> List[CacheEntry]:
        """List leftover ``.tmp-*`` files, including ones from interrupted writes."""
        scan = await asyncio.to_thread(self._scan)
        return scan.temp_files

    def _scan(self) -> CacheScan:
        scan = CacheScan()
        try:
            names = self._list_names()
        except StatEnumerationError as e:
            logger.error(f"[ImageCache] Error reading cache directory: {e}")
            scan.failures.append(EntryFailure(name=str(self.cache_dir), operation="list", reason=str(e)))
            return scan

        for name in names:
            is_temp = name.startswith(TEMP_PREFIX)
            if name.startswith(".") and not is_temp:
                continue
            path = self.cache_dir / name
            try:
                st = path.stat()
            except OSError as e:
                if is_temp and isinstance(e, FileNotFoundError):
                    # Renamed into place while listing
                    continue
                logger.warning(f"[ImageCache] Could not stat cache file {name}: {e}")
                scan.failures.append(EntryFailure(name=name, operation="stat", reason=str(e)))
                continue
            if not S_ISREG(st.st_mode):
                continue
            entry = CacheEntry(name=name, path=path, size_bytes=st.st_size, last_modified=st.st_mtime)
            (scan.temp_files if is_temp else scan.entries).append(entry)
        return scan

    def _list_names(self) -> List[str]:
        try:
            return os.listdir(self.cache_dir)
        except OSError as e:
            raise StatEnumerationError(str(e)) from e

    async def stats(self) -> CacheStats:
        """
        Get cache statistics. O(n) in the number of cached files.

        Temp files are not counted as files but their bytes count toward
        the total, so orphaned writes still push the cache over budget.
        """
        scan = await asyncio.to_thread(self._scan)
        return CacheStats(
            total_files=len(scan.entries),
            total_size_bytes=sum(e.size_bytes for e in scan.entries + scan.temp_files),
        )
