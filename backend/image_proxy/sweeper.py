"""
Cache Sweeper

Deletes expired cache files. Runs once at startup, on a recurring timer,
and whenever the proxy notices the cache is over its size budget.

A sweep only removes entries past the expiry threshold; a size-triggered
sweep can free nothing if every entry is still fresh.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .cache_manager import CacheEntry, CacheStore, EntryFailure
from .expiry import ExpiryPolicy

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep."""
    deleted: List[CacheEntry] = field(default_factory=list)
    failures: List[EntryFailure] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def freed_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self.deleted)

    def to_dict(self) -> dict:
        return {
            "deleted_count": self.deleted_count,
            "freed_bytes": self.freed_bytes,
            "freed_mb": round(self.freed_bytes / (1024 * 1024), 2),
            "failed_count": len(self.failures),
        }


class CacheSweeper:
    """
    Removes expired entries from a CacheStore.

    Usage:
        sweeper = CacheSweeper(store, policy, interval_seconds=86400)
        await sweeper.run_startup()
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        store: CacheStore,
        policy: ExpiryPolicy,
        interval_seconds: float,
        temp_grace_seconds: Optional[float] = None,
    ):
        self.store = store
        self.policy = policy
        self.interval_seconds = interval_seconds
        # Temp files younger than this may still be in-flight writes
        self.temp_grace_seconds = interval_seconds if temp_grace_seconds is None else temp_grace_seconds
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def sweep(self, reason: str = "manual") -> SweepResult:
        """
        Delete every expired entry and any temp file older than the grace period.

        Never raises: per-entry failures are logged and reported in the result.
        """
        async with self._lock:
            logger.info(f"[CacheSweeper] Starting cache cleanup ({reason})...")
            scan = await self.policy.list_expired()
            result = SweepResult(failures=list(scan.failures))
            now = self.policy.now()
            orphans = [
                temp for temp in await self.store.temp_files()
                if temp.age_seconds(now) >= self.temp_grace_seconds
            ]

            if not scan.expired and not orphans:
                logger.info("[CacheSweeper] Cache cleanup: No expired files found")
                return result

            for entry in scan.expired:
                if await self._delete(entry, result):
                    logger.info(
                        f"[CacheSweeper] Deleted expired cache file: {entry.name} "
                        f"({entry.size_bytes / 1024:.1f}KB, {entry.age_days(now)} days old)"
                    )

            for temp in orphans:
                if await self._delete(temp, result):
                    logger.info(f"[CacheSweeper] Removed orphaned temp file: {temp.name}")

            logger.info(
                f"[CacheSweeper] Cache cleanup completed: {result.deleted_count} files deleted, "
                f"{result.freed_bytes / 1024 / 1024:.2f}MB freed"
            )
            return result

    async def _delete(self, entry: CacheEntry, result: SweepResult) -> bool:
        try:
            await self.store.delete(entry)
        except OSError as e:
            logger.error(f"[CacheSweeper] Failed to delete cache file {entry.name}: {e}")
            result.failures.append(EntryFailure(name=entry.name, operation="delete", reason=str(e)))
            return False
        result.deleted.append(entry)
        return True

    async def run_startup(self) -> SweepResult:
        """Startup sweep, logging cache size before and after."""
        stats = await self.store.stats()
        logger.info(
            f"[CacheSweeper] Current cache: {stats.total_files} files, {stats.total_size_mb:.2f}MB"
        )
        result = await self.sweep(reason="startup")
        if result.deleted_count > 0:
            stats = await self.store.stats()
            logger.info(
                f"[CacheSweeper] Cache after cleanup: {stats.total_files} files, {stats.total_size_mb:.2f}MB"
            )
        return result

    # ============================================
    # Periodic cleanup
    # ============================================

    def start(self) -> None:
        """Start the recurring cleanup task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._cleanup_loop())
            logger.info(
                f"[CacheSweeper] Cache cleanup scheduled every {self.interval_seconds / 3600:g} hours"
            )

    async def stop(self) -> None:
        """Cancel the recurring cleanup task."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep(reason="periodic")
            except Exception as e:
                logger.error(f"[CacheSweeper] Periodic cache cleanup failed: {e}")
