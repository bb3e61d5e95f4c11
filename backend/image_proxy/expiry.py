"""
Expiry Policy

Age-based validity for cache entries. Ages use wall-clock time, so a
clock rollback can keep entries alive longer or expire them early.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .cache_manager import CacheEntry, CacheStore, EntryFailure

logger = logging.getLogger(__name__)


@dataclass
class ExpiryScan:
    """Expired entries found by a scan, plus entries that couldn't be checked."""
    expired: List[CacheEntry] = field(default_factory=list)
    failures: List[EntryFailure] = field(default_factory=list)


class ExpiryPolicy:
    """
    Classifies cache entries as valid or expired.

    An entry is valid iff its age is strictly below the threshold.
    """

    def __init__(
        self,
        store: CacheStore,
        expiry_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.expiry_seconds = expiry_seconds
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def is_valid(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        if now is None:
            now = self._clock()
        return entry.age_seconds(now) < self.expiry_seconds

    async def list_expired(self) -> ExpiryScan:
        """Enumerate the cache and return entries that are no longer valid."""
        entries, failures = await self.store.entries()
        now = self._clock()
        expired = [entry for entry in entries if not self.is_valid(entry, now)]
        if expired:
            logger.debug(f"[ImageCache] {len(expired)} of {len(entries)} entries expired")
        return ExpiryScan(expired=expired, failures=failures)
