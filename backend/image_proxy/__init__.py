"""
Image Proxy Module

Serves files from the GitHub-backed image store through a local disk cache.

Features:
- Flat file cache, the directory is the only state
- Age-based expiry (default 3 months)
- Cleanup at startup, on a timer and when over the size limit
"""

from .cache_manager import CacheStore, CacheEntry, CacheStats, EntryFailure
from .expiry import ExpiryPolicy, ExpiryScan
from .sweeper import CacheSweeper, SweepResult
from .orchestrator import ProxyOrchestrator, ProxyResult, ProxyState, content_type_for
from .routes_fastapi import router, cache_router

__all__ = [
    "router",
    "cache_router",
    "CacheStore",
    "CacheEntry",
    "CacheStats",
    "EntryFailure",
    "ExpiryPolicy",
    "ExpiryScan",
    "CacheSweeper",
    "SweepResult",
    "ProxyOrchestrator",
    "ProxyResult",
    "ProxyState",
    "content_type_for",
]
