"""
Image Proxy API Routes

Provides endpoints for:
- Serving repository files through the disk cache
- Cache statistics
- Cache management (cleanup)
"""

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, JSONResponse

from auth import require_token

from .errors import InvalidKeyError, RemoteFetchError
from .orchestrator import ProxyOrchestrator
from .sweeper import CacheSweeper

logger = logging.getLogger(__name__)

NOT_FOUND_BODY = {"error": "File not found or fetch failed"}


def get_orchestrator(request: Request) -> ProxyOrchestrator:
    return request.app.state.orchestrator


def get_sweeper(request: Request) -> CacheSweeper:
    return request.app.state.sweeper


# ============================================
# Routers
# ============================================

router = APIRouter(tags=["Image Proxy"])
cache_router = APIRouter(prefix="/api/cache", tags=["Cache"])


# ============================================
# Endpoints
# ============================================

@router.get("/proxy/{filename}")
async def proxy_file(filename: str, orchestrator: ProxyOrchestrator = Depends(get_orchestrator)):
    """
    Serve a repository file, caching it on disk.

    This endpoint:
    1. Serves the file from cache if present and not expired
    2. Otherwise fetches it from the GitHub repository
    3. Caches it and sweeps expired files if the cache is over budget

    Example:
        GET /proxy/1712345678901-123456789.png
    """
    logger.info(f"[ImageProxy] Proxy request for: {filename}")
    try:
        result = await orchestrator.serve(filename)
    except InvalidKeyError:
        logger.warning(f"[ImageProxy] Rejected key: {filename!r}")
        return JSONResponse(status_code=404, content=NOT_FOUND_BODY)
    except RemoteFetchError as e:
        logger.error(f"[ImageProxy] Proxy error for {filename}: {e.reason}")
        return JSONResponse(status_code=404, content=NOT_FOUND_BODY)

    return Response(
        content=result.data,
        media_type=result.content_type,
        headers={"X-Cache": result.cache_status},
    )


@cache_router.get("/stats")
async def get_cache_stats(request: Request):
    """
    Get cache statistics.

    Returns the current file count and size together with the
    configured limits.
    """
    orchestrator = get_orchestrator(request)
    stats = await orchestrator.store.stats()
    max_bytes = orchestrator.max_cache_size_bytes
    return JSONResponse(content={
        "success": True,
        "stats": {
            "total_files": stats.total_files,
            "total_size_bytes": stats.total_size_bytes,
            "total_size_mb": round(stats.total_size_mb, 2),
            "max_size_mb": max_bytes // (1024 * 1024),
            "usage_percent": round(stats.total_size_bytes / max_bytes * 100, 1) if max_bytes > 0 else 0,
            "expiry_days": round(orchestrator.policy.expiry_seconds / 86400, 1),
        },
    })


@cache_router.post("/cleanup", dependencies=[Depends(require_token)])
async def cleanup_cache(sweeper: CacheSweeper = Depends(get_sweeper)):
    """
    Delete expired cache files now.

    This also runs at startup, on a timer and when the cache grows
    past its size limit.
    """
    result = await sweeper.sweep(reason="manual")
    stats = await sweeper.store.stats()
    return JSONResponse(content={
        "success": True,
        **result.to_dict(),
        "current_stats": {
            "total_files": stats.total_files,
            "total_size_bytes": stats.total_size_bytes,
        },
    })
