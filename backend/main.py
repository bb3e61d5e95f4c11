"""
Image Relay Server

FastAPI application: uploads go to a GitHub repository, reads are served
through a local disk cache.

Run:
    cd backend
    python main.py
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from settings import Settings
from github_store import GitHubContentClient
from image_proxy import (
    CacheStore,
    CacheSweeper,
    ExpiryPolicy,
    ProxyOrchestrator,
    router as proxy_router,
    cache_router,
)
from image_proxy.orchestrator import ContentSource
from image_upload import UploadService, router as upload_router
from image_upload.uploader import ContentSink

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    source: Optional[ContentSource] = None,
    sink: Optional[ContentSink] = None,
) -> FastAPI:
    """
    Build the application.

    ``source`` and ``sink`` default to a shared GitHubContentClient.
    """
    github_client = None
    if source is None or sink is None:
        github_client = GitHubContentClient(settings.github)
    source = source or github_client
    sink = sink or github_client

    store = CacheStore(settings.cache.cache_dir)
    policy = ExpiryPolicy(store, settings.cache.expiry_seconds)
    sweeper = CacheSweeper(store, policy, settings.cache.sweep_interval_seconds)
    orchestrator = ProxyOrchestrator(
        store=store,
        policy=policy,
        sweeper=sweeper,
        source=source,
        max_cache_size_bytes=settings.cache.max_cache_size_bytes,
    )
    upload_service = UploadService(
        tmp_dir=settings.tmp_dir,
        sink=sink,
        public_base_url=settings.public_base_url,
        max_upload_size_bytes=settings.max_upload_size_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[Server] Running startup cache cleanup...")
        await sweeper.run_startup()
        sweeper.start()
        logger.info(f"[Server] Server running on {settings.public_base_url}")
        logger.info("[Server] Upload endpoint: POST /api/upload")
        logger.info("[Server] Proxy endpoint: GET /proxy/{filename}")
        logger.info("[Server] Static files: GET /tmp/*")
        try:
            yield
        finally:
            await sweeper.stop()
            if github_client is not None:
                await github_client.close()

    app = FastAPI(title="Image Relay", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.sweeper = sweeper
    app.state.upload_service = upload_service

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else "-"
        logger.info(f"[Server] {request.method} {request.url.path} - {client}")
        return await call_next(request)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"[Server] Error: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "image-relay", "sweeper_running": sweeper.running}

    app.include_router(upload_router)
    app.include_router(proxy_router)
    app.include_router(cache_router)
    app.mount("/tmp", StaticFiles(directory=Path(settings.tmp_dir)), name="tmp")

    return app


def main():
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import uvicorn
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
