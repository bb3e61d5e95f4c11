"""
Image Upload API Routes

POST /api/upload accepts a base64 file and stores it in the GitHub repository.
"""

import logging
from typing import Optional
from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import require_token

from .uploader import InvalidUploadError, UploadService, UploadTooLargeError

logger = logging.getLogger(__name__)

# ============================================
# Request/Response Models
# ============================================


class Base64UploadRequest(BaseModel):
    """Request model for base64 upload. Both fields are checked by the handler."""
    file: Optional[str] = Field(None, description="Base64-encoded file content")
    fileName: Optional[str] = Field(None, description="Original file name")


class UploadResponse(BaseModel):
    """URL of the stored file."""
    data: str


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api", tags=["Upload"])


@router.post("/upload", response_model=UploadResponse, dependencies=[Depends(require_token)])
async def upload_base64(
    request: Base64UploadRequest,
    service: UploadService = Depends(get_upload_service),
):
    """
    Upload a base64-encoded image.

    PNGs are compressed before upload. If GitHub is unreachable the file is
    kept locally and a /tmp URL is returned instead.

    Example:
        POST /api/upload
        Authorization: Bearer <TOKEN>
        {"file": "iVBORw0KGgo...", "fileName": "screenshot.png"}
    """
    if not request.file or not request.fileName:
        logger.info("[Upload] Missing file or fileName in request body")
        return JSONResponse(status_code=400, content={"error": "Missing file or fileName"})

    logger.info(f"[Upload] Processing base64 upload: {request.fileName}")
    try:
        outcome = await service.handle(request.file, request.fileName)
    except UploadTooLargeError as e:
        logger.warning(f"[Upload] {e}")
        return JSONResponse(status_code=413, content={"error": "File too large"})
    except (InvalidUploadError, OSError) as e:
        logger.error(f"[Upload] Error processing base64 upload: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to process base64 upload"})

    logger.info(f"[Upload] Returning URL: {outcome.url}")
    return UploadResponse(data=outcome.url)
