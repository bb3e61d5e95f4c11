"""
Bearer Token Gate

FastAPI dependency protecting upload and cache management routes.
"""

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


async def require_token(request: Request, authorization: Optional[str] = Header(None)) -> None:
    """
    Check ``Authorization: Bearer <TOKEN>``.

    Raises:
        HTTPException: 401 when no token is sent, 403 when it doesn't match.
    """
    token = None
    if authorization:
        parts = authorization.split(" ", 1)
        if len(parts) == 2 and parts[1].strip():
            token = parts[1].strip()

    if not token:
        logger.info("[Auth] Authentication failed: No token provided")
        raise HTTPException(status_code=401, detail="Access token required")

    expected = request.app.state.settings.access_token
    if not secrets.compare_digest(token.encode(), expected.encode()):
        logger.info("[Auth] Authentication failed: Invalid token")
        raise HTTPException(status_code=403, detail="Invalid access token")
