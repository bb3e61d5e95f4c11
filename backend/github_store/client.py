"""
GitHub Content Client

Uses a GitHub repository as object storage:
- Uploads go through the contents API (PUT, base64 body)
- Reads go through raw.githubusercontent.com
"""

import base64
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from image_proxy.errors import RelayError, RemoteFetchError
from settings import GitHubSettings

logger = logging.getLogger(__name__)

USER_AGENT = "image-relay-upload-service"


class UploadError(RelayError):
    """GitHub rejected the upload or could not be reached."""


class GitHubContentClient:
    """
    Reads and writes files in a GitHub repository.

    Usage:
        client = GitHubContentClient(settings.github)
        url = await client.upload(data, "1712345678901-1.png")
        data = await client.fetch("1712345678901-1.png")
        await client.close()
    """

    def __init__(self, settings: GitHubSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    async def close(self):
        """Close HTTP client."""
        await self.http_client.aclose()

    def raw_url(self, key: str) -> str:
        s = self.settings
        return f"{s.raw_base_url}/{s.owner}/{s.repo}/refs/heads/{s.branch}/{quote(key)}"

    def contents_url(self, key: str) -> str:
        s = self.settings
        return f"{s.api_base_url}/repos/{s.owner}/{s.repo}/contents/{quote(key)}"

    def public_url(self, key: str) -> str:
        return f"{self.settings.site_prefix}{key}"

    async def fetch(self, key: str) -> bytes:
        """
        Download a file from the repository's branch.

        Raises:
            RemoteFetchError: on non-2xx responses and transport errors.
        """
        url = self.raw_url(key)
        logger.info(f"[GitHub] Fetching from GitHub raw: {url}")
        try:
            response = await self.http_client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.error(f"[GitHub] Timeout fetching: {key}")
            raise RemoteFetchError(key, "timeout")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"[GitHub] HTTP error {status} fetching: {key}")
            raise RemoteFetchError(key, f"HTTP {status}", status_code=status)
        except httpx.HTTPError as e:
            logger.error(f"[GitHub] Fetch error for {key}: {e}")
            raise RemoteFetchError(key, str(e))
        return response.content

    async def upload(self, data: bytes, key: str) -> str:
        """
        Commit ``data`` to the repository under ``key``.

        Returns:
            Public URL of the uploaded file.

        Raises:
            UploadError: if GitHub rejects the request or can't be reached.
        """
        logger.info(f"[GitHub] Uploading to GitHub: {key}")
        payload = {
            "message": f"Upload {key}",
            "content": base64.b64encode(data).decode("ascii"),
            "branch": self.settings.branch,
        }
        try:
            response = await self.http_client.put(
                self.contents_url(key),
                json=payload,
                headers={"Authorization": f"token {self.settings.token}"},
            )
        except httpx.HTTPError as e:
            raise UploadError(f"GitHub upload failed: {e}") from e

        if not response.is_success:
            raise UploadError(f"GitHub upload failed: {response.status_code} {response.text}")

        url = self.public_url(key)
        logger.info(f"[GitHub] GitHub upload successful: {url}")
        return url
