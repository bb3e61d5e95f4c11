"""
Upload Service

Write temp file -> optionally compress -> upload -> delete temp on success.
If the upload fails the temp file is kept and served locally instead.
"""

import os
import re
import time
import uuid
import random
import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Protocol
from dataclasses import dataclass

from image_proxy.errors import RelayError
from github_store.client import UploadError

from .compressor import compress_png

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jpg"
BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*(=|==)?$")


class InvalidUploadError(RelayError):
    """Upload payload could not be decoded."""


class UploadTooLargeError(RelayError):
    """Decoded upload exceeds the configured limit."""


class ContentSink(Protocol):
    """Remote store that accepts uploads."""

    async def upload(self, data: bytes, key: str) -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        ...


@dataclass
class UploadOutcome:
    """What happened to an upload."""
    filename: str
    url: str
    stored_remotely: bool
    original_size: int
    final_size: int


def make_filename(original_name: str) -> str:
    """Unique stored name: ``<epoch-ms>-<random><ext>``, extension from the original name."""
    ext = os.path.splitext(os.path.basename(original_name))[1]
    ext = re.sub(r"[^a-zA-Z0-9.]", "", ext)
    if len(ext) < 2:
        ext = DEFAULT_EXTENSION
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"


def decode_base64(data: str) -> bytes:
    if not BASE64_PATTERN.match(data):
        raise InvalidUploadError("Invalid base64 data")
    # Some clients strip the trailing "=" padding
    data = data + "=" * (-len(data) % 4)
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise InvalidUploadError(f"Invalid base64 data: {e}") from e


class UploadService:
    """
    Handles base64 uploads.

    Usage:
        service = UploadService(tmp_dir, github_client, "http://localhost:8889", max_size)
        outcome = await service.handle(b64_data, "photo.png")
    """

    def __init__(
        self,
        tmp_dir: Path,
        sink: ContentSink,
        public_base_url: str,
        max_upload_size_bytes: int,
    ):
        self.tmp_dir = Path(tmp_dir)
        self.sink = sink
        self.public_base_url = public_base_url.rstrip("/")
        self.max_upload_size_bytes = max_upload_size_bytes
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

    def local_url(self, filename: str) -> str:
        return f"{self.public_base_url}/tmp/{filename}"

    async def handle(self, file_b64: str, file_name: str) -> UploadOutcome:
        """
        Decode, store, compress and upload a file.

        Raises:
            InvalidUploadError: if ``file_b64`` is not valid base64.
            UploadTooLargeError: if the decoded payload is above the limit.
            OSError: if the temp file can't be written.
        """
        # Cheap upper bound before decoding
        if len(file_b64) // 4 * 3 > self.max_upload_size_bytes + 2:
            raise UploadTooLargeError(f"Upload exceeds {self.max_upload_size_bytes} bytes")

        data = decode_base64(file_b64)
        if len(data) > self.max_upload_size_bytes:
            raise UploadTooLargeError(f"Upload exceeds {self.max_upload_size_bytes} bytes")

        filename = make_filename(file_name)
        file_path = self.tmp_dir / filename
        final_data = data
        await asyncio.to_thread(self._write_atomic, file_path, data)

        if filename.lower().endswith(".png"):
            logger.info("[Upload] Compressing PNG...")
            result = await asyncio.to_thread(compress_png, data)
            if result.compressed:
                await asyncio.to_thread(self._write_atomic, file_path, result.data)
                final_data = result.data
                logger.info(f"[Upload] PNG compression completed ({result.ratio_percent:.1f}% smaller)")

        logger.info(
            f"[Upload] File saved: {file_name} -> {filename} "
            f"({len(data)} bytes original, {len(final_data)} bytes final)"
        )

        try:
            url = await self.sink.upload(final_data, filename)
        except UploadError as e:
            logger.error(f"[Upload] GitHub upload failed: {e}")
            url = self.local_url(filename)
            logger.info(f"[Upload] Fallback to local URL: {url}")
            return UploadOutcome(filename, url, False, len(data), len(final_data))

        self._remove_temp(file_path)
        return UploadOutcome(filename, url, True, len(data), len(final_data))

    def _write_atomic(self, path: Path, data: bytes) -> None:
        tmp_path = path.with_name(f".part-{uuid.uuid4().hex}")
        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _remove_temp(self, path: Path) -> None:
        try:
            path.unlink()
            logger.info(f"[Upload] Local file cleaned up: {path.name}")
        except OSError as e:
            logger.warning(f"[Upload] Failed to remove temp file {path.name}: {e}")
