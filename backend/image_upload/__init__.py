"""
Image Upload Module

Accepts base64 uploads and stores them in the GitHub repository.

Features:
- Atomic temp file writes
- PNG palette compression with fallback to the original
- Local /tmp URL fallback when GitHub is unavailable
"""

from .routes_fastapi import router
from .uploader import UploadService, UploadOutcome
from .compressor import compress_png

__all__ = ["router", "UploadService", "UploadOutcome", "compress_png"]
