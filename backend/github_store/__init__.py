"""
GitHub Store Module

Remote object storage backed by a GitHub repository.
"""

from .client import GitHubContentClient, UploadError

__all__ = ["GitHubContentClient", "UploadError"]
