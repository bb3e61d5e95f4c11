"""
Relay Settings

Immutable configuration read once at startup from the environment.
Every component receives the part it needs explicitly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

SECONDS_PER_DAY = 24 * 60 * 60
# Months are counted as 30 days
SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY

REQUIRED_ENV_VARS = ("GITHUB_TOKEN", "GITHUB_REPO", "SITE_PREFIX", "TOKEN")


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True)
class CacheSettings:
    """Limits for the proxy disk cache."""
    cache_dir: Path = Path("./cache")
    expiry_seconds: float = 3 * SECONDS_PER_MONTH
    max_cache_size_bytes: int = 1024 * 1024 * 1024
    sweep_interval_seconds: float = 24 * 60 * 60


@dataclass(frozen=True)
class GitHubSettings:
    """Remote object store (a GitHub repository)."""
    token: str
    owner: str
    repo: str
    branch: str
    site_prefix: str
    timeout_seconds: float = 30.0
    api_base_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"

    @classmethod
    def from_repo_spec(cls, token: str, repo_spec: str, site_prefix: str, **kwargs) -> "GitHubSettings":
        """Build settings from an ``owner/repo/branch`` string."""
        parts = repo_spec.strip("/").split("/")
        if len(parts) != 3 or not all(parts):
            raise ConfigError(f"GITHUB_REPO must look like owner/repo/branch, got: {repo_spec!r}")
        owner, repo, branch = parts
        return cls(token=token, owner=owner, repo=repo, branch=branch, site_prefix=site_prefix, **kwargs)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings for the relay."""
    github: GitHubSettings
    access_token: str
    cache: CacheSettings = field(default_factory=CacheSettings)
    tmp_dir: Path = Path("./tmp")
    port: int = 8889
    public_base_url: str = "http://localhost:8889"
    max_upload_size_bytes: int = 50 * 1024 * 1024
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Read settings from environment variables.

        Raises:
            ConfigError: if a required variable is missing or a number is malformed.
        """
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        try:
            port = int(env.get("PORT", "8889"))
            cache = CacheSettings(
                cache_dir=Path(env.get("CACHE_DIR", "./cache")),
                expiry_seconds=float(env.get("CACHE_DURATION_MONTHS", "3")) * SECONDS_PER_MONTH,
                max_cache_size_bytes=int(float(env.get("MAX_CACHE_SIZE_MB", "1024")) * 1024 * 1024),
                sweep_interval_seconds=float(env.get("CACHE_CLEANUP_INTERVAL_HOURS", "24")) * 3600,
            )
            max_upload = int(float(env.get("MAX_UPLOAD_SIZE_MB", "50")) * 1024 * 1024)
            timeout = float(env.get("FETCH_TIMEOUT_SECONDS", "30"))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        github = GitHubSettings.from_repo_spec(
            token=env["GITHUB_TOKEN"],
            repo_spec=env["GITHUB_REPO"],
            site_prefix=env["SITE_PREFIX"],
            timeout_seconds=timeout,
        )

        return cls(
            github=github,
            access_token=env["TOKEN"],
            cache=cache,
            tmp_dir=Path(env.get("TMP_DIR", "./tmp")),
            port=port,
            public_base_url=env.get("PUBLIC_BASE_URL", f"http://localhost:{port}").rstrip("/"),
            max_upload_size_bytes=max_upload,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
