"""
Image Relay 测试配置文件

这个文件包含 pytest fixtures（测试夹具）。
Fixtures 是测试的"准备工作"——在测试运行前创建所需的对象和环境。

关键概念：
- 每个测试都使用 tmp_path 下独立的缓存目录
- 远程存储（GitHub）用 FakeSource / FakeSink 替代，可以统计调用次数
- 文件"年龄"通过 os.utime 修改 mtime 来模拟
"""

import os
import sys
import time
from pathlib import Path

import pytest

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from settings import CacheSettings, GitHubSettings, Settings, SECONDS_PER_DAY
from github_store import UploadError
from image_proxy import CacheStore, CacheSweeper, ExpiryPolicy, ProxyOrchestrator
from image_proxy.errors import RemoteFetchError

EXPIRY_SECONDS = 90 * SECONDS_PER_DAY
ACCESS_TOKEN = "test-token"


# ============================================
# Fakes
# ============================================

class FakeSource:
    """
    远程内容源的替身。

    - blobs: key -> bytes，没有的 key 会抛出 RemoteFetchError
    - calls: 记录每次 fetch 的 key，用于断言调用次数
    """

    def __init__(self, blobs=None):
        self.blobs = dict(blobs or {})
        self.calls = []

    async def fetch(self, key: str) -> bytes:
        self.calls.append(key)
        if key not in self.blobs:
            raise RemoteFetchError(key, "HTTP 404", status_code=404)
        return self.blobs[key]


class FakeSink:
    """上传目标的替身，fail=True 时模拟 GitHub 上传失败。"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads = {}

    async def upload(self, data: bytes, key: str) -> str:
        if self.fail:
            raise UploadError("GitHub upload failed: 500 boom")
        self.uploads[key] = data
        return f"https://cdn.example.com/{key}"


# ============================================
# Cache Fixtures
# ============================================

@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def store(cache_dir):
    return CacheStore(cache_dir)


@pytest.fixture
def policy(store):
    return ExpiryPolicy(store, EXPIRY_SECONDS)


@pytest.fixture
def sweeper(store, policy):
    return CacheSweeper(store, policy, interval_seconds=3600)


@pytest.fixture
def source():
    return FakeSource({"a.png": b"\x89PNG" + b"x" * 96, "b.jpg": b"jpeg-bytes"})


@pytest.fixture
def orchestrator(store, policy, sweeper, source):
    return ProxyOrchestrator(store, policy, sweeper, source, max_cache_size_bytes=1024 * 1024)


# ============================================
# Settings Fixtures
# ============================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        github=GitHubSettings(
            token="gh-token",
            owner="octo",
            repo="images",
            branch="main",
            site_prefix="https://cdn.example.com/",
        ),
        access_token=ACCESS_TOKEN,
        cache=CacheSettings(
            cache_dir=tmp_path / "cache",
            expiry_seconds=EXPIRY_SECONDS,
            max_cache_size_bytes=1024 * 1024,
            sweep_interval_seconds=3600,
        ),
        tmp_dir=tmp_path / "tmp",
        public_base_url="http://localhost:8889",
        max_upload_size_bytes=1024 * 1024,
    )


# ============================================
# Helper Functions
# ============================================

def put_file(directory: Path, name: str, data: bytes = b"data", age_seconds: float = 0) -> Path:
    """
    直接在缓存目录写入文件，并把 mtime 调整到 age_seconds 秒之前。

    使用方式：
    ```python
    put_file(cache_dir, "old.png", age_seconds=EXPIRY_SECONDS + 1)
    ```
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(data)
    set_age(path, age_seconds)
    return path


def set_age(path: Path, age_seconds: float) -> None:
    mtime = time.time() - age_seconds
    os.utime(path, (mtime, mtime))
