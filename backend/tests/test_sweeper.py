"""
清理器测试

测试 CacheSweeper：删除过期文件、幂等性、部分失败容忍、定时任务。
"""

import asyncio

import pytest

from image_proxy import CacheSweeper
from image_proxy.errors import CacheNotFoundError
from conftest import EXPIRY_SECONDS, put_file


class TestSweep:
    """清理测试"""

    @pytest.mark.asyncio
    async def test_sweep_deletes_expired_entry(self, store, sweeper, cache_dir):
        """测试：过期文件被删除，之后读取返回 NotFound"""
        put_file(cache_dir, "old.png", b"x" * 40, age_seconds=EXPIRY_SECONDS + 1)

        result = await sweeper.sweep()

        assert result.deleted_count == 1
        assert result.freed_bytes == 40
        with pytest.raises(CacheNotFoundError):
            await store.read("old.png")

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, sweeper, cache_dir):
        """测试：连续两次清理，第二次返回 {0, 0}"""
        put_file(cache_dir, "old1.png", age_seconds=EXPIRY_SECONDS + 10)
        put_file(cache_dir, "old2.png", age_seconds=EXPIRY_SECONDS + 20)

        first = await sweeper.sweep()
        second = await sweeper.sweep()

        assert first.deleted_count == 2
        assert (second.deleted_count, second.freed_bytes) == (0, 0)

    @pytest.mark.asyncio
    async def test_three_valid_two_expired(self, store, sweeper, cache_dir):
        """测试：3 个有效 + 2 个过期，清理前统计 5 个，清理后 3 个"""
        for name in ("v1.png", "v2.png", "v3.png"):
            put_file(cache_dir, name, age_seconds=3600)
        for name in ("e1.png", "e2.png"):
            put_file(cache_dir, name, age_seconds=EXPIRY_SECONDS * 2)

        assert (await store.stats()).total_files == 5
        await sweeper.sweep()
        assert (await store.stats()).total_files == 3

    @pytest.mark.asyncio
    async def test_delete_failure_is_recorded_not_raised(self, store, sweeper, cache_dir, monkeypatch):
        """测试：单个文件删除失败不会中断清理"""
        put_file(cache_dir, "locked.png", b"aa", age_seconds=EXPIRY_SECONDS + 1)
        put_file(cache_dir, "free.png", b"bbb", age_seconds=EXPIRY_SECONDS + 1)

        real_delete = store.delete

        async def flaky_delete(entry):
            if entry.name == "locked.png":
                raise PermissionError("permission denied")
            await real_delete(entry)

        monkeypatch.setattr(store, "delete", flaky_delete)

        result = await sweeper.sweep()

        assert [e.name for e in result.deleted] == ["free.png"]
        assert result.freed_bytes == 3
        assert [(f.name, f.operation) for f in result.failures] == [("locked.png", "delete")]
        assert (cache_dir / "locked.png").exists()

    @pytest.mark.asyncio
    async def test_already_removed_file_is_skipped(self, store, sweeper, cache_dir, monkeypatch):
        """测试：文件在清理前被并发删除时跳过，不抛异常"""
        put_file(cache_dir, "gone.png", age_seconds=EXPIRY_SECONDS + 1)
        real_list_expired = sweeper.policy.list_expired

        async def list_then_remove():
            scan = await real_list_expired()
            (cache_dir / "gone.png").unlink()
            return scan

        monkeypatch.setattr(sweeper.policy, "list_expired", list_then_remove)

        result = await sweeper.sweep()

        assert result.deleted_count == 0
        assert len(result.failures) == 1

    @pytest.mark.asyncio
    async def test_run_startup_sweeps(self, sweeper, cache_dir):
        """测试：启动清理会删除过期文件"""
        put_file(cache_dir, "old.png", age_seconds=EXPIRY_SECONDS + 1)

        result = await sweeper.run_startup()

        assert result.deleted_count == 1

    def test_result_to_dict(self):
        """测试：结果摘要字段"""
        from image_proxy import SweepResult

        assert SweepResult().to_dict() == {
            "deleted_count": 0,
            "freed_bytes": 0,
            "freed_mb": 0.0,
            "failed_count": 0,
        }


class TestPeriodicSweep:
    """定时清理测试"""

    @pytest.mark.asyncio
    async def test_timer_runs_sweep(self, store, policy, cache_dir):
        """测试：定时任务按间隔执行清理"""
        sweeper = CacheSweeper(store, policy, interval_seconds=0.01)
        put_file(cache_dir, "old.png", age_seconds=EXPIRY_SECONDS + 1)

        sweeper.start()
        try:
            for _ in range(100):
                if not (cache_dir / "old.png").exists():
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()

        assert not (cache_dir / "old.png").exists()
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, sweeper):
        """测试：重复 start 不会创建多个任务"""
        sweeper.start()
        task = sweeper._task
        sweeper.start()

        assert sweeper._task is task
        await sweeper.stop()


class TestOrphanedTempFiles:
    """遗留临时文件回收测试"""

    @pytest.mark.asyncio
    async def test_old_temp_file_is_reclaimed(self, store, sweeper, cache_dir):
        """测试：超过宽限期的临时文件被删除并计入释放空间"""
        put_file(cache_dir, ".tmp-crashed", b"x" * 25, age_seconds=EXPIRY_SECONDS * 5)

        result = await sweeper.sweep()

        assert [e.name for e in result.deleted] == [".tmp-crashed"]
        assert result.freed_bytes == 25
        assert not (cache_dir / ".tmp-crashed").exists()
        assert (await store.stats()).total_size_bytes == 0

    @pytest.mark.asyncio
    async def test_recent_temp_file_is_kept(self, sweeper, cache_dir):
        """测试：宽限期内的临时文件可能是正在进行的写入，不删除"""
        put_file(cache_dir, ".tmp-inflight", b"partial", age_seconds=60)

        result = await sweeper.sweep()

        assert result.deleted_count == 0
        assert (cache_dir / ".tmp-inflight").exists()

    @pytest.mark.asyncio
    async def test_grace_period_is_configurable(self, store, policy, cache_dir):
        """测试：可以单独设置临时文件宽限期"""
        sweeper = CacheSweeper(store, policy, interval_seconds=3600, temp_grace_seconds=10)
        put_file(cache_dir, ".tmp-a", age_seconds=60)

        result = await sweeper.sweep()

        assert result.deleted_count == 1

    @pytest.mark.asyncio
    async def test_temp_delete_failure_is_recorded(self, store, sweeper, cache_dir, monkeypatch):
        """测试：临时文件删除失败时记录 delete 失败，不抛异常"""
        put_file(cache_dir, ".tmp-locked", age_seconds=EXPIRY_SECONDS * 5)
        put_file(cache_dir, "old.png", b"abc", age_seconds=EXPIRY_SECONDS + 1)
        real_delete = store.delete

        async def flaky_delete(entry):
            if entry.name == ".tmp-locked":
                raise PermissionError("permission denied")
            await real_delete(entry)

        monkeypatch.setattr(store, "delete", flaky_delete)

        result = await sweeper.sweep()

        assert [e.name for e in result.deleted] == ["old.png"]
        assert [(f.name, f.operation) for f in result.failures] == [(".tmp-locked", "delete")]
