"""Unit tests for docvault.engine.locks — keyed advisory locks."""

import asyncio
from unittest.mock import MagicMock

import pytest
from redis.exceptions import LockError, LockNotOwnedError

from docvault.engine.config import PlatformConfig
from docvault.engine.locks import (
    KeyedLock,
    InProcessKeyedLock,
    NullKeyedLock,
    RedisKeyedLock,
    create_keyed_lock,
    folder_key,
    lineage_key,
)


def test_keys():
    assert lineage_key("d1") == "lineage:d1"
    assert folder_key("f1") == "folder:f1"


class TestInProcessKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_serializes(self):
        lock = InProcessKeyedLock()
        trace = []

        async def worker(name):
            async with lock.hold("lineage:d1"):
                trace.append(f"{name}-in")
                await asyncio.sleep(0.01)
                trace.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert trace in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_keys_overlap(self):
        lock = InProcessKeyedLock()
        inside = 0
        peak = 0

        async def worker(key):
            nonlocal inside, peak
            async with lock.hold(key):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(worker("folder:a"), worker("folder:b"))
        assert peak == 2

    @pytest.mark.asyncio
    async def test_entries_cleaned_up(self):
        lock = InProcessKeyedLock()
        async with lock.hold("k"):
            assert lock.active_keys == 1
        assert lock.active_keys == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        lock = InProcessKeyedLock()
        with pytest.raises(RuntimeError):
            async with lock.hold("k"):
                raise RuntimeError("boom")
        async with lock.hold("k"):
            pass
        assert lock.active_keys == 0


class TestKeyedLockInterface:

    def test_cannot_instantiate_base(self):
        with pytest.raises(TypeError):
            KeyedLock()


class TestNullKeyedLock:

    @pytest.mark.asyncio
    async def test_never_blocks(self):
        lock = NullKeyedLock()
        async with lock.hold("k"):
            async with lock.hold("k"):
                pass


class _FakeAsyncLock:
    def __init__(self, acquired=True, release_error=None):
        self.acquired = acquired
        self.release_error = release_error
        self.entered = False
        self.exited = False

    async def acquire(self):
        self.entered = self.acquired
        return self.acquired

    async def release(self):
        self.exited = True
        if self.release_error is not None:
            raise self.release_error


class TestRedisKeyedLock:

    @pytest.mark.asyncio
    async def test_uses_prefixed_redis_lock(self):
        fake_lock = _FakeAsyncLock()
        client = MagicMock()
        client.lock.return_value = fake_lock

        lock = RedisKeyedLock(prefix="dv:", timeout_seconds=7, client=client)
        async with lock.hold("folder:f1"):
            assert fake_lock.entered
        assert fake_lock.exited
        client.lock.assert_called_once_with("dv:folder:f1", timeout=7, blocking_timeout=7)

    @pytest.mark.asyncio
    async def test_expired_lock_does_not_mask_result(self):
        fake_lock = _FakeAsyncLock(release_error=LockNotOwnedError("expired"))
        client = MagicMock()
        client.lock.return_value = fake_lock

        lock = RedisKeyedLock(client=client)
        done = []
        async with lock.hold("folder:f1"):
            done.append(True)
        assert done == [True]
        assert fake_lock.exited

    @pytest.mark.asyncio
    async def test_body_error_still_propagates_when_release_fails(self):
        fake_lock = _FakeAsyncLock(release_error=LockNotOwnedError("expired"))
        client = MagicMock()
        client.lock.return_value = fake_lock

        with pytest.raises(RuntimeError):
            async with RedisKeyedLock(client=client).hold("folder:f1"):
                raise RuntimeError("boom")

    @pytest.mark.asyncio
    async def test_acquire_timeout_raises(self):
        client = MagicMock()
        client.lock.return_value = _FakeAsyncLock(acquired=False)

        with pytest.raises(LockError):
            async with RedisKeyedLock(client=client, timeout_seconds=1).hold("folder:f1"):
                pass


class TestCreateKeyedLock:

    def test_default_in_process(self):
        assert isinstance(create_keyed_lock(PlatformConfig()), InProcessKeyedLock)

    def test_disabled(self):
        cfg = PlatformConfig(locking={"enabled": False})
        assert isinstance(create_keyed_lock(cfg), NullKeyedLock)

    def test_redis(self):
        cfg = PlatformConfig(locking={"backend": "redis", "prefix": "x:"}, redis={"url": "redis://r:6379/1"})
        lock = create_keyed_lock(cfg)
        assert isinstance(lock, RedisKeyedLock)
        assert lock._redis_url == "redis://r:6379/1"
        assert lock._prefix == "x:"
