"""
DocVault Keyed Locks — Advisory per-lineage / per-subtree serialization.

Version-number computation and subtree walks are read-then-write sequences
with no transaction around them. A keyed lock taken before the read phase
serializes conflicting operations on the same logical unit:

    lineage:{lineage_root_id}   — version creation / restore
    folder:{folder_id}          — access-control propagation / cascading delete

Backends:
    InProcessKeyedLock — asyncio.Lock per key (single process)
    RedisKeyedLock     — redis lock per key (multiple workers)
    NullKeyedLock      — no serialization (locking.enabled: false)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Dict, Optional

from redis.exceptions import LockError

logger = logging.getLogger("docvault.engine.locks")


def lineage_key(lineage_root_id: str) -> str:
    return f"lineage:{lineage_root_id}"


def folder_key(folder_id: str) -> str:
    return f"folder:{folder_id}"


class KeyedLock(ABC):
    """Interface: async context manager serializing callers by key."""

    @abstractmethod
    def hold(self, key: str) -> AsyncContextManager[None]:
        """Return an async context manager held for the duration of the block."""


class NullKeyedLock(KeyedLock):
    """Lock that never blocks."""

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        yield


class InProcessKeyedLock(KeyedLock):
    """
    asyncio.Lock per key. Entries are dropped once no task holds or waits
    on them, so the map does not grow with every lineage ever touched.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    @property
    def active_keys(self) -> int:
        return len(self._locks)


class RedisKeyedLock(KeyedLock):
    """
    Redis-backed lock for deployments running several workers.

    Uses redis.asyncio's Lock (SET NX PX + token check on release). The
    timeout bounds how long a crashed holder can block a key.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "docvault:lock:",
        timeout_seconds: int = 60,
        client=None,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._timeout = timeout_seconds
        self._client = client

    def _get_client(self):
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.Redis.from_url(
                self._redis_url,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            logger.info(f"Redis lock client created ({self._prefix})")
        return self._client

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        name = f"{self._prefix}{key}"
        lock = self._get_client().lock(name, timeout=self._timeout, blocking_timeout=self._timeout)
        if not await lock.acquire():
            raise LockError(f"Could not acquire {name} within {self._timeout}s")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Expired while the block ran
                logger.warning(f"Lock {name} lost before release (timeout {self._timeout}s): {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_keyed_lock(config=None) -> KeyedLock:
    """
    Build the lock backend from the loaded docvault.yaml (LockingConfig).

    Args:
        config: PlatformConfig; defaults to get_config().
    """
    if config is None:
        from docvault.engine.config import get_config
        config = get_config()

    locking = config.locking
    if not locking.enabled:
        logger.warning("Keyed locking disabled — concurrent writers may race")
        return NullKeyedLock()
    if locking.backend == "redis":
        return RedisKeyedLock(
            redis_url=config.redis.url,
            prefix=locking.prefix,
            timeout_seconds=locking.timeout_seconds,
        )
    return InProcessKeyedLock()


_default_lock: Optional[KeyedLock] = None


def get_default_lock() -> KeyedLock:
    """Process-wide lock shared by services built without an explicit lock."""
    global _default_lock
    if _default_lock is None:
        _default_lock = InProcessKeyedLock()
    return _default_lock
