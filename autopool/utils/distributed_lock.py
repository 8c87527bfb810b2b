"""
Distributed lock.

Redis-backed lock for coordinating workers across processes. Without a
Redis client the lock degrades to a process-local asyncio.Lock, which is
enough for a single worker and for tests.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import LockError

from autopool.config.constants import (
    DISTRIBUTED_LOCK_BLOCKING_TIMEOUT,
    DISTRIBUTED_LOCK_TIMEOUT,
)

# Process-local fallback locks, keyed by lock name
_local_locks: dict[str, asyncio.Lock] = {}


def _get_local_lock(name: str) -> asyncio.Lock:
    lock = _local_locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[name] = lock
    return lock


class DistributedLock:
    """
    Named lock over Redis.

    Usage:
        lock = DistributedLock(redis_client=redis_client)
        async with lock.lock("payout_reconciliation", timeout=300) as acquired:
            if acquired:
                ...
    """

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        """
        Initialize lock.

        Args:
            redis_client: Redis client (None for process-local locking)
        """
        self.redis_client = redis_client

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        timeout: float = DISTRIBUTED_LOCK_TIMEOUT,
        blocking: bool = True,
        blocking_timeout: float | None = DISTRIBUTED_LOCK_BLOCKING_TIMEOUT,
    ) -> AsyncIterator[bool]:
        """
        Acquire lock for the duration of the block.

        Args:
            name: Lock name
            timeout: Auto-release after this many seconds
            blocking: Wait for the lock if held elsewhere
            blocking_timeout: Max wait (None waits forever)

        Yields:
            True if the lock was acquired
        """
        if self.redis_client is None:
            async with self._local_lock(name, blocking, blocking_timeout) as acquired:
                yield acquired
            return

        redis_lock = self.redis_client.lock(
            f"lock:{name}",
            timeout=timeout,
            blocking=blocking,
            blocking_timeout=blocking_timeout,
        )
        acquired = await redis_lock.acquire()
        if not acquired:
            logger.warning(f"Could not acquire distributed lock '{name}'")
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await redis_lock.release()
                except LockError as e:
                    # Lock expired while held
                    logger.warning(f"Distributed lock '{name}' release failed: {e}")

    @asynccontextmanager
    async def _local_lock(
        self,
        name: str,
        blocking: bool,
        blocking_timeout: float | None,
    ) -> AsyncIterator[bool]:
        lock = _get_local_lock(name)
        acquired = False
        if not blocking:
            if not lock.locked():
                await lock.acquire()
                acquired = True
        else:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=blocking_timeout)
                acquired = True
            except TimeoutError:
                logger.warning(f"Timeout acquiring local lock '{name}'")
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
