"""
Placement unit.

Scope of one event's placements. It owns:
- the per-level placement locks (acquired lazily, ascending levels)
- slots popped from the shared queue (re-queued on rollback)
- child slots created by this event (pushed only after commit)

Queue pop, node creation and child-slot push therefore apply as one unit:
if the database transaction rolls back, the queue is restored.
"""

from collections import deque
from contextlib import AsyncExitStack
from types import TracebackType

import redis.asyncio as redis
from loguru import logger

from autopool.config.constants import (
    PLACEMENT_LOCK_BLOCKING_TIMEOUT,
    PLACEMENT_LOCK_KEY,
    PLACEMENT_LOCK_TIMEOUT,
)
from autopool.services.placement_queue import PlacementQueue, SlotDescriptor
from autopool.utils.distributed_lock import DistributedLock
from autopool.utils.exceptions import PlacementError


class PlacementUnit:
    """
    Per-event placement scope.

    Usage:
        async with PlacementUnit(queue, redis_client) as unit:
            ...  # TreeBuilder(session, unit).place_participant(...)
            await session.commit()
            await unit.commit()
    """

    def __init__(
        self,
        queue: PlacementQueue,
        redis_client: redis.Redis | None = None,
    ) -> None:
        self.queue = queue
        self._lock = DistributedLock(redis_client=redis_client)
        self._exit_stack = AsyncExitStack()
        self._locked_levels: set[int] = set()
        self._popped: dict[int, list[SlotDescriptor]] = {}
        self._deferred: dict[int, deque[SlotDescriptor]] = {}
        self._closed = False

    async def __aenter__(self) -> "PlacementUnit":
        await self._exit_stack.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if not self._closed:
                await self.rollback()
        finally:
            await self._exit_stack.__aexit__(exc_type, exc, tb)

    @property
    def locked_levels(self) -> set[int]:
        return set(self._locked_levels)

    async def lock_level(self, pool_level: int) -> None:
        """
        Hold the placement lock of a level until the unit exits.

        Raises:
            PlacementError: Lock not acquired in time, or a lower level
                requested after a higher one
        """
        if pool_level in self._locked_levels:
            return
        if self._locked_levels and pool_level < max(self._locked_levels):
            raise PlacementError(
                f"Placement locks must be taken in ascending level order "
                f"(held {sorted(self._locked_levels)}, requested {pool_level})"
            )

        acquired = await self._exit_stack.enter_async_context(
            self._lock.lock(
                PLACEMENT_LOCK_KEY.format(level=pool_level),
                timeout=PLACEMENT_LOCK_TIMEOUT,
                blocking=True,
                blocking_timeout=PLACEMENT_LOCK_BLOCKING_TIMEOUT,
            )
        )
        if not acquired:
            raise PlacementError(f"Could not acquire placement lock for level {pool_level}")
        self._locked_levels.add(pool_level)

    async def pop_slot(self, pool_level: int) -> SlotDescriptor | None:
        """
        Pop the next slot for a level.

        Shared queue first (older slots), then this unit's own deferred
        child slots.
        """
        slot = await self.queue.pop(pool_level)
        if slot is not None:
            self._popped.setdefault(pool_level, []).append(slot)
            return slot

        deferred = self._deferred.get(pool_level)
        if deferred:
            return deferred.popleft()
        return None

    def discard(self, pool_level: int, slot: SlotDescriptor) -> None:
        """Forget a stale popped slot so rollback does not restore it."""
        popped = self._popped.get(pool_level, [])
        if slot in popped:
            popped.remove(slot)

    def defer_children(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        """Stage child slots until commit."""
        self._deferred.setdefault(pool_level, deque()).extend(slots)

    def pending_push_count(self, pool_level: int) -> int:
        return len(self._deferred.get(pool_level, ()))

    def deferred_slots(self, pool_level: int) -> list[SlotDescriptor]:
        """Child slots staged by this unit, oldest first."""
        return list(self._deferred.get(pool_level, ()))

    def take_deferred(self, pool_level: int, slot: SlotDescriptor) -> None:
        """Consume a staged child slot so it is never pushed."""
        self._deferred[pool_level].remove(slot)

    async def commit(self) -> None:
        """Push staged child slots after the database commit."""
        for pool_level in sorted(self._deferred):
            slots = list(self._deferred[pool_level])
            if slots:
                await self.queue.push(pool_level, slots)
                logger.debug(f"Pushed {len(slots)} slots to level {pool_level} queue")
        self._deferred.clear()
        self._popped.clear()
        self._closed = True

    async def rollback(self) -> None:
        """Restore popped slots to the head of their queues."""
        for pool_level, slots in self._popped.items():
            if slots:
                await self.queue.requeue(pool_level, slots)
                logger.info(
                    f"Re-queued {len(slots)} slots on level {pool_level} after rollback"
                )
        self._deferred.clear()
        self._popped.clear()
        self._closed = True
