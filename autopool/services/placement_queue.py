"""
Placement queue.

FIFO of free child slots, one queue per pool level. Pops are atomic so two
concurrent callers never receive the same slot.

Two implementations:
- RedisPlacementQueue: Redis list (RPUSH / LPOP, LPUSH to re-queue)
- InMemoryPlacementQueue: asyncio.Lock guarded deque for single-process
  deployments and tests
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass

import redis.asyncio as redis
from loguru import logger

from autopool.config.constants import PLACEMENT_QUEUE_KEY
from autopool.models.enums import NodePosition


@dataclass(frozen=True)
class SlotDescriptor:
    """Free child position under a placed node."""

    parent_node_id: int
    position: NodePosition

    def to_json(self) -> str:
        """Serialize for storage in Redis."""
        return json.dumps(
            {"parent_node_id": self.parent_node_id, "position": self.position.value}
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "SlotDescriptor":
        """Deserialize from Redis value."""
        data = json.loads(raw)
        return cls(
            parent_node_id=int(data["parent_node_id"]),
            position=NodePosition(data["position"]),
        )


class PlacementQueue(ABC):
    """Per-level FIFO of slot descriptors."""

    @abstractmethod
    async def pop(self, pool_level: int) -> SlotDescriptor | None:
        """Atomically pop the oldest slot, or None if empty."""

    @abstractmethod
    async def push(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        """Append slots to the tail, preserving order."""

    @abstractmethod
    async def requeue(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        """Return popped slots to the head, preserving their original order."""

    @abstractmethod
    async def length(self, pool_level: int) -> int:
        """Number of queued slots."""


class RedisPlacementQueue(PlacementQueue):
    """Placement queue on a Redis list per level."""

    def __init__(self, redis_client: redis.Redis) -> None:
        """
        Initialize queue.

        Args:
            redis_client: Redis client
        """
        self.redis_client = redis_client

    @staticmethod
    def _key(pool_level: int) -> str:
        return PLACEMENT_QUEUE_KEY.format(level=pool_level)

    async def pop(self, pool_level: int) -> SlotDescriptor | None:
        raw = await self.redis_client.lpop(self._key(pool_level))
        if raw is None:
            return None
        try:
            return SlotDescriptor.from_json(raw)
        except (ValueError, KeyError) as e:
            logger.error(f"Dropping malformed slot on level {pool_level}: {raw!r} ({e})")
            return await self.pop(pool_level)

    async def push(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        if not slots:
            return
        await self.redis_client.rpush(
            self._key(pool_level), *[slot.to_json() for slot in slots]
        )

    async def requeue(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        if not slots:
            return
        # LPUSH inserts one by one at the head, so push in reverse
        await self.redis_client.lpush(
            self._key(pool_level), *[slot.to_json() for slot in reversed(slots)]
        )

    async def length(self, pool_level: int) -> int:
        return int(await self.redis_client.llen(self._key(pool_level)))


class InMemoryPlacementQueue(PlacementQueue):
    """Mutex-guarded in-process placement queue."""

    def __init__(self) -> None:
        self._queues: dict[int, deque[SlotDescriptor]] = {}
        self._lock = asyncio.Lock()

    def _queue(self, pool_level: int) -> deque[SlotDescriptor]:
        return self._queues.setdefault(pool_level, deque())

    async def pop(self, pool_level: int) -> SlotDescriptor | None:
        async with self._lock:
            queue = self._queue(pool_level)
            return queue.popleft() if queue else None

    async def push(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        async with self._lock:
            self._queue(pool_level).extend(slots)

    async def requeue(self, pool_level: int, slots: list[SlotDescriptor]) -> None:
        async with self._lock:
            self._queue(pool_level).extendleft(reversed(slots))

    async def length(self, pool_level: int) -> int:
        async with self._lock:
            return len(self._queue(pool_level))

    async def snapshot(self, pool_level: int) -> list[SlotDescriptor]:
        """Copy of queued slots (head first)."""
        async with self._lock:
            return list(self._queue(pool_level))
