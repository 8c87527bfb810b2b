"""
Tests for the placement queue and placement unit.

Covers:
- FIFO order, head re-queue and per-level isolation
- Redis list commands issued by the Redis queue
- Deferred child slots pushed only on commit
- Popped slots restored on rollback
- Ascending lock order
- Atomic pop and level lock serialization under concurrent callers
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from autopool.models.enums import NodePosition
from autopool.services.autopool.unit import PlacementUnit
from autopool.services.placement_queue import (
    InMemoryPlacementQueue,
    RedisPlacementQueue,
    SlotDescriptor,
)
from autopool.utils import distributed_lock
from autopool.utils.exceptions import PlacementError


def slot(parent: int, position: NodePosition = NodePosition.LEFT) -> SlotDescriptor:
    return SlotDescriptor(parent_node_id=parent, position=position)


class TestSlotDescriptor:
    def test_json_round_trip(self):
        original = slot(42, NodePosition.RIGHT)

        assert SlotDescriptor.from_json(original.to_json()) == original

    def test_from_bytes(self):
        raw = b'{"parent_node_id": 3, "position": "left"}'

        assert SlotDescriptor.from_json(raw) == slot(3)


class TestInMemoryPlacementQueue:
    """Mutex-guarded FIFO."""

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1), slot(1, NodePosition.RIGHT), slot(2)])

        assert await queue.pop(1) == slot(1)
        assert await queue.pop(1) == slot(1, NodePosition.RIGHT)
        assert await queue.length(1) == 1

    @pytest.mark.asyncio
    async def test_empty_pop_returns_none(self):
        queue = InMemoryPlacementQueue()

        assert await queue.pop(1) is None

    @pytest.mark.asyncio
    async def test_requeue_restores_head_order(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1), slot(2), slot(3)])
        first = await queue.pop(1)
        second = await queue.pop(1)

        await queue.requeue(1, [first, second])

        assert await queue.snapshot(1) == [slot(1), slot(2), slot(3)]

    @pytest.mark.asyncio
    async def test_levels_are_isolated(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1)])
        await queue.push(2, [slot(9)])

        assert await queue.pop(2) == slot(9)
        assert await queue.length(1) == 1


class TestRedisPlacementQueue:
    """Redis list per level."""

    @pytest.mark.asyncio
    async def test_pop_decodes_slot(self, mock_redis):
        mock_redis.lpop = AsyncMock(return_value=slot(5).to_json().encode())
        queue = RedisPlacementQueue(mock_redis)

        assert await queue.pop(2) == slot(5)
        mock_redis.lpop.assert_awaited_once_with("autopool:placement_queue:2")

    @pytest.mark.asyncio
    async def test_pop_skips_malformed_value(self, mock_redis):
        mock_redis.lpop = AsyncMock(side_effect=[b"garbage", slot(6).to_json()])
        queue = RedisPlacementQueue(mock_redis)

        assert await queue.pop(1) == slot(6)
        assert mock_redis.lpop.await_count == 2

    @pytest.mark.asyncio
    async def test_push_appends_in_order(self, mock_redis):
        queue = RedisPlacementQueue(mock_redis)

        await queue.push(1, [slot(1), slot(1, NodePosition.RIGHT)])

        mock_redis.rpush.assert_awaited_once_with(
            "autopool:placement_queue:1",
            slot(1).to_json(),
            slot(1, NodePosition.RIGHT).to_json(),
        )

    @pytest.mark.asyncio
    async def test_requeue_pushes_reversed_to_head(self, mock_redis):
        queue = RedisPlacementQueue(mock_redis)

        await queue.requeue(1, [slot(1), slot(2)])

        mock_redis.lpush.assert_awaited_once_with(
            "autopool:placement_queue:1",
            slot(2).to_json(),
            slot(1).to_json(),
        )

    @pytest.mark.asyncio
    async def test_empty_push_is_noop(self, mock_redis):
        queue = RedisPlacementQueue(mock_redis)

        await queue.push(1, [])
        await queue.requeue(1, [])

        mock_redis.rpush.assert_not_awaited()
        mock_redis.lpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_length(self, mock_redis):
        mock_redis.llen = AsyncMock(return_value=7)
        queue = RedisPlacementQueue(mock_redis)

        assert await queue.length(3) == 7


class TestPlacementUnit:
    """Queue effects applied as one unit."""

    @pytest.mark.asyncio
    async def test_children_pushed_only_on_commit(self):
        queue = InMemoryPlacementQueue()

        async with PlacementUnit(queue) as unit:
            unit.defer_children(1, [slot(1), slot(1, NodePosition.RIGHT)])
            assert unit.pending_push_count(1) == 2
            assert await queue.length(1) == 0
            await unit.commit()

        assert await queue.snapshot(1) == [slot(1), slot(1, NodePosition.RIGHT)]

    @pytest.mark.asyncio
    async def test_rollback_restores_popped_and_drops_deferred(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1), slot(2)])

        with pytest.raises(RuntimeError):
            async with PlacementUnit(queue) as unit:
                assert await unit.pop_slot(1) == slot(1)
                unit.defer_children(1, [slot(7)])
                raise RuntimeError("database failure")

        assert await queue.snapshot(1) == [slot(1), slot(2)]

    @pytest.mark.asyncio
    async def test_exit_without_commit_rolls_back(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1)])

        async with PlacementUnit(queue) as unit:
            await unit.pop_slot(1)

        assert await queue.snapshot(1) == [slot(1)]

    @pytest.mark.asyncio
    async def test_pop_prefers_queue_over_own_children(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1)])

        async with PlacementUnit(queue) as unit:
            unit.defer_children(1, [slot(2)])
            assert await unit.pop_slot(1) == slot(1)
            assert await unit.pop_slot(1) == slot(2)
            assert await unit.pop_slot(1) is None
            await unit.commit()

        assert await queue.length(1) == 0

    @pytest.mark.asyncio
    async def test_discarded_slot_not_restored(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(1), slot(2)])

        async with PlacementUnit(queue) as unit:
            stale = await unit.pop_slot(1)
            unit.discard(1, stale)
            await unit.pop_slot(1)
            await unit.rollback()

        assert await queue.snapshot(1) == [slot(2)]

    @pytest.mark.asyncio
    async def test_locks_taken_in_ascending_order(self):
        queue = InMemoryPlacementQueue()

        async with PlacementUnit(queue) as unit:
            await unit.lock_level(1)
            await unit.lock_level(3)
            await unit.lock_level(3)
            assert unit.locked_levels == {1, 3}

            with pytest.raises(PlacementError, match="ascending"):
                await unit.lock_level(2)
            await unit.commit()

    @pytest.mark.asyncio
    async def test_locks_released_on_exit(self):
        queue = InMemoryPlacementQueue()

        async with PlacementUnit(queue) as first:
            await first.lock_level(5)
            await first.commit()

        async with PlacementUnit(queue) as second:
            await second.lock_level(5)
            assert second.locked_levels == {5}
            await second.commit()

    @pytest.mark.asyncio
    async def test_take_deferred_slot_never_pushed(self):
        queue = InMemoryPlacementQueue()

        async with PlacementUnit(queue) as unit:
            unit.defer_children(2, [slot(1), slot(1, NodePosition.RIGHT)])
            assert unit.deferred_slots(2) == [slot(1), slot(1, NodePosition.RIGHT)]
            unit.take_deferred(2, slot(1))
            await unit.commit()

        assert await queue.snapshot(2) == [slot(1, NodePosition.RIGHT)]


class TestConcurrency:
    """Shared queue and level lock under concurrent callers."""

    @pytest.fixture(autouse=True)
    def fresh_local_locks(self, monkeypatch):
        monkeypatch.setattr(distributed_lock, "_local_locks", {})

    @pytest.mark.asyncio
    async def test_concurrent_pops_never_share_a_slot(self):
        queue = InMemoryPlacementQueue()
        await queue.push(1, [slot(i) for i in range(1, 51)])

        popped = await asyncio.gather(*(queue.pop(1) for _ in range(60)))

        taken = [s for s in popped if s is not None]
        assert len(taken) == 50
        assert len(set(taken)) == 50
        assert popped.count(None) == 10

    @pytest.mark.asyncio
    async def test_level_lock_serializes_units(self):
        queue = InMemoryPlacementQueue()
        inside = 0
        overlaps = 0

        async def place():
            nonlocal inside, overlaps
            async with PlacementUnit(queue) as unit:
                await unit.lock_level(1)
                inside += 1
                if inside > 1:
                    overlaps += 1
                await asyncio.sleep(0)
                inside -= 1
                await unit.commit()

        await asyncio.gather(*(place() for _ in range(10)))

        assert overlaps == 0
