"""Fixtures for tests running against the in-memory database."""

import pytest

from autopool.config.settings import settings
from autopool.services.autopool import AutoPoolService, PlacementUnit
from autopool.services.payout.plan import PayoutPlan


@pytest.fixture
def place(queue):
    """
    Place one participant at level 1 as its own committed unit.

    Usage:
        result, plan = await place(session, participant)
    """

    async def _place(session, participant, config=None):
        plan = PayoutPlan(
            event_key=f"placement:{participant.id}",
            platform_wallet=settings.platform_wallet_address,
        )
        async with PlacementUnit(queue) as unit:
            service = AutoPoolService(session, unit, config or settings)
            result = await service.enter_autopool(participant, plan)
            await session.commit()
            await unit.commit()
        return result, plan

    return _place


@pytest.fixture
def fill_level_one(make_participant, place):
    """
    Place count new participants at level 1 in order.

    Returns:
        List of (participant, placement result, plan)
    """

    async def _fill(session, count, config=None, start=None):
        placed = start if start is not None else []
        for _ in range(count):
            participant = await make_participant(session)
            result, plan = await place(session, participant, config)
            placed.append((participant, result, plan))
        return placed

    return _fill
