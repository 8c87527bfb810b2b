"""
Qualifying event task.

Applies one qualifying event delivered by the chain listener or the API.
Replayable rejections (short payment rail balance, full pool level, lock
timeout) are raised so the Retries middleware delivers the event again.
"""

from typing import Any

import dramatiq
from loguru import logger

from autopool.services.event_processor import QualifyingEventProcessor
from autopool.services.payment_gateway import create_payment_gateway
from autopool.services.placement_queue import RedisPlacementQueue
from autopool.utils.exceptions import AutoPoolError
from autopool.utils.redis_utils import get_redis_client
from jobs.async_runner import run_async
from jobs.utils.database import create_task_engine, create_task_session_maker


@dramatiq.actor(max_retries=3, time_limit=300_000)  # 5 min timeout
def process_qualifying_event(payload: dict[str, Any]) -> None:
    """
    Process a qualifying event payload.

    Args:
        payload: Untyped event (event_type, event_id or tx_hash, participant_id, ...)
    """
    logger.info(
        f"Received qualifying event {payload.get('event_type')} "
        f"{payload.get('event_id') or payload.get('tx_hash')}"
    )
    run_async(_process_qualifying_event_async(payload))


async def _process_qualifying_event_async(payload: dict[str, Any]) -> None:
    """Async implementation of event processing."""
    local_engine = create_task_engine()
    session_maker = create_task_session_maker(local_engine)
    redis_client = await get_redis_client()

    try:
        processor = QualifyingEventProcessor(
            session_factory=session_maker,
            gateway=create_payment_gateway(),
            queue=RedisPlacementQueue(redis_client),
            redis_client=redis_client,
        )
        result = await processor.process_payload(payload)

        logger.info(
            f"Event {result.event_key} -> {result.status}"
            + (f" ({result.error})" if result.error else "")
        )
        if result.replayable:
            raise AutoPoolError(
                f"Event {result.event_key} rejected, scheduling replay: {result.error}"
            )
    finally:
        await redis_client.aclose()
        await local_engine.dispose()
