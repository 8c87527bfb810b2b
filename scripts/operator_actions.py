#!/usr/bin/env python3
"""
Operator actions for the compensation engine.

Usage:
    python scripts/operator_actions.py stats
    python scripts/operator_actions.py participant <public_id>
    python scripts/operator_actions.py dlq
    python scripts/operator_actions.py retry-dlq <batch_id>
    python scripts/operator_actions.py release-dlq <batch_id>
    python scripts/operator_actions.py reconcile
    python scripts/operator_actions.py retry-progression <participant_id> <from_level> [--top-up AMOUNT]
    python scripts/operator_actions.py submit-event '<json payload>'
"""

import argparse
import asyncio
import json
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from autopool.config.database import async_engine, async_session_maker
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.services.event_processor import QualifyingEventProcessor
from autopool.services.payment_gateway import create_payment_gateway
from autopool.services.payout.reconciliation import PayoutReconciliationService
from autopool.services.placement_queue import RedisPlacementQueue
from autopool.services.progression_service import ProgressionService
from autopool.services.statistics import StatisticsService
from autopool.utils.redis_utils import get_redis_client

# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def show_stats() -> None:
    async with async_session_maker() as session:
        stats = await StatisticsService(session).get_platform_stats()
    for key, value in stats.items():
        logger.info(f"{key}: {value}")


async def show_participant(public_id: str) -> None:
    async with async_session_maker() as session:
        participant = await ParticipantRepository(session).get_by_public_id(public_id)
        if participant is None:
            logger.error(f"Participant {public_id} not found")
            return
        summary = await StatisticsService(session).get_participant_summary(participant)
    for key, value in summary.items():
        logger.info(f"{key}: {value}")


async def show_dlq() -> None:
    async with async_session_maker() as session:
        service = PayoutReconciliationService(session, create_payment_gateway())
        batches = await service.get_dlq_batches()
    if not batches:
        logger.success("DLQ is empty")
    for batch in batches:
        logger.warning(
            f"#{batch.id} {batch.idempotency_key} total={batch.total_amount} "
            f"attempts={batch.attempt_count} error={batch.last_error}"
        )


async def retry_dlq(batch_id: int) -> None:
    async with async_session_maker() as session:
        service = PayoutReconciliationService(session, create_payment_gateway())
        success, tx_hash, error = await service.retry_dlq_batch(batch_id)
    if success:
        logger.success(f"Batch {batch_id} confirmed: {tx_hash}")
    else:
        logger.error(f"Batch {batch_id} not settled: {error}")


async def release_dlq(batch_id: int) -> None:
    async with async_session_maker() as session:
        service = PayoutReconciliationService(session, create_payment_gateway())
        released = await service.release_dlq_batch(batch_id)
    if released:
        logger.success(f"Batch {batch_id} released to reconciliation")
    else:
        logger.error(f"Batch {batch_id} is not in DLQ")


async def reconcile() -> None:
    async with async_session_maker() as session:
        service = PayoutReconciliationService(session, create_payment_gateway())
        stats = await service.reconcile()
    logger.info(f"Reconciliation: {stats}")


async def _processor(redis_client) -> QualifyingEventProcessor:
    return QualifyingEventProcessor(
        session_factory=async_session_maker,
        gateway=create_payment_gateway(),
        queue=RedisPlacementQueue(redis_client),
        redis_client=redis_client,
    )


async def retry_progression(
    participant_id: int, from_level: int, top_up: Decimal | None = None
) -> None:
    redis_client = await get_redis_client()
    try:
        service = ProgressionService(await _processor(redis_client))
        result, outcome = await service.retry_progression(
            participant_id, from_level, top_up
        )
    finally:
        await redis_client.aclose()
    logger.info(
        f"Progression retry: {result.status} "
        f"{outcome.status if outcome else ''} {result.error or ''}"
    )


async def submit_event(raw_payload: str) -> None:
    redis_client = await get_redis_client()
    try:
        processor = await _processor(redis_client)
        result = await processor.process_payload(json.loads(raw_payload))
    finally:
        await redis_client.aclose()
    logger.info(f"Event {result.event_key}: {result.status} {result.error or ''}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Compensation engine operator actions")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats")
    participant = sub.add_parser("participant")
    participant.add_argument("public_id")
    sub.add_parser("dlq")
    retry = sub.add_parser("retry-dlq")
    retry.add_argument("batch_id", type=int)
    release = sub.add_parser("release-dlq")
    release.add_argument("batch_id", type=int)
    sub.add_parser("reconcile")
    progression = sub.add_parser("retry-progression")
    progression.add_argument("participant_id", type=int)
    progression.add_argument("from_level", type=int)
    progression.add_argument("--top-up", type=Decimal, default=None)
    event = sub.add_parser("submit-event")
    event.add_argument("payload")
    args = parser.parse_args()

    try:
        if args.command == "stats":
            await show_stats()
        elif args.command == "participant":
            await show_participant(args.public_id)
        elif args.command == "dlq":
            await show_dlq()
        elif args.command == "retry-dlq":
            await retry_dlq(args.batch_id)
        elif args.command == "release-dlq":
            await release_dlq(args.batch_id)
        elif args.command == "reconcile":
            await reconcile()
        elif args.command == "retry-progression":
            await retry_progression(args.participant_id, args.from_level, args.top_up)
        elif args.command == "submit-event":
            await submit_event(args.payload)
    finally:
        await async_engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
