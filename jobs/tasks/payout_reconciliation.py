"""
Payout reconciliation task.

Settles payout batches left pending, submitted or failed. Runs every
minute; batches that exhaust their attempts are moved to DLQ.
"""

import dramatiq
from loguru import logger

from autopool.config.constants import RECONCILIATION_LOCK_TIMEOUT
from autopool.services.payment_gateway import create_payment_gateway
from autopool.services.payout.reconciliation import PayoutReconciliationService
from autopool.utils.distributed_lock import DistributedLock
from autopool.utils.redis_utils import get_redis_client
from jobs.async_runner import run_async
from jobs.utils.database import create_task_engine, create_task_session_maker


@dramatiq.actor(max_retries=0, time_limit=300_000)  # 5 min timeout
def reconcile_payouts() -> None:
    """Reconcile unsettled payout batches."""
    logger.info("Starting payout reconciliation...")

    try:
        stats = run_async(_reconcile_payouts_async())
        logger.info(f"Payout reconciliation complete: {stats}")

    except Exception as e:
        logger.exception(f"Payout reconciliation failed: {e}")


async def _reconcile_payouts_async() -> dict | None:
    """Async implementation of payout reconciliation."""
    local_engine = create_task_engine()
    session_maker = create_task_session_maker(local_engine)
    redis_client = await get_redis_client()

    # Use distributed lock to prevent concurrent reconciliation
    lock = DistributedLock(redis_client=redis_client)

    try:
        async with lock.lock(
            "payout_reconciliation",
            timeout=RECONCILIATION_LOCK_TIMEOUT,
            blocking=False,
        ) as acquired:
            if not acquired:
                logger.info("Payout reconciliation already running, skipping")
                return None

            async with session_maker() as session:
                service = PayoutReconciliationService(
                    session, create_payment_gateway()
                )
                return await service.reconcile()
    finally:
        await redis_client.aclose()
        await local_engine.dispose()
