"""
Periodic scheduler.

Enqueues payout reconciliation every minute. Run with:

    python -m jobs.scheduler
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from autopool.logging_setup import setup_logging
from jobs.broker import broker  # noqa: F401  (sets the default broker)
from jobs.tasks.payout_reconciliation import reconcile_payouts

RECONCILIATION_INTERVAL_SECONDS = 60


def create_scheduler() -> AsyncIOScheduler:
    """Create scheduler with the reconciliation job registered."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        reconcile_payouts.send,
        "interval",
        seconds=RECONCILIATION_INTERVAL_SECONDS,
        id="payout_reconciliation",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


async def main() -> None:
    setup_logging("scheduler")
    scheduler = create_scheduler()
    scheduler.start()
    logger.info(
        f"Scheduler started: payout reconciliation every "
        f"{RECONCILIATION_INTERVAL_SECONDS}s"
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    asyncio.run(main())
