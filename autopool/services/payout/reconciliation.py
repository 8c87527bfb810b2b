"""
Payout reconciliation.

Repairs partial application: batches left pending, submitted or failed by
a crash, a timeout or a revert are re-driven through settlement. Batches
that exhaust their attempts are moved to the dead letter queue for
operator review.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.constants import PAYOUT_RECONCILIATION_BATCH
from autopool.config.settings import Settings
from autopool.models.payout_batch import PayoutBatch
from autopool.repositories.payout_repository import PayoutBatchRepository
from autopool.services.payment_gateway import PaymentGateway
from autopool.services.payout.settlement import (
    CONFIRMED,
    FAILED,
    MOVED_TO_DLQ,
    PENDING,
    PayoutSettlementService,
)
from autopool.utils.db_decorators import with_auto_commit, with_rollback_on_error


class PayoutReconciliationService:
    """Periodic settlement of unsettled payout batches."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.batch_repo = PayoutBatchRepository(session)
        self.settlement = PayoutSettlementService(session, gateway, config)

    async def reconcile(self, limit: int = PAYOUT_RECONCILIATION_BATCH) -> dict:
        """
        Process unsettled batches.

        Called by background job.

        Returns:
            Dict with processed, confirmed, pending, failed, moved_to_dlq counts
        """
        stats = self._create_empty_stats()
        batches = await self.batch_repo.find_unsettled(limit)
        if not batches:
            return stats

        logger.info(f"Reconciling {len(batches)} unsettled payout batches...")

        for batch in batches:
            outcome = await self._settle_safe(batch)
            stats["processed"] += 1
            stats[outcome] += 1

        logger.info(
            f"Reconciliation complete: {stats['confirmed']} confirmed, "
            f"{stats['pending']} pending, {stats['failed']} failed, "
            f"{stats['moved_to_dlq']} moved to DLQ "
            f"out of {stats['processed']} total"
        )
        return stats

    async def _settle_safe(self, batch: PayoutBatch) -> str:
        """
        Settle a single batch with error handling.

        Returns:
            One of: 'confirmed', 'pending', 'failed', 'moved_to_dlq'
        """
        try:
            return await self.settlement.settle_batch(batch)
        except Exception as e:
            logger.exception(f"Error reconciling batch {batch.idempotency_key}: {e}")
            await self.session.rollback()
            return FAILED

    async def get_dlq_batches(self, limit: int = 100) -> list[PayoutBatch]:
        """
        Get DLQ batches (for operator review).

        Returns:
            List of batches in dead letter queue
        """
        return await self.batch_repo.find_dlq(limit)

    @with_rollback_on_error
    async def retry_dlq_batch(
        self, batch_id: int
    ) -> tuple[bool, str | None, str | None]:
        """
        Manually retry a DLQ batch (operator action).

        A batch whose transaction the chain does not know is resent; a
        confirmed one is settled without resending.

        Returns:
            Tuple of (success, tx_hash, error_message)
        """
        batch = await self.batch_repo.get_by_id(batch_id)
        if not batch:
            return False, None, "Payout batch not found"
        if batch.is_settled:
            return False, batch.tx_hash, "Batch already confirmed"

        logger.info(f"Manual retry of DLQ batch {batch.idempotency_key}")

        if batch.tx_hash:
            status = await self.gateway.get_transaction_status(batch.tx_hash)
            if status is None:
                return False, batch.tx_hash, "Transaction status unavailable"
            if status["status"] == "not_found":
                batch.tx_hash = None

        batch.in_dlq = False
        batch.attempt_count = 0
        await self.session.commit()

        outcome = await self.settlement.settle_batch(batch)
        await self.session.refresh(batch)
        if outcome == CONFIRMED:
            return True, batch.tx_hash, None
        if outcome == PENDING:
            return False, batch.tx_hash, "Transaction pending"
        return False, batch.tx_hash, batch.last_error or "Retry failed"

    @with_auto_commit
    async def release_dlq_batch(self, batch_id: int) -> bool:
        """
        Return a DLQ batch to reconciliation without sending it now.

        Returns:
            True if the batch was in DLQ and has been released
        """
        batch = await self.batch_repo.get_by_id(batch_id)
        if batch is None or not batch.in_dlq or batch.is_settled:
            return False
        batch.in_dlq = False
        batch.attempt_count = 0
        logger.info(f"Released DLQ batch {batch.idempotency_key} to reconciliation")
        return True

    def _create_empty_stats(self) -> dict:
        """Create empty statistics dict."""
        return {
            "processed": 0,
            CONFIRMED: 0,
            PENDING: 0,
            FAILED: 0,
            MOVED_TO_DLQ: 0,
        }
