"""
Payout repositories.

Data access for PayoutBatch and LedgerEntry models.
"""

from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.enums import LedgerEntryStatus, PayoutBatchStatus
from autopool.models.ledger_entry import LedgerEntry
from autopool.models.payout_batch import PayoutBatch
from autopool.repositories.base import BaseRepository


class PayoutBatchRepository(BaseRepository[PayoutBatch]):
    """PayoutBatch repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout batch repository."""
        super().__init__(PayoutBatch, session)

    async def get_by_idempotency_key(self, key: str) -> PayoutBatch | None:
        """Get batch by idempotency key."""
        return await self.get_by(idempotency_key=key)

    async def find_by_event(self, event_key: str) -> list[PayoutBatch]:
        """All batches of an event in chunk order."""
        return await self.find_by(event_key=event_key)

    async def find_unsettled(self, limit: int) -> list[PayoutBatch]:
        """
        Batches needing reconciliation.

        Returns:
            Pending, submitted or failed batches not in DLQ, oldest first
        """
        result = await self.session.execute(
            select(PayoutBatch)
            .where(
                PayoutBatch.status != PayoutBatchStatus.CONFIRMED.value,
                PayoutBatch.in_dlq.is_(False),
            )
            .order_by(PayoutBatch.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_dlq(self, limit: int = 100) -> list[PayoutBatch]:
        """Batches in dead letter queue."""
        return await self.find_all(limit=limit, in_dlq=True)

    async def mark_confirmed(
        self, batch_id: int, tx_hash: str, block_number: int | None
    ) -> bool:
        """
        Conditionally mark a batch confirmed.

        Returns:
            True if this call confirmed the batch, False if it already was
        """
        stmt = (
            update(PayoutBatch)
            .where(
                PayoutBatch.id == batch_id,
                PayoutBatch.status != PayoutBatchStatus.CONFIRMED.value,
            )
            .values(
                status=PayoutBatchStatus.CONFIRMED.value,
                tx_hash=tx_hash,
                block_number=block_number,
                last_error=None,
                confirmed_at=datetime.now(UTC),
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def count_by_status(self) -> dict[str, int]:
        """Batch count per status."""
        result = await self.session.execute(
            select(PayoutBatch.status, func.count(PayoutBatch.id)).group_by(
                PayoutBatch.status
            )
        )
        return {status: count for status, count in result.all()}


class LedgerEntryRepository(BaseRepository[LedgerEntry]):
    """LedgerEntry repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger entry repository."""
        super().__init__(LedgerEntry, session)

    async def find_by_batch(self, batch_id: int) -> list[LedgerEntry]:
        """Lines of a batch in submission order."""
        result = await self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.batch_id == batch_id)
            .order_by(LedgerEntry.line_index)
        )
        return list(result.scalars().all())

    async def confirm_batch_entries(
        self, batch_id: int, tx_hash: str, block_number: int | None
    ) -> int:
        """
        Mark pending lines of a batch confirmed.

        Returns:
            Number of lines confirmed by this call
        """
        stmt = (
            update(LedgerEntry)
            .where(
                LedgerEntry.batch_id == batch_id,
                LedgerEntry.status == LedgerEntryStatus.PENDING.value,
            )
            .values(
                status=LedgerEntryStatus.CONFIRMED.value,
                tx_hash=tx_hash,
                block_number=block_number,
                confirmed_at=datetime.now(UTC),
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def find_by_participant(
        self, participant_id: int, status: LedgerEntryStatus | None = None
    ) -> list[LedgerEntry]:
        """Lines addressed to a participant."""
        filters: dict[str, object] = {"participant_id": participant_id}
        if status:
            filters["status"] = status.value
        return await self.find_by(**filters)

    async def count_confirmed(self) -> int:
        """Count confirmed ledger lines."""
        return await self.count(status=LedgerEntryStatus.CONFIRMED.value)
