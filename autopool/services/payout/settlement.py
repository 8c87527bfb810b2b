"""
Payout settlement.

Turns a payout plan into recorded intent (pending batches and ledger lines)
and drives each batch through the payment gateway. Ledger lines are
confirmed and participant totals incremented only after the gateway
confirms the batch.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.constants import PAYOUT_RETRY_MAX_ATTEMPTS
from autopool.config.settings import Settings, settings
from autopool.models.enums import (
    IncomeCategory,
    LedgerEntryStatus,
    PayoutBatchStatus,
    ProcessedEventStatus,
)
from autopool.models.payout_batch import PayoutBatch
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.payout_repository import (
    LedgerEntryRepository,
    PayoutBatchRepository,
)
from autopool.repositories.processed_event_repository import ProcessedEventRepository
from autopool.services.payment_gateway import PaymentGateway
from autopool.services.payout.plan import PayoutPlan
from autopool.utils.exceptions import PaymentBatchError
from autopool.utils.security import mask_tx_hash

# settle_batch outcomes
CONFIRMED = "confirmed"
PENDING = "pending"
FAILED = "failed"
MOVED_TO_DLQ = "moved_to_dlq"


@dataclass
class SettlementResult:
    """Outcome of settling all batches of one event."""

    event_key: str
    outcomes: list[str] = field(default_factory=list)
    tx_hashes: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def is_settled(self) -> bool:
        return all(outcome == CONFIRMED for outcome in self.outcomes)

    @property
    def error(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None


class PayoutSettlementService:
    """Records payout intent and settles batches."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.config = config or settings
        self.batch_repo = PayoutBatchRepository(session)
        self.entry_repo = LedgerEntryRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.event_repo = ProcessedEventRepository(session)

    async def record_intent(self, plan: PayoutPlan) -> list[PayoutBatch]:
        """
        Write pending batches and ledger lines for a plan.

        Flushes only; the caller commits together with its ledger decisions.
        """
        batches: list[PayoutBatch] = []
        for index, chunk in enumerate(plan.chunks(self.config.max_batch_size)):
            batch = await self.batch_repo.create(
                idempotency_key=f"{plan.event_key}:{index}",
                event_key=plan.event_key,
                status=PayoutBatchStatus.PENDING.value,
                total_amount=sum((line.amount for line in chunk), Decimal("0")),
                line_count=len(chunk),
            )
            for line_index, line in enumerate(chunk):
                await self.entry_repo.create(
                    batch_id=batch.id,
                    line_index=line_index,
                    participant_id=line.participant_id,
                    recipient_address=line.recipient_address,
                    category=line.category.value,
                    reward_tag=line.reward_tag,
                    amount=line.amount,
                    pool_level=line.pool_level,
                    status=LedgerEntryStatus.PENDING.value,
                    description=line.description,
                )
            batches.append(batch)

        logger.info(
            f"Recorded payout intent for event {plan.event_key}: "
            f"{len(batches)} batches, {len(plan.lines)} lines, total {plan.total}"
        )
        return batches

    async def settle_event(self, event_key: str) -> SettlementResult:
        """Settle every batch of an event in chunk order."""
        result = SettlementResult(event_key=event_key)
        for batch in await self.batch_repo.find_by_event(event_key):
            outcome = await self.settle_batch(batch)
            result.outcomes.append(outcome)
            await self.session.refresh(batch)
            if batch.tx_hash:
                result.tx_hashes.append(batch.tx_hash)
            if outcome != CONFIRMED and batch.last_error:
                result.errors.append(batch.last_error)
        return result

    async def settle_batch(self, batch: PayoutBatch) -> str:
        """
        Drive one batch towards confirmation.

        A batch with a tx_hash is never resubmitted blindly: its on-chain
        status is checked first.

        Returns:
            confirmed, pending, failed or moved_to_dlq
        """
        if batch.is_settled:
            return CONFIRMED
        if batch.in_dlq:
            return MOVED_TO_DLQ

        if batch.tx_hash:
            return await self._check_broadcast(batch)

        if batch.attempt_count >= PAYOUT_RETRY_MAX_ATTEMPTS:
            return await self._move_to_dlq(
                batch, f"Exhausted {batch.attempt_count} attempts"
            )

        return await self._send(batch)

    async def _send(self, batch: PayoutBatch) -> str:
        entries = await self.entry_repo.find_by_batch(batch.id)
        users = [entry.recipient_address for entry in entries]
        amounts = [Decimal(str(entry.amount)) for entry in entries]
        tags = [entry.reward_tag for entry in entries]

        batch.attempt_count += 1
        try:
            sent = await self.gateway.send_batch(users, amounts, tags)
        except PaymentBatchError as e:
            logger.error(f"Batch {batch.idempotency_key} is malformed: {e}")
            return await self._move_to_dlq(batch, str(e))

        if sent.get("status") == "unknown" and sent.get("tx_hash"):
            # Signed and possibly broadcast: track the hash, never resend
            batch.tx_hash = sent["tx_hash"]
            batch.status = PayoutBatchStatus.SUBMITTED.value
            batch.last_error = sent.get("error")
            await self.session.commit()
            logger.warning(
                f"Batch {batch.idempotency_key} broadcast unconfirmed, "
                f"checking {mask_tx_hash(batch.tx_hash)} on chain"
            )
            return await self._check_broadcast(batch)

        if not sent.get("success") or not sent.get("tx_hash"):
            return await self._mark_failed(batch, sent.get("error") or "Send failed")

        # Persist tx_hash before waiting so a crash never leads to a resend
        batch.tx_hash = sent["tx_hash"]
        batch.status = PayoutBatchStatus.SUBMITTED.value
        batch.last_error = None
        await self.session.commit()
        logger.info(
            f"Batch {batch.idempotency_key} submitted: {mask_tx_hash(batch.tx_hash)}"
        )

        receipt = await self.gateway.wait_for_confirmation(
            batch.tx_hash, self.config.confirmation_timeout
        )
        return await self._apply_status(batch, receipt)

    async def _check_broadcast(self, batch: PayoutBatch) -> str:
        status = await self.gateway.get_transaction_status(batch.tx_hash)
        if status is None:
            logger.warning(
                f"Could not determine status of {mask_tx_hash(batch.tx_hash)} "
                f"for batch {batch.idempotency_key}"
            )
            return PENDING

        if status["status"] == "not_found":
            # Broadcast hash unknown to the node; resending could pay twice
            return await self._move_to_dlq(
                batch, f"Transaction {batch.tx_hash} not found on chain"
            )
        return await self._apply_status(batch, status)

    async def _apply_status(self, batch: PayoutBatch, status: dict) -> str:
        if status.get("success"):
            await self._confirm(batch, status["tx_hash"], status.get("block_number"))
            return CONFIRMED
        if status.get("status") == "pending":
            return PENDING
        return await self._mark_failed(
            batch, status.get("error") or "Transaction reverted"
        )

    async def _confirm(
        self, batch: PayoutBatch, tx_hash: str, block_number: int | None
    ) -> None:
        pending_entries = [
            entry
            for entry in await self.entry_repo.find_by_batch(batch.id)
            if entry.status == LedgerEntryStatus.PENDING.value
        ]

        if await self.batch_repo.mark_confirmed(batch.id, tx_hash, block_number):
            await self.entry_repo.confirm_batch_entries(batch.id, tx_hash, block_number)
            for entry in pending_entries:
                if entry.participant_id is None:
                    continue
                await self.participant_repo.add_income(
                    entry.participant_id,
                    IncomeCategory(entry.category),
                    Decimal(str(entry.amount)),
                )
            logger.success(
                f"Batch {batch.idempotency_key} confirmed in block {block_number}: "
                f"{len(pending_entries)} lines"
            )

        await self._settle_event_if_done(batch.event_key)
        await self.session.commit()

    async def _mark_failed(self, batch: PayoutBatch, error: str) -> str:
        if batch.tx_hash:
            error = f"{error} (tx {batch.tx_hash})"
        batch.status = PayoutBatchStatus.FAILED.value
        batch.tx_hash = None
        batch.last_error = error
        logger.warning(
            f"Batch {batch.idempotency_key} failed "
            f"(attempt {batch.attempt_count}): {error}"
        )
        if batch.attempt_count >= PAYOUT_RETRY_MAX_ATTEMPTS:
            return await self._move_to_dlq(batch, error)
        await self.session.commit()
        return FAILED

    async def _move_to_dlq(self, batch: PayoutBatch, error: str) -> str:
        batch.in_dlq = True
        batch.last_error = error
        logger.warning(
            f"Batch {batch.idempotency_key} moved to DLQ "
            f"after {batch.attempt_count} attempts: {error}"
        )
        await self.session.commit()
        return MOVED_TO_DLQ

    async def _settle_event_if_done(self, event_key: str) -> None:
        batches = await self.batch_repo.find_by_event(event_key)
        for batch in batches:
            await self.session.refresh(batch)
        if not all(batch.is_settled for batch in batches):
            return

        event = await self.event_repo.get_by_key(event_key)
        if event and event.status != ProcessedEventStatus.SETTLED.value:
            event.status = ProcessedEventStatus.SETTLED.value
            event.last_error = None
            logger.info(f"Event {event_key} settled")
