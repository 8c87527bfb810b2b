"""
PayoutBatch model.

Recorded payout intent: one executeBatchPayouts call for one event chunk.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from autopool.models.base import Base
from autopool.models.enums import PayoutBatchStatus
from autopool.models.types import MoneyType


class PayoutBatch(Base):
    """
    PayoutBatch entity.

    Written as PENDING before the gateway is called. The tx_hash is stored
    as soon as the transaction is broadcast so a retry can check its status
    instead of resubmitting.

    Attributes:
        id: Primary key
        idempotency_key: event_key + chunk index
        event_key: Qualifying event that produced the batch
        status: pending, submitted, confirmed or failed
        total_amount: Sum of all lines
        line_count: Number of lines
        tx_hash: Broadcast transaction hash
        block_number: Confirmation block
        attempt_count: Number of send attempts
        last_error: Last error message
        in_dlq: Moved to dead letter queue for manual review
    """

    __tablename__ = "payout_batches"
    __table_args__ = (
        Index("idx_payout_batches_status_dlq", "status", "in_dlq"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    idempotency_key: Mapped[str] = mapped_column(
        String(160), unique=True, nullable=False
    )
    event_key: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=PayoutBatchStatus.PENDING.value,
        nullable=False,
        comment="pending, submitted, confirmed, failed",
    )
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    line_count: Mapped[int] = mapped_column(Integer, nullable=False)

    tx_hash: Mapped[str | None] = mapped_column(
        String(66), nullable=True, index=True
    )
    block_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    attempt_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    in_dlq: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PayoutBatch(id={self.id}, key={self.idempotency_key!r}, "
            f"status={self.status}, total={self.total_amount})>"
        )

    @property
    def is_settled(self) -> bool:
        """Whether the batch is confirmed on-chain."""
        return self.status == PayoutBatchStatus.CONFIRMED.value
