"""
LedgerEntry model.

One payout line of a batch. Append-only audit trail.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from autopool.models.base import Base
from autopool.models.enums import LedgerEntryStatus
from autopool.models.types import MoneyType


class LedgerEntry(Base):
    """
    LedgerEntry entity.

    Created PENDING together with its batch. Turned CONFIRMED (with tx_hash
    and block) only after the gateway confirms; only then are participant
    totals incremented.

    Attributes:
        id: Primary key
        batch_id: Owning payout batch
        line_index: Position of the line inside the batch
        participant_id: Recipient participant (None for platform lines)
        recipient_address: Payment address
        category: direct, level, autopool or platform
        reward_tag: Tag sent to the payout contract
        amount: Line amount
        pool_level: Pool level for auto-pool lines
        status: pending, confirmed or failed
        tx_hash: Confirming transaction
        block_number: Confirming block
        description: Free-text audit note
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("idx_ledger_entries_participant_category", "participant_id", "category"),
        Index("idx_ledger_entries_status", "status"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    batch_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payout_batches.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    line_index: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=True,
    )
    recipient_address: Mapped[str] = mapped_column(String(42), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    reward_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    pool_level: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=LedgerEntryStatus.PENDING.value,
        nullable=False,
    )
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    block_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<LedgerEntry(id={self.id}, batch_id={self.batch_id}, "
            f"tag={self.reward_tag}, amount={self.amount}, status={self.status})>"
        )
