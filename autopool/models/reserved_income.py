"""
ReservedIncome model.

Per (participant, pool level) income withheld to fund re-entry at the next level.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from autopool.models.base import Base
from autopool.models.types import MoneyType


class ReservedIncome(Base):
    """
    ReservedIncome entity.

    Balance grows with deferred layer shares and shrinks only when the
    participant is re-entered at the next level. Never negative.

    Attributes:
        id: Primary key
        participant_id: Owner of the reservation
        pool_level: Level whose income was withheld
        balance: Available reserved amount
        total_reserved: Lifetime credited amount
        total_consumed: Lifetime amount spent on re-entry
    """

    __tablename__ = "reserved_income"
    __table_args__ = (
        UniqueConstraint("participant_id", "pool_level", name="uq_reserved_income_participant_level"),
        CheckConstraint("balance >= 0", name="ck_reserved_income_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    participant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    pool_level: Mapped[int] = mapped_column(Integer, nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_reserved: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_consumed: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReservedIncome(participant_id={self.participant_id}, "
            f"level={self.pool_level}, balance={self.balance})>"
        )
