"""
Participant model.

A referral-platform member who can earn direct, level and auto-pool income.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from autopool.models.base import Base
from autopool.models.types import MoneyType


class Participant(Base):
    """
    Participant entity.

    Created on the first registration event and never deleted. Income
    totals only grow, and only when a payout line is confirmed on-chain.

    Attributes:
        id: Primary key
        public_id: Opaque external identifier
        wallet_address: Payment address (lower-case)
        referrer_id: Ancestor in the referral chain
        direct_referral_count: Number of direct referrals
        has_retopup: Whether the participant performed at least one retopup
        retopup_count: Number of retopups performed
        has_entered_autopool: Whether the participant holds a level 1 node
        total_direct_income: Confirmed direct income
        total_level_income: Confirmed level income
        total_autopool_income: Confirmed auto-pool layer income
    """

    __tablename__ = "participants"
    __table_args__ = (
        CheckConstraint(
            "total_direct_income >= 0 AND total_level_income >= 0 "
            "AND total_autopool_income >= 0",
            name="ck_participants_income_non_negative",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    public_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    wallet_address: Mapped[str] = mapped_column(
        String(42), unique=True, nullable=False, index=True
    )
    referrer_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    direct_referral_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    has_retopup: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    retopup_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    has_entered_autopool: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Income totals (confirmed only)
    total_direct_income: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_level_income: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_autopool_income: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
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

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Participant(id={self.id}, public_id={self.public_id!r}, "
            f"referrer_id={self.referrer_id})>"
        )

    @property
    def total_income(self) -> Decimal:
        """All confirmed income."""
        return (
            self.total_direct_income
            + self.total_level_income
            + self.total_autopool_income
        )
