"""
ProcessedEvent model.

Idempotency ledger for qualifying events delivered at least once.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from autopool.models.base import Base
from autopool.models.enums import ProcessedEventStatus


class ProcessedEvent(Base):
    """
    ProcessedEvent entity.

    Attributes:
        id: Primary key
        event_key: Event id or transaction hash (unique)
        event_type: registration, second_referral or retopup
        participant_public_id: Subject of the event
        status: applied, settled or rejected
        attempts: Times the event was processed
        last_error: Reason of the last rejection
    """

    __tablename__ = "processed_events"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    event_key: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    participant_public_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ProcessedEventStatus.APPLIED.value,
        nullable=False,
        comment="applied, settled, rejected",
    )
    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

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
            f"<ProcessedEvent(key={self.event_key!r}, type={self.event_type}, "
            f"status={self.status})>"
        )
