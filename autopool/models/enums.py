"""
Status enums shared by models and services.
"""

from enum import StrEnum


class NodePosition(StrEnum):
    """Position of a node under its parent."""

    ROOT = "root"
    LEFT = "left"
    RIGHT = "right"


class PayoutBatchStatus(StrEnum):
    """Lifecycle of a recorded payout intent."""

    PENDING = "pending"  # Recorded, not yet sent
    SUBMITTED = "submitted"  # Sent, tx_hash known, not confirmed
    CONFIRMED = "confirmed"  # Receipt status == 1
    FAILED = "failed"  # Reverted or definitely not sent


class LedgerEntryStatus(StrEnum):
    """Status of one payout line."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class IncomeCategory(StrEnum):
    """Income category a ledger line contributes to."""

    DIRECT = "direct"
    LEVEL = "level"
    AUTOPOOL = "autopool"
    PLATFORM = "platform"


class ProcessedEventStatus(StrEnum):
    """Status of a qualifying event in the idempotency ledger."""

    APPLIED = "applied"  # Ledger decisions committed, payout not yet confirmed
    SETTLED = "settled"  # All payout batches confirmed
    REJECTED = "rejected"  # Rolled back, replayable
