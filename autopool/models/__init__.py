"""Database models."""

from autopool.models.base import Base
from autopool.models.enums import (
    IncomeCategory,
    LedgerEntryStatus,
    NodePosition,
    PayoutBatchStatus,
    ProcessedEventStatus,
)
from autopool.models.ledger_entry import LedgerEntry
from autopool.models.participant import Participant
from autopool.models.payout_batch import PayoutBatch
from autopool.models.pool_node import PoolNode
from autopool.models.pool_tree import PoolTree
from autopool.models.processed_event import ProcessedEvent
from autopool.models.reserved_income import ReservedIncome

__all__ = [
    "Base",
    "IncomeCategory",
    "LedgerEntry",
    "LedgerEntryStatus",
    "NodePosition",
    "Participant",
    "PayoutBatch",
    "PayoutBatchStatus",
    "PoolNode",
    "PoolTree",
    "ProcessedEvent",
    "ProcessedEventStatus",
    "ReservedIncome",
]
