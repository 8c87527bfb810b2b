"""Repositories for data access."""

from autopool.repositories.base import BaseRepository
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.payout_repository import (
    LedgerEntryRepository,
    PayoutBatchRepository,
)
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.repositories.pool_tree_repository import PoolTreeRepository
from autopool.repositories.processed_event_repository import ProcessedEventRepository
from autopool.repositories.reserved_income_repository import ReservedIncomeRepository

__all__ = [
    "BaseRepository",
    "LedgerEntryRepository",
    "ParticipantRepository",
    "PayoutBatchRepository",
    "PoolNodeRepository",
    "PoolTreeRepository",
    "ProcessedEventRepository",
    "ReservedIncomeRepository",
]
