"""
Statistics service.

Aggregate platform figures and per-participant income summaries.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.participant import Participant
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.payout_repository import (
    LedgerEntryRepository,
    PayoutBatchRepository,
)
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.repositories.pool_tree_repository import PoolTreeRepository
from autopool.repositories.reserved_income_repository import ReservedIncomeRepository


class StatisticsService:
    """Service for platform and participant statistics."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize statistics service.

        Args:
            session: Database session
        """
        self.session = session
        self.participant_repo = ParticipantRepository(session)
        self.entry_repo = LedgerEntryRepository(session)
        self.batch_repo = PayoutBatchRepository(session)
        self.reserved_repo = ReservedIncomeRepository(session)
        self.tree_repo = PoolTreeRepository(session)
        self.node_repo = PoolNodeRepository(session)

    async def get_platform_stats(self, recent_days: int = 7) -> dict[str, Any]:
        """
        Get platform-wide statistics.

        Args:
            recent_days: Window for recent registrations

        Returns:
            Dict with participant, retopup, ledger and batch counts
        """
        since = datetime.now(UTC) - timedelta(days=recent_days)
        return {
            "total_participants": await self.participant_repo.count(),
            "active_retopups": await self.participant_repo.count_with_retopup(),
            "ledger_entries": await self.entry_repo.count(),
            "confirmed_ledger_entries": await self.entry_repo.count_confirmed(),
            "recent_registrations": await self.participant_repo.count_created_since(
                since
            ),
            "recent_days": recent_days,
            "payout_batches": await self.batch_repo.count_by_status(),
        }

    async def get_level_stats(self, pool_level: int) -> dict[str, Any]:
        """Trees and nodes of one pool level."""
        trees = await self.tree_repo.find_by_level(pool_level)
        return {
            "pool_level": pool_level,
            "trees": len(trees),
            "open_trees": await self.tree_repo.count_open(pool_level),
            "nodes": await self.node_repo.count_at_level(pool_level),
        }

    async def get_participant_summary(
        self, participant: Participant
    ) -> dict[str, Any]:
        """
        Income summary of a participant.

        Returns:
            Dict with confirmed income per category and reserved balances
        """
        reserves = await self.reserved_repo.find_by_participant(participant.id)
        reserved = {
            row.pool_level: Decimal(str(row.balance)) for row in reserves
        }
        return {
            "participant_id": participant.id,
            "public_id": participant.public_id,
            "direct_referrals": participant.direct_referral_count,
            "retopup_count": participant.retopup_count,
            "has_entered_autopool": participant.has_entered_autopool,
            "direct_income": Decimal(str(participant.total_direct_income)),
            "level_income": Decimal(str(participant.total_level_income)),
            "autopool_income": Decimal(str(participant.total_autopool_income)),
            "total_income": Decimal(str(participant.total_income)),
            "reserved_by_level": reserved,
            "total_reserved": sum(reserved.values(), Decimal("0")),
        }
