"""
Auto-pool service.

Composition of the auto-pool pipeline for one event unit:
- tree_builder.py - slot resolution and node creation
- completion_cascade.py - parent completion and tree counter
- layered_income.py - 50/25/15/10 split with reservation rule
- reserved_income.py - withheld balances per level
- progression.py - re-entry of last four into the next level
- unit.py - queue/lock scope of one event
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.settings import Settings, settings
from autopool.models.participant import Participant
from autopool.models.pool_node import PoolNode
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.services.payout.plan import PayoutPlan

from .completion_cascade import CompletionCascade, CompletionEvents
from .layered_income import DistributionResult, LayeredIncomeDistributor
from .progression import ProgressionOutcome, ProgressionStatus, TreeProgressionEngine
from .reserved_income import ReservedIncomeLedger
from .tree_builder import TreeBuilder
from .unit import PlacementUnit


@dataclass
class PlacementResult:
    """Node created for a participant and everything it triggered."""

    node: PoolNode
    events: CompletionEvents


class AutoPoolService:
    """Entry point of the auto-pool pipeline."""

    def __init__(
        self,
        session: AsyncSession,
        unit: PlacementUnit,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.unit = unit
        self.config = config or settings
        self.participant_repo = ParticipantRepository(session)
        self.builder = TreeBuilder(session, unit, self.config)
        self.cascade = CompletionCascade(session, self.builder, self.config)

    @property
    def progression(self) -> TreeProgressionEngine:
        return self.cascade.progression

    async def enter_autopool(
        self, participant: Participant, plan: PayoutPlan
    ) -> PlacementResult:
        """
        Place participant at pool level 1 and run the cascade.

        Raises:
            PlacementError: Participant already entered auto-pool
            CapacityError: Level 1 has no room for another tree
        """
        node = await self.builder.place_participant(participant, 1)
        await self.participant_repo.mark_entered_autopool(participant.id)
        events = await self.cascade.on_node_placed(node, plan)

        logger.info(
            f"Participant {participant.id} entered auto-pool "
            f"(node {node.id}, parent completed: {events.completed_parent_id})"
        )
        return PlacementResult(node=node, events=events)

    async def progress_participant(
        self, participant_id: int, from_level: int, plan: PayoutPlan
    ) -> ProgressionOutcome:
        """Operator re-run of a skipped progression."""
        return await self.progression.progress_participant(
            participant_id, from_level, plan
        )


__all__ = [
    "AutoPoolService",
    "CompletionCascade",
    "CompletionEvents",
    "DistributionResult",
    "LayeredIncomeDistributor",
    "PlacementResult",
    "PlacementUnit",
    "ProgressionOutcome",
    "ProgressionStatus",
    "ReservedIncomeLedger",
    "TreeBuilder",
    "TreeProgressionEngine",
]
