"""
Tree progression engine.

Re-enters the last four completers of a closed tree together in a new tree
at the next pool level, paying the doubled entry value out of their
reserved income.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.settings import Settings, settings
from autopool.models.pool_tree import PoolTree
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.repositories.pool_tree_repository import PoolTreeRepository
from autopool.services.autopool.reserved_income import ReservedIncomeLedger
from autopool.services.autopool.tree_builder import TreeBuilder
from autopool.services.payout.plan import PayoutPlan
from autopool.utils.exceptions import AutoPoolError, CapacityError


if TYPE_CHECKING:
    from autopool.services.autopool.completion_cascade import CompletionCascade


class ProgressionStatus(StrEnum):
    """Outcome of one re-entry attempt."""

    PROGRESSED = "progressed"
    ALREADY_PROGRESSED = "already_progressed"
    INSUFFICIENT_RESERVE = "insufficient_reserve"
    CAPACITY_REACHED = "capacity_reached"
    MAX_LEVEL = "max_level"


@dataclass
class ProgressionOutcome:
    """Result of progressing one participant."""

    participant_id: int
    from_level: int
    status: ProgressionStatus
    node_id: int | None = None


@dataclass
class ReentryGroup:
    """Last four of one closed tree entering a shared next-level tree."""

    tree: PoolTree | None = None


class TreeProgressionEngine:
    """Moves last-four completers into the next pool level."""

    def __init__(
        self,
        session: AsyncSession,
        builder: TreeBuilder,
        cascade: "CompletionCascade",
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.builder = builder
        self.cascade = cascade
        self.config = config or settings
        self.node_repo = PoolNodeRepository(session)
        self.tree_repo = PoolTreeRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.reserves = ReservedIncomeLedger(session)

    async def on_tree_complete(
        self, tree: PoolTree, plan: PayoutPlan
    ) -> list[ProgressionOutcome]:
        """
        Progress the recorded last four of a closed tree, in completion order.

        The first funded participant opens a new tree at the next level and
        the others are placed under it breadth-first.

        Args:
            tree: Closed tree with last_four_participant_ids recorded
            plan: Event payout plan

        Returns:
            One outcome per last-four participant
        """
        logger.info(
            f"Tree {tree.tree_number} at level {tree.pool_level} complete, "
            f"last four: {tree.last_four}"
        )
        group = ReentryGroup()
        outcomes = []
        for participant_id in tree.last_four:
            outcomes.append(
                await self.progress_participant(
                    participant_id, tree.pool_level, plan, group=group
                )
            )
        return outcomes

    async def progress_if_funded(
        self, participant_id: int, from_level: int, plan: PayoutPlan
    ) -> ProgressionOutcome:
        """Progress quietly once a growing reservation covers the entry value."""
        return await self.progress_participant(
            participant_id, from_level, plan, warn_insufficient=False
        )

    async def progress_participant(
        self,
        participant_id: int,
        from_level: int,
        plan: PayoutPlan,
        warn_insufficient: bool = True,
        group: ReentryGroup | None = None,
    ) -> ProgressionOutcome:
        """
        Re-enter a participant at from_level + 1 using reserved income.

        Skips (without raising) when the participant is already there, the
        reserve is short, the level cap is reached or the next level has no
        room for another tree.

        Without a group the participant takes the next level's next free
        slot. With one, the participant joins the group's tree, opening it
        when it does not exist yet.
        """
        next_level = from_level + 1

        if next_level > self.config.max_pool_level:
            logger.warning(
                f"Participant {participant_id} at top pool level {from_level}, "
                f"no progression"
            )
            return ProgressionOutcome(participant_id, from_level, ProgressionStatus.MAX_LEVEL)

        if await self.node_repo.get_by_participant_level(participant_id, next_level):
            return ProgressionOutcome(
                participant_id, from_level, ProgressionStatus.ALREADY_PROGRESSED
            )

        entry_value = self.config.entry_value(next_level)
        balance = await self.reserves.balance(participant_id, from_level)
        if balance < entry_value:
            message = (
                f"Participant {participant_id} reserve {balance} at level {from_level} "
                f"below level {next_level} entry {entry_value}, skipping progression"
            )
            if warn_insufficient:
                logger.warning(message)
            else:
                logger.debug(message)
            return ProgressionOutcome(
                participant_id, from_level, ProgressionStatus.INSUFFICIENT_RESERVE
            )

        participant = await self.participant_repo.get_by_id(participant_id)
        try:
            if group is None:
                node = await self.builder.place_participant(participant, next_level)
            elif group.tree is None:
                node = await self.builder.place_participant(
                    participant, next_level, new_tree=True
                )
                group.tree = await self.tree_repo.get_by_id(node.tree_id)
            else:
                node = await self.builder.place_participant(
                    participant, next_level, tree=group.tree
                )
        except CapacityError as e:
            logger.warning(f"Progression of participant {participant_id} deferred: {e}")
            return ProgressionOutcome(
                participant_id, from_level, ProgressionStatus.CAPACITY_REACHED
            )

        if not await self.reserves.debit(participant_id, from_level, entry_value):
            # A concurrent debit won; the event is rolled back with the placement
            raise AutoPoolError(
                f"Reserve debit refused for participant {participant_id} "
                f"after balance check"
            )

        logger.success(
            f"Participant {participant_id} progressed to level {next_level} "
            f"(node {node.id}, entry {entry_value})"
        )

        # Distribution for the new placement flows through the cascade
        await self.cascade.on_node_placed(node, plan)

        return ProgressionOutcome(
            participant_id, from_level, ProgressionStatus.PROGRESSED, node_id=node.id
        )
