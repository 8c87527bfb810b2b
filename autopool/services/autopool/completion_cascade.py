"""
Completion cascade.

Runs after every placement. Only the new node's parent can change state:
when its second child arrives it completes, its tree's completed-node
counter advances and its layered income is distributed. The counter is
stamped on the node first, so a node taking one of the final four
completion slots already has its own layer share reserved. The counter
reaching POOL_SIZE closes the tree and triggers progression of the last
four completers.
"""

from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.business_constants import LAST_COMPLETERS_COUNT, POOL_SIZE
from autopool.config.settings import Settings, settings
from autopool.models.pool_node import PoolNode
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.repositories.pool_tree_repository import PoolTreeRepository
from autopool.services.autopool.layered_income import (
    DistributionResult,
    LayeredIncomeDistributor,
)
from autopool.services.autopool.progression import (
    ProgressionOutcome,
    TreeProgressionEngine,
)
from autopool.services.autopool.tree_builder import TreeBuilder
from autopool.services.payout.plan import PayoutPlan
from autopool.utils.exceptions import AutoPoolError


@dataclass
class CompletionEvents:
    """What a single placement caused."""

    node_id: int
    completed_parent_id: int | None = None
    distribution: DistributionResult | None = None
    tree_counter: int | None = None
    tree_completed: bool = False
    progressions: list[ProgressionOutcome] = field(default_factory=list)


class CompletionCascade:
    """Detects completions and drives distribution and progression."""

    def __init__(
        self,
        session: AsyncSession,
        builder: TreeBuilder,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.config = config or settings
        self.node_repo = PoolNodeRepository(session)
        self.tree_repo = PoolTreeRepository(session)
        self.distributor = LayeredIncomeDistributor(session)
        self.progression = TreeProgressionEngine(
            session, builder, cascade=self, config=self.config
        )

    async def on_node_placed(
        self, node: PoolNode, plan: PayoutPlan
    ) -> CompletionEvents:
        """
        Process completion effects of a new node.

        Args:
            node: Freshly placed node
            plan: Event payout plan

        Returns:
            Completion events
        """
        events = CompletionEvents(node_id=node.id)
        if node.parent_node_id is None:
            return events

        parent = await self.node_repo.get_for_update(node.parent_node_id)
        if parent is None or parent.is_complete:
            return events

        if await self.node_repo.count_children(parent.id) != 2:
            return events

        if not await self.node_repo.mark_complete(parent.id):
            # Completed concurrently
            return events
        events.completed_parent_id = parent.id

        tree = await self.tree_repo.get_for_update(parent.tree_id)
        pool_level = parent.pool_level
        entry_value = self.config.entry_value(pool_level)

        counter = await self.tree_repo.increment_completed(tree.id)
        if counter is None:
            # Closed trees take no placements, so their nodes never complete
            raise AutoPoolError(
                f"Node {parent.id} completed under closed tree {tree.tree_number} "
                f"at level {pool_level}"
            )

        events.tree_counter = counter
        await self.node_repo.set_completion_seq(parent.id, counter)
        logger.info(
            f"Node {parent.id} complete, tree {tree.tree_number} "
            f"level {pool_level}: {counter}/{POOL_SIZE}"
        )

        events.distribution = await self.distributor.distribute(
            node, pool_level, entry_value, tree, plan
        )

        if counter < POOL_SIZE:
            # A designated last-four completer may already be funded
            for participant_id in events.distribution.reserved_participant_ids:
                events.progressions.append(
                    await self.progression.progress_if_funded(
                        participant_id, pool_level, plan
                    )
                )
            return events

        last_nodes = await self.node_repo.get_last_completed(
            tree.id, LAST_COMPLETERS_COUNT
        )
        last_four = [n.participant_id for n in last_nodes]
        if await self.tree_repo.mark_complete(tree.id, last_four):
            events.tree_completed = True
            tree = await self.tree_repo.get_for_update(tree.id)
            events.progressions.extend(
                await self.progression.on_tree_complete(tree, plan)
            )

        return events
