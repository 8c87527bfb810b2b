"""
Layered income distributor.

Splits a pool entry value between the three node ancestors of a completing
node and the platform:

    layer 1 (parent)              50%
    layer 2 (grandparent)         25%
    layer 3 (great-grandparent)   15%
    platform fee                  10%  (always paid, never reserved)

A layer share owed to one of a tree's last four completers (a node whose
completion took one of the final four slots of the tree's counter), who has
not yet been re-entered at the next level, is reserved instead of paid.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.business_constants import (
    MONEY_QUANT,
    POOL_LAYER_SHARES,
    POOL_PLATFORM_FEE_SHARE,
    RewardTag,
    unassigned_layer_tag,
)
from autopool.models.enums import IncomeCategory
from autopool.models.pool_node import PoolNode
from autopool.models.pool_tree import PoolTree
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.services.autopool.reserved_income import ReservedIncomeLedger
from autopool.services.payout.plan import PayoutPlan


@dataclass
class LayerShare:
    """Outcome for one ancestor layer."""

    layer: int
    amount: Decimal
    participant_id: int | None
    reserved: bool = False


@dataclass
class DistributionResult:
    """Outcome of one layered distribution."""

    pool_level: int
    entry_value: Decimal
    shares: list[LayerShare] = field(default_factory=list)
    platform_fee: Decimal = Decimal("0")

    @property
    def reserved_participant_ids(self) -> list[int]:
        return [
            share.participant_id
            for share in self.shares
            if share.reserved and share.participant_id is not None
        ]

    @property
    def total(self) -> Decimal:
        return sum((s.amount for s in self.shares), Decimal("0")) + self.platform_fee


class LayeredIncomeDistributor:
    """Computes layer shares and appends them to the event payout plan."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.node_repo = PoolNodeRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.reserves = ReservedIncomeLedger(session)

    async def _layer_nodes(self, new_node: PoolNode) -> list[PoolNode | None]:
        """Parent, grandparent and great-grandparent of new_node."""
        layers: list[PoolNode | None] = []
        parent_id = new_node.parent_node_id
        for _ in POOL_LAYER_SHARES:
            node = await self.node_repo.get_by_id(parent_id) if parent_id else None
            layers.append(node)
            parent_id = node.parent_node_id if node else None
        return layers

    async def _should_reserve(self, node: PoolNode, pool_level: int) -> bool:
        if not node.is_last_completer:
            return False
        next_level_node = await self.node_repo.get_by_participant_level(
            node.participant_id, pool_level + 1
        )
        return next_level_node is None

    async def distribute(
        self,
        new_node: PoolNode,
        pool_level: int,
        pool_entry_value: Decimal,
        tree: PoolTree,
        plan: PayoutPlan,
    ) -> DistributionResult:
        """
        Distribute one pool entry value.

        Args:
            new_node: Node whose placement completed its parent
            pool_level: Pool level
            pool_entry_value: Entry value of the level
            tree: Tree of new_node (current completion state)
            plan: Event payout plan to append to

        Returns:
            Per-layer outcome
        """
        result = DistributionResult(pool_level=pool_level, entry_value=pool_entry_value)
        layer_nodes = await self._layer_nodes(new_node)

        for index, (node, share_pct) in enumerate(zip(layer_nodes, POOL_LAYER_SHARES)):
            layer = index + 1
            amount = (pool_entry_value * share_pct).quantize(MONEY_QUANT)

            if node is None:
                # No ancestor at this layer: route share to the platform wallet
                plan.add_platform(
                    amount,
                    unassigned_layer_tag(layer),
                    pool_level=pool_level,
                    description=f"Unassigned layer {layer} of node {new_node.id}",
                )
                result.shares.append(LayerShare(layer=layer, amount=amount, participant_id=None))
                continue

            participant = await self.participant_repo.get_by_id(node.participant_id)
            share = LayerShare(layer=layer, amount=amount, participant_id=participant.id)

            if await self._should_reserve(node, pool_level):
                await self.reserves.credit(participant.id, pool_level, amount)
                share.reserved = True
            else:
                plan.add(
                    recipient_address=participant.wallet_address,
                    amount=amount,
                    reward_tag=RewardTag.AUTO_POOL_INCOME,
                    category=IncomeCategory.AUTOPOOL,
                    participant_id=participant.id,
                    pool_level=pool_level,
                    description=f"Layer {layer} income from node {new_node.id}",
                )
            result.shares.append(share)

        result.platform_fee = (pool_entry_value * POOL_PLATFORM_FEE_SHARE).quantize(MONEY_QUANT)
        plan.add_platform(
            result.platform_fee,
            RewardTag.COMPANY_FEE,
            pool_level=pool_level,
            description=f"Pool fee for node {new_node.id}",
        )

        logger.info(
            f"Distributed level {pool_level} entry {pool_entry_value} for node {new_node.id} "
            f"(tree {tree.tree_number}): "
            + ", ".join(
                f"L{s.layer}={s.amount}{' (reserved)' if s.reserved else ''}"
                for s in result.shares
            )
            + f", fee={result.platform_fee}"
        )
        return result
