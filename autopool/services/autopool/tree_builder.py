"""
Tree builder.

Places a participant into the next free slot of a pool level:
queue slot -> oldest open node scan -> new tree (bounded by the open-tree cap).
Slots and nodes of closed trees are never used.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.settings import Settings, settings
from autopool.models.enums import NodePosition
from autopool.models.participant import Participant
from autopool.models.pool_node import PoolNode
from autopool.models.pool_tree import PoolTree
from autopool.repositories.pool_node_repository import PoolNodeRepository
from autopool.repositories.pool_tree_repository import PoolTreeRepository
from autopool.services.autopool.unit import PlacementUnit
from autopool.services.placement_queue import SlotDescriptor
from autopool.utils.exceptions import CapacityError, PlacementError


class TreeBuilder:
    """Creates pool nodes and stages their child slots."""

    def __init__(
        self,
        session: AsyncSession,
        unit: PlacementUnit,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.unit = unit
        self.config = config or settings
        self.node_repo = PoolNodeRepository(session)
        self.tree_repo = PoolTreeRepository(session)

    async def place_participant(
        self,
        participant: Participant,
        pool_level: int,
        tree: PoolTree | None = None,
        new_tree: bool = False,
    ) -> PoolNode:
        """
        Place participant at a pool level.

        Args:
            participant: Participant to place
            pool_level: Target level
            tree: Place inside this open tree instead of the level's next slot
            new_tree: Open a fresh tree rooted at the participant

        Returns:
            Created node

        Raises:
            PlacementError: Participant already holds a node at this level,
                or the requested tree has no free slot
            CapacityError: A new tree is needed and the level is at its
                open-tree cap
        """
        await self.unit.lock_level(pool_level)

        existing = await self.node_repo.get_by_participant_level(
            participant.id, pool_level
        )
        if existing:
            raise PlacementError(
                f"Participant {participant.id} already placed at level {pool_level} "
                f"(node {existing.id})"
            )

        if new_tree:
            parent, position = None, NodePosition.ROOT
        elif tree is not None:
            parent, position = await self._next_slot_in_tree(tree)
        else:
            parent, position = await self._next_slot(pool_level)

        if parent is None:
            tree = await self._open_tree(pool_level)
            depth = 0
        else:
            tree = await self.tree_repo.get_by_id(parent.tree_id)
            depth = parent.depth + 1

        node = await self.node_repo.create(
            tree_id=tree.id,
            participant_id=participant.id,
            parent_node_id=parent.id if parent else None,
            position=position.value,
            depth=depth,
            pool_level=pool_level,
            tree_number=tree.tree_number,
        )

        # Every placement issues exactly two child slots
        self.unit.defer_children(
            pool_level,
            [
                SlotDescriptor(parent_node_id=node.id, position=NodePosition.LEFT),
                SlotDescriptor(parent_node_id=node.id, position=NodePosition.RIGHT),
            ],
        )

        logger.info(
            f"Placed participant {participant.id} at level {pool_level}, "
            f"tree {tree.tree_number}, node {node.id} "
            f"({position.value} of {parent.id if parent else 'none'}, depth {depth})"
        )
        return node

    async def _next_slot(
        self, pool_level: int
    ) -> tuple[PoolNode | None, NodePosition]:
        """
        Resolve the next free slot.

        Returns:
            (parent node, position), or (None, ROOT) when a new tree is needed
        """
        while True:
            slot = await self.unit.pop_slot(pool_level)
            if slot is None:
                break

            parent = await self.node_repo.get_by_id(slot.parent_node_id)
            if parent is not None and await self._is_tree_closed(parent.tree_id):
                # Leaf slots of a closed tree drain here
                logger.debug(
                    f"Dropping slot of closed tree on level {pool_level}: "
                    f"parent={parent.id}, position={slot.position.value}"
                )
                self.unit.discard(pool_level, slot)
                continue

            if (
                parent is None
                or parent.pool_level != pool_level
                or await self.node_repo.is_position_taken(parent.id, slot.position)
            ):
                logger.warning(
                    f"Discarding stale slot on level {pool_level}: "
                    f"parent={slot.parent_node_id}, position={slot.position.value}"
                )
                self.unit.discard(pool_level, slot)
                continue

            return parent, slot.position

        # Queue exhausted: recover from the ledger
        parent = await self.node_repo.find_oldest_open_parent(pool_level)
        if parent is not None:
            position = await self._free_position(parent)
            logger.warning(
                f"Placement queue for level {pool_level} empty, "
                f"recovered slot {position.value} of node {parent.id} from ledger"
            )
            return parent, position

        return None, NodePosition.ROOT

    async def _next_slot_in_tree(
        self, tree: PoolTree
    ) -> tuple[PoolNode, NodePosition]:
        """
        Resolve the next free slot of one open tree.

        The tree's child slots staged by this unit are used first, so a tree
        opened within the event fills breadth-first and its consumed slots
        never reach the shared queue.
        """
        pool_level = tree.pool_level
        for slot in self.unit.deferred_slots(pool_level):
            parent = await self.node_repo.get_by_id(slot.parent_node_id)
            if parent is not None and parent.tree_id == tree.id:
                self.unit.take_deferred(pool_level, slot)
                return parent, slot.position

        parent = await self.node_repo.find_oldest_open_parent(pool_level, tree_id=tree.id)
        if parent is None:
            raise PlacementError(
                f"Tree {tree.tree_number} at level {pool_level} has no free slot"
            )
        return parent, await self._free_position(parent)

    async def _free_position(self, parent: PoolNode) -> NodePosition:
        if await self.node_repo.is_position_taken(parent.id, NodePosition.LEFT):
            return NodePosition.RIGHT
        return NodePosition.LEFT

    async def _is_tree_closed(self, tree_id: int) -> bool:
        tree = await self.tree_repo.get_by_id(tree_id)
        return tree is None or tree.is_complete

    async def _open_tree(self, pool_level: int) -> PoolTree:
        """
        Open a new tree at a level.

        Raises:
            CapacityError: Level already has max_open_trees_per_level open trees
        """
        open_trees = await self.tree_repo.count_open(pool_level)
        if open_trees >= self.config.max_open_trees_per_level:
            raise CapacityError(
                pool_level, open_trees, self.config.max_open_trees_per_level
            )

        tree_number = await self.tree_repo.next_tree_number(pool_level)
        tree = await self.tree_repo.create(
            pool_level=pool_level,
            tree_number=tree_number,
            completed_nodes=0,
            is_complete=False,
        )
        logger.info(
            f"Opened tree {tree_number} at level {pool_level} "
            f"({open_trees + 1}/{self.config.max_open_trees_per_level} open)"
        )
        return tree
