"""
PoolNode repository.

Data access layer for PoolNode model.
"""

from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.enums import NodePosition
from autopool.models.pool_node import PoolNode
from autopool.models.pool_tree import PoolTree
from autopool.repositories.base import BaseRepository


class PoolNodeRepository(BaseRepository[PoolNode]):
    """PoolNode repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize pool node repository."""
        super().__init__(PoolNode, session)

    async def count_children(self, parent_node_id: int) -> int:
        """Count children of a node."""
        result = await self.session.execute(
            select(func.count(PoolNode.id)).where(
                PoolNode.parent_node_id == parent_node_id
            )
        )
        return result.scalar() or 0

    async def is_position_taken(
        self, parent_node_id: int, position: NodePosition
    ) -> bool:
        """Check whether a child slot is occupied."""
        return await self.exists(
            parent_node_id=parent_node_id, position=position.value
        )

    async def get_by_participant_level(
        self, participant_id: int, pool_level: int
    ) -> PoolNode | None:
        """Get participant's node at a level."""
        return await self.get_by(
            participant_id=participant_id, pool_level=pool_level
        )

    async def find_oldest_open_parent(
        self, pool_level: int, tree_id: int | None = None
    ) -> PoolNode | None:
        """
        Find the oldest incomplete node of an open tree at a level.

        An incomplete node always has at least one free child position.
        Nodes of closed trees are never returned.

        Args:
            pool_level: Pool level
            tree_id: Restrict the search to one tree
        """
        stmt = (
            select(PoolNode)
            .join(PoolTree, PoolTree.id == PoolNode.tree_id)
            .where(
                PoolNode.pool_level == pool_level,
                PoolNode.is_complete.is_(False),
                PoolTree.is_complete.is_(False),
            )
        )
        if tree_id is not None:
            stmt = stmt.where(PoolNode.tree_id == tree_id)
        result = await self.session.execute(stmt.order_by(PoolNode.id).limit(1))
        return result.scalar_one_or_none()

    async def mark_complete(self, node_id: int) -> bool:
        """
        Mark node complete if not yet complete.

        Returns:
            True if this call completed the node
        """
        stmt = (
            update(PoolNode)
            .where(
                PoolNode.id == node_id,
                PoolNode.is_complete.is_(False),
            )
            .values(
                is_complete=True,
                completed_at=datetime.now(UTC),
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_last_completed(
        self, tree_id: int, limit: int
    ) -> list[PoolNode]:
        """
        Get the most recently completed nodes of a tree.

        Returns:
            Nodes in completion order (oldest of the selection first)
        """
        result = await self.session.execute(
            select(PoolNode)
            .where(
                PoolNode.tree_id == tree_id,
                PoolNode.completion_seq.is_not(None),
            )
            .order_by(PoolNode.completion_seq.desc())
            .limit(limit)
        )
        nodes = list(result.scalars().all())
        nodes.reverse()
        return nodes

    async def count_at_level(self, pool_level: int) -> int:
        """Count placed nodes at a level."""
        return await self.count(pool_level=pool_level)

    async def set_completion_seq(self, node_id: int, completion_seq: int) -> None:
        """Stamp the completion order of a counted node."""
        await self.session.execute(
            update(PoolNode)
            .where(PoolNode.id == node_id)
            .values(completion_seq=completion_seq)
        )
