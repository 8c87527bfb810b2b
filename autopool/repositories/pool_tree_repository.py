"""
PoolTree repository.

Data access layer for PoolTree model. Counter mutations are conditional
atomic updates so concurrent completions cannot over-count.
"""

from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.business_constants import POOL_SIZE
from autopool.models.pool_tree import PoolTree
from autopool.repositories.base import BaseRepository


class PoolTreeRepository(BaseRepository[PoolTree]):
    """PoolTree repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize pool tree repository."""
        super().__init__(PoolTree, session)

    async def count_open(self, pool_level: int) -> int:
        """Count incomplete trees at a level."""
        result = await self.session.execute(
            select(func.count(PoolTree.id)).where(
                PoolTree.pool_level == pool_level,
                PoolTree.is_complete.is_(False),
            )
        )
        return result.scalar() or 0

    async def next_tree_number(self, pool_level: int) -> int:
        """Next tree number within a level (1-based)."""
        result = await self.session.execute(
            select(func.max(PoolTree.tree_number)).where(
                PoolTree.pool_level == pool_level
            )
        )
        return (result.scalar() or 0) + 1

    async def increment_completed(self, tree_id: int) -> int | None:
        """
        Increment completed-node counter if below POOL_SIZE.

        Args:
            tree_id: Tree ID (caller holds its row lock)

        Returns:
            Counter after increment, or None if already at POOL_SIZE
        """
        stmt = (
            update(PoolTree)
            .where(
                PoolTree.id == tree_id,
                PoolTree.completed_nodes < POOL_SIZE,
            )
            .values(completed_nodes=PoolTree.completed_nodes + 1)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None

        counter = await self.session.execute(
            select(PoolTree.completed_nodes).where(PoolTree.id == tree_id)
        )
        return counter.scalar_one()

    async def mark_complete(
        self, tree_id: int, last_four_participant_ids: list[int]
    ) -> bool:
        """
        Close a tree exactly once.

        Returns:
            True if this call closed the tree
        """
        stmt = (
            update(PoolTree)
            .where(
                PoolTree.id == tree_id,
                PoolTree.is_complete.is_(False),
                PoolTree.completed_nodes == POOL_SIZE,
            )
            .values(
                is_complete=True,
                completed_at=datetime.now(UTC),
                last_four_participant_ids=last_four_participant_ids,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def find_by_level(self, pool_level: int) -> list[PoolTree]:
        """List trees of a level in tree-number order."""
        result = await self.session.execute(
            select(PoolTree)
            .where(PoolTree.pool_level == pool_level)
            .order_by(PoolTree.tree_number)
        )
        return list(result.scalars().all())
