"""
PoolTree model.

One binary tree instance at one pool level.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from autopool.config.business_constants import POOL_SIZE
from autopool.models.base import Base


class PoolTree(Base):
    """
    PoolTree entity.

    The completed-node counter only grows and the tree closes exactly once,
    when the counter reaches POOL_SIZE.

    Attributes:
        id: Primary key
        pool_level: Pool level (1-based)
        tree_number: Sequence of the tree within its level
        completed_nodes: Nodes of this tree with both children present
        is_complete: Whether the counter reached POOL_SIZE
        completed_at: When the tree closed
        last_four_participant_ids: Owners of the final four completions,
            in completion order
    """

    __tablename__ = "pool_trees"
    __table_args__ = (
        UniqueConstraint("pool_level", "tree_number", name="uq_pool_trees_level_number"),
        CheckConstraint(
            f"completed_nodes >= 0 AND completed_nodes <= {POOL_SIZE}",
            name="ck_pool_trees_completed_nodes_range",
        ),
        Index("idx_pool_trees_level_open", "pool_level", "is_complete"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    pool_level: Mapped[int] = mapped_column(Integer, nullable=False)
    tree_number: Mapped[int] = mapped_column(Integer, nullable=False)

    completed_nodes: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    is_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_four_participant_ids: Mapped[list[Any] | None] = mapped_column(
        JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PoolTree(id={self.id}, level={self.pool_level}, "
            f"number={self.tree_number}, completed={self.completed_nodes})>"
        )

    @property
    def last_four(self) -> list[int]:
        """Recorded last-four owners (empty until the tree closes)."""
        return [int(pid) for pid in (self.last_four_participant_ids or [])]
