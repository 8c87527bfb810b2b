"""
PoolNode model.

One slot in one binary auto-pool tree. Placement is append-only.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from autopool.config.business_constants import LAST_COMPLETERS_COUNT, POOL_SIZE
from autopool.models.base import Base
from autopool.models.enums import NodePosition


class PoolNode(Base):
    """
    PoolNode entity.

    A node is complete iff both its left and right children exist.

    Attributes:
        id: Primary key
        tree_id: Owning tree
        participant_id: Owning participant
        parent_node_id: Parent node (None for a tree root)
        position: root, left or right
        depth: Distance from the tree root (root = 0)
        pool_level: Pool level of the tree
        tree_number: Tree number within the level
        is_complete: Whether both children are present
        completed_at: When the node completed
        completion_seq: Order in which this node completed within its tree
    """

    __tablename__ = "pool_nodes"
    __table_args__ = (
        # One left and one right child per parent
        UniqueConstraint("parent_node_id", "position", name="uq_pool_nodes_parent_position"),
        # A participant holds at most one node per level
        UniqueConstraint("participant_id", "pool_level", name="uq_pool_nodes_participant_level"),
        Index("idx_pool_nodes_level_open", "pool_level", "is_complete", "depth"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    tree_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pool_trees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    participant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    parent_node_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("pool_nodes.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    position: Mapped[str] = mapped_column(
        String(5), nullable=False, default=NodePosition.ROOT.value
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pool_level: Mapped[int] = mapped_column(Integer, nullable=False)
    tree_number: Mapped[int] = mapped_column(Integer, nullable=False)

    is_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completion_seq: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PoolNode(id={self.id}, participant_id={self.participant_id}, "
            f"level={self.pool_level}, tree={self.tree_number}, "
            f"parent={self.parent_node_id}, position={self.position})>"
        )

    @property
    def is_root(self) -> bool:
        """Whether the node is a tree root."""
        return self.parent_node_id is None

    @property
    def is_last_completer(self) -> bool:
        """Whether the node took one of its tree's final completion slots."""
        return (
            self.completion_seq is not None
            and self.completion_seq > POOL_SIZE - LAST_COMPLETERS_COUNT
        )
