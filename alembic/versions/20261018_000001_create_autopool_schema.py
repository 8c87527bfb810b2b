"""Create auto-pool schema

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.DECIMAL(18, 8)


def upgrade() -> None:
    op.create_table(
        'participants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('public_id', sa.String(64), nullable=False),
        sa.Column('wallet_address', sa.String(42), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=True),
        sa.Column('direct_referral_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('has_retopup', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('retopup_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('has_entered_autopool', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('total_direct_income', MONEY, nullable=False, server_default='0'),
        sa.Column('total_level_income', MONEY, nullable=False, server_default='0'),
        sa.Column('total_autopool_income', MONEY, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['referrer_id'], ['participants.id'], ondelete='RESTRICT'),
        sa.CheckConstraint(
            'total_direct_income >= 0 AND total_level_income >= 0 '
            'AND total_autopool_income >= 0',
            name='ck_participants_income_non_negative',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_participants_public_id', 'participants', ['public_id'], unique=True)
    op.create_index('ix_participants_wallet_address', 'participants', ['wallet_address'], unique=True)
    op.create_index('ix_participants_referrer_id', 'participants', ['referrer_id'])

    op.create_table(
        'pool_trees',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pool_level', sa.Integer(), nullable=False),
        sa.Column('tree_number', sa.Integer(), nullable=False),
        sa.Column('completed_nodes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_four_participant_ids', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('pool_level', 'tree_number', name='uq_pool_trees_level_number'),
        sa.CheckConstraint(
            'completed_nodes >= 0 AND completed_nodes <= 15',
            name='ck_pool_trees_completed_nodes_range',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_pool_trees_level_open', 'pool_trees', ['pool_level', 'is_complete'])

    op.create_table(
        'pool_nodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tree_id', sa.Integer(), nullable=False),
        sa.Column('participant_id', sa.Integer(), nullable=False),
        sa.Column('parent_node_id', sa.Integer(), nullable=True),
        sa.Column('position', sa.String(5), nullable=False, server_default='root'),
        sa.Column('depth', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pool_level', sa.Integer(), nullable=False),
        sa.Column('tree_number', sa.Integer(), nullable=False),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_seq', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tree_id'], ['pool_trees.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['participant_id'], ['participants.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['parent_node_id'], ['pool_nodes.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('parent_node_id', 'position', name='uq_pool_nodes_parent_position'),
        sa.UniqueConstraint('participant_id', 'pool_level', name='uq_pool_nodes_participant_level'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pool_nodes_tree_id', 'pool_nodes', ['tree_id'])
    op.create_index('ix_pool_nodes_participant_id', 'pool_nodes', ['participant_id'])
    op.create_index('ix_pool_nodes_parent_node_id', 'pool_nodes', ['parent_node_id'])
    op.create_index('idx_pool_nodes_level_open', 'pool_nodes', ['pool_level', 'is_complete', 'depth'])

    op.create_table(
        'reserved_income',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('participant_id', sa.Integer(), nullable=False),
        sa.Column('pool_level', sa.Integer(), nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('total_reserved', MONEY, nullable=False, server_default='0'),
        sa.Column('total_consumed', MONEY, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['participant_id'], ['participants.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('participant_id', 'pool_level', name='uq_reserved_income_participant_level'),
        sa.CheckConstraint('balance >= 0', name='ck_reserved_income_balance_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_reserved_income_participant_id', 'reserved_income', ['participant_id'])

    op.create_table(
        'payout_batches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('idempotency_key', sa.String(160), nullable=False),
        sa.Column('event_key', sa.String(128), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('line_count', sa.Integer(), nullable=False),
        sa.Column('tx_hash', sa.String(66), nullable=True),
        sa.Column('block_number', sa.Integer(), nullable=True),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('in_dlq', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('idempotency_key'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payout_batches_event_key', 'payout_batches', ['event_key'])
    op.create_index('ix_payout_batches_tx_hash', 'payout_batches', ['tx_hash'])
    op.create_index('idx_payout_batches_status_dlq', 'payout_batches', ['status', 'in_dlq'])

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('line_index', sa.Integer(), nullable=False),
        sa.Column('participant_id', sa.Integer(), nullable=True),
        sa.Column('recipient_address', sa.String(42), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('reward_tag', sa.String(64), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('pool_level', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('tx_hash', sa.String(66), nullable=True),
        sa.Column('block_number', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['batch_id'], ['payout_batches.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['participant_id'], ['participants.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_ledger_entries_batch_id', 'ledger_entries', ['batch_id'])
    op.create_index(
        'idx_ledger_entries_participant_category', 'ledger_entries', ['participant_id', 'category']
    )
    op.create_index('idx_ledger_entries_status', 'ledger_entries', ['status'])

    op.create_table(
        'processed_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_key', sa.String(128), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('participant_public_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='applied'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_processed_events_event_key', 'processed_events', ['event_key'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_processed_events_event_key', 'processed_events')
    op.drop_table('processed_events')

    op.drop_index('idx_ledger_entries_status', 'ledger_entries')
    op.drop_index('idx_ledger_entries_participant_category', 'ledger_entries')
    op.drop_index('ix_ledger_entries_batch_id', 'ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_index('idx_payout_batches_status_dlq', 'payout_batches')
    op.drop_index('ix_payout_batches_tx_hash', 'payout_batches')
    op.drop_index('ix_payout_batches_event_key', 'payout_batches')
    op.drop_table('payout_batches')

    op.drop_index('ix_reserved_income_participant_id', 'reserved_income')
    op.drop_table('reserved_income')

    op.drop_index('idx_pool_nodes_level_open', 'pool_nodes')
    op.drop_index('ix_pool_nodes_parent_node_id', 'pool_nodes')
    op.drop_index('ix_pool_nodes_participant_id', 'pool_nodes')
    op.drop_index('ix_pool_nodes_tree_id', 'pool_nodes')
    op.drop_table('pool_nodes')

    op.drop_index('idx_pool_trees_level_open', 'pool_trees')
    op.drop_table('pool_trees')

    op.drop_index('ix_participants_referrer_id', 'participants')
    op.drop_index('ix_participants_wallet_address', 'participants')
    op.drop_index('ix_participants_public_id', 'participants')
    op.drop_table('participants')
