"""
Create the sync_queue table.

Revision ID: 0001_create_sync_queue
Revises:
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '0001_create_sync_queue'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create the sync_queue table."""
    op.create_table(
        'sync_queue',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('operation', sa.String(20), nullable=False),
        sa.Column('record_id', sa.String(64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_sync_queue_table_name', 'sync_queue', ['table_name'])
    op.create_index('ix_sync_queue_record_id', 'sync_queue', ['record_id'])
    op.create_index('ix_sync_queue_status', 'sync_queue', ['status'])
    op.create_index('ix_sync_queue_created_at', 'sync_queue', ['created_at'])
    # Worker polling: status plus retry time
    op.create_index('ix_sync_queue_due', 'sync_queue', ['status', 'next_retry_at'])


def downgrade():
    """Drop the sync_queue table."""
    op.drop_index('ix_sync_queue_due', table_name='sync_queue')
    op.drop_index('ix_sync_queue_created_at', table_name='sync_queue')
    op.drop_index('ix_sync_queue_status', table_name='sync_queue')
    op.drop_index('ix_sync_queue_record_id', table_name='sync_queue')
    op.drop_index('ix_sync_queue_table_name', table_name='sync_queue')
    op.drop_table('sync_queue')
