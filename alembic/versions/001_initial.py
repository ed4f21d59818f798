"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Signals table
    op.create_table(
        'signals',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('location', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('user_email', sa.String(length=255), nullable=True),
        sa.Column('assigned_to', sa.String(length=255), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "(status = 'resolved') = (resolved_at IS NOT NULL)",
            name='ck_signal_resolved_at'
        )
    )
    op.create_index('ix_signals_status', 'signals', ['status'])
    op.create_index('ix_signals_priority', 'signals', ['priority'])
    op.create_index('ix_signals_user_id', 'signals', ['user_id'])
    op.create_index('ix_signals_assigned_to', 'signals', ['assigned_to'])
    op.create_index('ix_signals_created_at', 'signals', ['created_at'])

    # Per-reporter rollup
    op.create_table(
        'user_stats',
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('total_reports', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_reports', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('in_progress_reports', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('resolved_reports', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
        sa.CheckConstraint('total_reports >= 0', name='ck_user_stats_total'),
        sa.CheckConstraint('pending_reports >= 0', name='ck_user_stats_pending'),
        sa.CheckConstraint('in_progress_reports >= 0', name='ck_user_stats_in_progress'),
        sa.CheckConstraint('resolved_reports >= 0', name='ck_user_stats_resolved')
    )
    op.create_index('ix_user_stats_total_reports', 'user_stats', ['total_reports'])

    # Collectors table
    op.create_table(
        'collectors',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # Admins table
    op.create_table(
        'admins',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )


def downgrade() -> None:
    op.drop_table('admins')
    op.drop_table('collectors')
    op.drop_index('ix_user_stats_total_reports', table_name='user_stats')
    op.drop_table('user_stats')
    op.drop_index('ix_signals_created_at', table_name='signals')
    op.drop_index('ix_signals_assigned_to', table_name='signals')
    op.drop_index('ix_signals_user_id', table_name='signals')
    op.drop_index('ix_signals_priority', table_name='signals')
    op.drop_index('ix_signals_status', table_name='signals')
    op.drop_table('signals')
