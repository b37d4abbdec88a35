"""Create task_logs table

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the durable execution log table."""
    op.create_table(
        'task_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('task', sa.String(length=255), nullable=False),
        sa.Column('task_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('task_category', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('project_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('job_id', sa.String(length=64), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('operation', sa.String(length=255), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_task_logs')),
    )
    op.create_index(op.f('ix_task_logs_task'), 'task_logs', ['task'], unique=False)
    op.create_index(op.f('ix_task_logs_tenant_id'), 'task_logs', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_task_logs_project_id'), 'task_logs', ['project_id'], unique=False)
    op.create_index(op.f('ix_task_logs_job_id'), 'task_logs', ['job_id'], unique=False)


def downgrade() -> None:
    """Drop the durable execution log table."""
    op.drop_index(op.f('ix_task_logs_job_id'), table_name='task_logs')
    op.drop_index(op.f('ix_task_logs_project_id'), table_name='task_logs')
    op.drop_index(op.f('ix_task_logs_tenant_id'), table_name='task_logs')
    op.drop_index(op.f('ix_task_logs_task'), table_name='task_logs')
    op.drop_table('task_logs')
