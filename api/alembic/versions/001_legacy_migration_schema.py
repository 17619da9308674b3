"""legacy_migration_schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 10:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('users'):
        op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    if not inspector.has_table('workspaces'):
        op.create_table('workspaces',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('icon', sa.String(length=16), nullable=True),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        sa.Column('system_type', sa.String(length=50), nullable=True),
        sa.Column('sections', sa.JSON(), nullable=False),
        sa.Column('statuses', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_workspaces_prefix'), 'workspaces', ['prefix'], unique=True)
        op.create_index(op.f('ix_workspaces_system_type'), 'workspaces', ['system_type'], unique=True)

    if not inspector.has_table('entities'):
        op.create_table('entities',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('custom_id', sa.String(length=64), nullable=False),
        sa.Column('workspace_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=64), nullable=False),
        sa.Column('priority', sa.String(length=32), nullable=True),
        sa.Column('assignee_id', sa.String(length=36), nullable=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('comment_count', sa.Integer(), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], ),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_entities_custom_id'), 'entities', ['custom_id'], unique=True)
        op.create_index(op.f('ix_entities_workspace_id'), 'entities', ['workspace_id'], unique=False)
        op.create_index(op.f('ix_entities_assignee_id'), 'entities', ['assignee_id'], unique=False)

    if not inspector.has_table('comments'):
        op.create_table('comments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=False),
        sa.Column('author_id', sa.String(length=36), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['entity_id'], ['entities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_comments_entity_id'), 'comments', ['entity_id'], unique=False)

    if not inspector.has_table('legacy_migration_log'):
        op.create_table('legacy_migration_log',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('legacy_request_id', sa.Integer(), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('comments_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('migrated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_legacy_migration_log_legacy_request_id'), 'legacy_migration_log', ['legacy_request_id'], unique=True)
        op.create_index(op.f('ix_legacy_migration_log_status'), 'legacy_migration_log', ['status'], unique=False)

    if not inspector.has_table('system_sync_log'):
        op.create_table('system_sync_log',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('system_type', sa.String(length=50), nullable=False),
        sa.Column('legacy_id', sa.Integer(), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('system_type', 'legacy_id', name='uq_system_sync_log_type_legacy')
        )
        op.create_index(op.f('ix_system_sync_log_system_type'), 'system_sync_log', ['system_type'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    # Orden inverso por las foreign keys
    for table in ('system_sync_log', 'legacy_migration_log', 'comments', 'entities', 'workspaces', 'users'):
        if inspector.has_table(table):
            op.drop_table(table)
