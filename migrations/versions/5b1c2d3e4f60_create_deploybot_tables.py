"""create_deploybot_tables

Пользователи, репозитории, окружения, блокировки, статусы коммитов,
автодеплои и действия кнопок.

Revision ID: 5b1c2d3e4f60
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b1c2d3e4f60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Создание таблиц DeployBot."""

    # === 1. USERS ===

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('github_login', sa.String(255), nullable=False),
        sa.Column('github_token', sa.String(255), nullable=True),
        sa.Column('telegram_id', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_github_login', 'users', ['github_login'], unique=True)
    op.create_index('ix_users_telegram_id', 'users', ['telegram_id'])

    # === 2. REPOSITORIES / ENVIRONMENTS ===

    op.create_table(
        'repositories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('raw_config', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_repositories_id', 'repositories', ['id'])
    op.create_index('ix_repositories_name', 'repositories', ['name'], unique=True)

    op.create_table(
        'environments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repository_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('default_ref', sa.String(255), nullable=False, server_default='master'),
        sa.Column('auto_deploy_ref', sa.String(255), nullable=True),
        sa.Column('required_contexts', sa.JSON(), nullable=False),
        sa.Column('aliases', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['repository_id'], ['repositories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('repository_id', 'name', name='uq_environments_repository_name')
    )
    op.create_index('ix_environments_id', 'environments', ['id'])
    op.create_index('ix_environments_repository_id', 'environments', ['repository_id'])

    # === 3. LOCKS ===

    op.create_table(
        'locks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('environment_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('message', sa.String(500), nullable=True),
        sa.Column('strong', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['environment_id'], ['environments.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_locks_id', 'locks', ['id'])
    op.create_index('ix_locks_environment_id', 'locks', ['environment_id'])
    op.create_index('ix_locks_user_id', 'locks', ['user_id'])
    op.create_index('ix_locks_released_at', 'locks', ['released_at'])
    # Не более одной активной блокировки на окружение
    op.create_index(
        'uq_locks_active_environment',
        'locks',
        ['environment_id'],
        unique=True,
        postgresql_where=sa.text('released_at IS NULL'),
    )

    # === 4. COMMIT STATUSES / AUTO DEPLOYMENTS ===

    op.create_table(
        'commit_statuses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sha', sa.String(40), nullable=False),
        sa.Column('context', sa.String(255), nullable=False),
        sa.Column('state', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_commit_statuses_id', 'commit_statuses', ['id'])
    op.create_index('ix_commit_statuses_sha', 'commit_statuses', ['sha'])
    op.create_index('ix_commit_statuses_sha_context', 'commit_statuses', ['sha', 'context'])

    op.create_table(
        'auto_deployments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('environment_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('sha', sa.String(40), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('done_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['environment_id'], ['environments.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_auto_deployments_id', 'auto_deployments', ['id'])
    op.create_index('ix_auto_deployments_environment_id', 'auto_deployments', ['environment_id'])
    op.create_index('ix_auto_deployments_user_id', 'auto_deployments', ['user_id'])
    op.create_index('ix_auto_deployments_sha', 'auto_deployments', ['sha'])
    op.create_index('ix_auto_deployments_state', 'auto_deployments', ['state'])

    # === 5. MESSAGE ACTIONS ===

    op.create_table(
        'message_actions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('callback_id', sa.String(36), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('action_params', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_message_actions_id', 'message_actions', ['id'])
    op.create_index('ix_message_actions_callback_id', 'message_actions', ['callback_id'], unique=True)


def downgrade() -> None:
    """Удаление таблиц DeployBot."""
    op.drop_table('message_actions')
    op.drop_table('auto_deployments')
    op.drop_table('commit_statuses')
    op.drop_index('uq_locks_active_environment', table_name='locks')
    op.drop_table('locks')
    op.drop_table('environments')
    op.drop_table('repositories')
    op.drop_table('users')
