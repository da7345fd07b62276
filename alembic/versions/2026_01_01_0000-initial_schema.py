"""initial schema

Revision ID: 2026_01_01_0000
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_01_01_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Identities
    # ========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('google_id', sa.String(255), nullable=True, unique=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('google_id', sa.String(255), nullable=True, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('user_type', sa.String(10), nullable=False, server_default='2'),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
    )

    op.create_table(
        'admin_permissions',
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admins.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # ========================================================================
    # Plans and credit ledger
    # ========================================================================
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('monthly_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('annual_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('monthly_credit', sa.BigInteger(), nullable=False, server_default='0'),
        _created_at(),
    )

    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_reset', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('subscription_id', sa.Integer(), sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('subscription_expiry', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscription_id', sa.Integer(), sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('billing_month', sa.Date(), nullable=False),
        _created_at(),
    )
    op.create_index('idx_payments_account_month', 'payments', ['account_id', 'billing_month'])

    op.create_table(
        'top_up_plans',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('credits', sa.BigInteger(), nullable=False),
    )

    # ========================================================================
    # Provider keys and model catalogue
    # ========================================================================
    op.create_table(
        'ai_model_api_keys',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('model', sa.String(50), nullable=False),
        sa.Column('api_key', sa.Text(), nullable=False),
        sa.Column('added_by', sa.Integer(), sa.ForeignKey('admins.id'), nullable=False),
        _created_at(),
        sa.UniqueConstraint('added_by', 'model', name='uq_ai_model_key_owner_model'),
    )

    op.create_table(
        'user_api_keys',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('model', sa.String(50), nullable=False),
        sa.Column('api_key', sa.Text(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('user_id', 'model', name='uq_user_api_key_owner_model'),
    )

    op.create_table(
        'available_models',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('model_id', sa.Integer(), nullable=False),
        sa.Column('model', sa.String(50), nullable=False),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('subscription_id', sa.Integer(), sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('cost', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('temperature', sa.Numeric(3, 2), nullable=False, server_default='0.7'),
        sa.Column('added_by', sa.Integer(), nullable=False),
        _created_at(),
    )
    op.create_index('idx_available_models_model_id', 'available_models', ['model_id'])

    # ========================================================================
    # Platform config, access control and audit
    # ========================================================================
    op.create_table(
        'admin_config',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('value', sa.String(255), nullable=False),
        sa.Column('added_by', sa.Integer(), sa.ForeignKey('admins.id'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_table(
        'whitelist_ip',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('ip', sa.String(64), nullable=False, unique=True),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('added_by', sa.Integer(), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        'blacklist_country',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('country_code', sa.String(2), nullable=False, unique=True),
        sa.Column('country_name', sa.String(100), nullable=True),
        sa.Column('added_by', sa.Integer(), nullable=False),
        _created_at(),
    )

    op.create_table(
        'logs',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user', sa.String(255), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('component', sa.String(100), nullable=False),
        sa.Column('level', sa.String(20), nullable=False, server_default='info'),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_logs_date', 'logs', ['date'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_logs_date', table_name='logs')
    op.drop_table('logs')
    op.drop_table('blacklist_country')
    op.drop_table('whitelist_ip')
    op.drop_table('admin_config')
    op.drop_index('idx_available_models_model_id', table_name='available_models')
    op.drop_table('available_models')
    op.drop_table('user_api_keys')
    op.drop_table('ai_model_api_keys')
    op.drop_table('top_up_plans')
    op.drop_index('idx_payments_account_month', table_name='payments')
    op.drop_table('payments')
    op.drop_table('accounts')
    op.drop_table('subscriptions')
    op.drop_table('admin_permissions')
    op.drop_table('permissions')
    op.drop_table('admins')
    op.drop_table('users')
