"""initial schema: catalog, clicks, offers, completions, subscribers, interactions, users, activity logs

Revision ID: initial_schema_001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = 'initial_schema_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CATALOG_TABLES = ('apps', 'games', 'giftcards', 'coupons')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _catalog_table(name: str):
    is_coupon = name == 'coupons'
    op.create_table(
        name,
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False, unique=not is_coupon),
        sa.Column('code', sa.String(64), nullable=not is_coupon, unique=is_coupon),
        sa.Column('merchant', sa.String(255), nullable=False),
        sa.Column('image', sa.Text(), nullable=False, server_default=''),
        sa.Column('logo', sa.Text(), nullable=False, server_default=''),
        sa.Column('offer', sa.String(255), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('details', sa.Text(), nullable=False, server_default=''),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('rating_tenths', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_ratings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('items_left', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expiry', sa.String(64), nullable=False, server_default='No expiration'),
        sa.Column('uses_today', sa.String(64), nullable=False, server_default='0'),
        sa.Column('used_today', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('badge', sa.String(50), nullable=True),
        sa.Column('action_link', sa.Text(), nullable=False, server_default=''),
        sa.Column('action_provider', sa.String(20), nullable=False, server_default='og_ads'),
        sa.Column('total_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_clicked_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('items_left >= 0', name=f'ck_{name}_items_left_nonneg'),
    )
    op.create_index(f'ix_{name}_merchant', name, ['merchant'])
    op.create_index(f'ix_{name}_verified', name, ['verified'])
    op.create_index(f'ix_{name}_badge', name, ['badge'])
    op.create_index(f'ix_{name}_created_at', name, ['created_at'])


def upgrade() -> None:
    for name in CATALOG_TABLES:
        _catalog_table(name)

    op.create_table(
        'clicks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('item_type', sa.String(20), nullable=False),
        sa.Column('item_id', UUID(as_uuid=True), nullable=False),
        sa.Column('ip', sa.String(64), nullable=False),
        sa.Column('session_id', sa.String(128), nullable=False),
        sa.Column('country', sa.String(100)),
        sa.Column('city', sa.String(100)),
        sa.Column('region', sa.String(100)),
        sa.Column('user_agent', sa.Text()),
        sa.Column('referrer', sa.Text()),
        sa.Column('device_type', sa.String(20)),
        sa.Column('browser', sa.String(100)),
        sa.Column('os', sa.String(100)),
        sa.Column('is_unique', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_clicks_item_window', 'clicks', ['item_type', 'item_id', 'ip', 'session_id', 'created_at'])
    op.create_index('ix_clicks_item_created', 'clicks', ['item_type', 'item_id', 'created_at'])

    op.create_table(
        'offers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('link_ghana', sa.Text(), nullable=False, server_default=''),
        sa.Column('link_kenya', sa.Text(), nullable=False, server_default=''),
        sa.Column('link_nigeria', sa.Text(), nullable=False, server_default=''),
        *_timestamps(),
    )
    op.create_index('ix_offers_created_at', 'offers', ['created_at'])

    op.create_table(
        'offer_completions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('offer', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('code', sa.String(100), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_email_sent', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        *_timestamps(),
    )
    op.create_index('ix_offer_completions_code', 'offer_completions', ['code'])
    op.create_index('ix_offer_completions_email', 'offer_completions', ['email'])
    op.create_index('ix_offer_completions_created_at', 'offer_completions', ['created_at'])

    op.create_table(
        'subscribers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255)),
        sa.Column('ip_address', sa.String(64)),
        sa.Column('phone_number', sa.String(50)),
        sa.Column('isp_provider', sa.String(255)),
        sa.Column('country', sa.String(100)),
        sa.Column('city', sa.String(100)),
        sa.Column('region', sa.String(100)),
        sa.Column('lat_long', sa.String(64)),
        sa.Column('postal', sa.String(32)),
        sa.Column('timezone', sa.String(64)),
        sa.Column('source', sa.String(50), nullable=False, server_default='website'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        *_timestamps(),
    )
    op.create_index('ix_subscribers_ip_address', 'subscribers', ['ip_address'])
    op.create_index('ix_subscribers_created_at', 'subscribers', ['created_at'])

    op.create_table(
        'interactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('phone_number', sa.String(50)),
        sa.Column('ip_address', sa.String(64), nullable=False),
        sa.Column('country', sa.String(100)),
        sa.Column('city', sa.String(100)),
        sa.Column('region', sa.String(100)),
        sa.Column('timezone', sa.String(64)),
        sa.Column('device_type', sa.String(20), nullable=False, server_default='unknown'),
        sa.Column('browser', sa.String(100)),
        sa.Column('operating_system', sa.String(100)),
        sa.Column('platform', sa.String(100)),
        sa.Column('offer_title', sa.String(255), nullable=False),
        sa.Column('action_link', sa.Text()),
        sa.Column('status', sa.String(20), nullable=False, server_default='initiated'),
        sa.Column('error_message', sa.Text()),
        *_timestamps(),
    )
    op.create_index('ix_interactions_type', 'interactions', ['type'])
    op.create_index('ix_interactions_email', 'interactions', ['email'])
    op.create_index('ix_interactions_created_at', 'interactions', ['created_at'])

    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255)),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('refresh_token', sa.Text()),
        sa.Column('last_login_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    op.create_table(
        'activity_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('log_id', sa.String(64), nullable=False, unique=True),
        sa.Column('level', sa.String(10), nullable=False, server_default='info'),
        sa.Column('type', sa.String(40), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_activity_logs_type', 'activity_logs', ['type'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('activity_logs')
    op.drop_table('users')
    op.drop_table('interactions')
    op.drop_table('subscribers')
    op.drop_table('offer_completions')
    op.drop_table('offers')
    op.drop_table('clicks')
    for name in reversed(CATALOG_TABLES):
        op.drop_table(name)
