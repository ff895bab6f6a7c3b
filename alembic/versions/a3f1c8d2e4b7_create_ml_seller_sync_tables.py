"""Create ML seller sync tables

Revision ID: a3f1c8d2e4b7
Revises:
Create Date: 2026-05-04

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a3f1c8d2e4b7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _account_fk():
    return sa.Column('ml_account_id', sa.Integer(), sa.ForeignKey('mercado_livre_accounts.id'), nullable=False)


def _index(table: str, *columns: str, unique: bool = False):
    for column in columns:
        op.create_index(f'ix_{table}_{column}', table, [column], unique=unique)


def upgrade() -> None:
    # mercado_livre_accounts
    op.create_table(
        'mercado_livre_accounts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('ml_user_id', sa.BigInteger(), nullable=False),
        sa.Column('ml_nickname', sa.String(), nullable=True),
        sa.Column('site_id', sa.String(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('needs_reauth', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=True),
        sa.Column('advertiser_id', sa.BigInteger(), nullable=True),
        sa.Column('has_product_ads_enabled', sa.Boolean(), nullable=True),
        sa.Column('has_seller_recovery', sa.Boolean(), nullable=True),
        sa.Column('connected_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    _index('mercado_livre_accounts', 'id', 'is_active', 'last_sync_at')
    _index('mercado_livre_accounts', 'ml_user_id', unique=True)

    # mercado_livre_products
    op.create_table(
        'mercado_livre_products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('ml_item_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('available_quantity', sa.Integer(), nullable=True),
        sa.Column('sold_quantity', sa.Integer(), nullable=True),
        sa.Column('permalink', sa.String(), nullable=True),
        sa.Column('thumbnail', sa.String(), nullable=True),
        sa.Column('listing_type', sa.String(), nullable=True),
        sa.Column('category_id', sa.String(), nullable=True),
        sa.Column('inventory_id', sa.String(), nullable=True),
        sa.Column('shipping_mode', sa.String(), nullable=True),
        sa.Column('logistic_type', sa.String(), nullable=True),
        sa.Column('shipping_modes', sa.JSON(), nullable=True),
        sa.Column('logistic_types', sa.JSON(), nullable=True),
        sa.Column('free_shipping', sa.Boolean(), nullable=True),
        sa.Column('has_description', sa.Boolean(), nullable=True),
        sa.Column('has_pictures', sa.Boolean(), nullable=True),
        sa.Column('has_tax_data', sa.Boolean(), nullable=True),
        sa.Column('has_low_quality_photos', sa.Boolean(), nullable=True),
        sa.Column('min_photo_dimension', sa.Integer(), nullable=True),
        sa.Column('photo_count', sa.Integer(), nullable=True),
        sa.Column('health_score', sa.Float(), nullable=True),
        sa.Column('health_level', sa.String(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('ml_account_id', 'ml_item_id', name='uq_ml_product_account_item'),
    )
    _index('mercado_livre_products', 'id', 'ml_account_id', 'ml_item_id', 'status', 'inventory_id')

    # mercado_livre_orders
    op.create_table(
        'mercado_livre_orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('ml_order_id', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=True),
        sa.Column('paid_amount', sa.Float(), nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('buyer_id', sa.BigInteger(), nullable=True),
        sa.Column('buyer_nickname', sa.String(), nullable=True),
        sa.Column('shipping_mode', sa.String(), nullable=True),
        sa.Column('date_created', sa.DateTime(), nullable=True),
        sa.Column('date_closed', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('ml_account_id', 'ml_order_id', name='uq_ml_order_account_order'),
    )
    _index('mercado_livre_orders', 'id', 'ml_account_id', 'ml_order_id', 'status', 'date_created')

    # mercado_livre_full_stock
    op.create_table(
        'mercado_livre_full_stock',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('inventory_id', sa.String(), nullable=False),
        sa.Column('ml_item_id', sa.String(), nullable=True),
        sa.Column('available_units', sa.Integer(), nullable=True),
        sa.Column('reserved_units', sa.Integer(), nullable=True),
        sa.Column('inbound_units', sa.Integer(), nullable=True),
        sa.Column('damaged_units', sa.Integer(), nullable=True),
        sa.Column('lost_units', sa.Integer(), nullable=True),
        sa.Column('stock_status', sa.String(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('ml_account_id', 'inventory_id', name='uq_ml_stock_account_inventory'),
    )
    _index('mercado_livre_full_stock', 'id', 'ml_account_id', 'inventory_id', 'ml_item_id', 'stock_status', 'synced_at')

    # mercado_livre_metrics
    op.create_table(
        'mercado_livre_metrics',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('total_sales', sa.Integer(), nullable=True),
        sa.Column('total_revenue', sa.Float(), nullable=True),
        sa.Column('average_ticket', sa.Float(), nullable=True),
        sa.Column('active_listings', sa.Integer(), nullable=True),
        sa.Column('paused_listings', sa.Integer(), nullable=True),
        sa.Column('total_listings', sa.Integer(), nullable=True),
        sa.Column('shipping_total', sa.Integer(), nullable=True),
        sa.Column('flex_count', sa.Integer(), nullable=True),
        sa.Column('flex_percentage', sa.Float(), nullable=True),
        sa.Column('agencies_count', sa.Integer(), nullable=True),
        sa.Column('agencies_percentage', sa.Float(), nullable=True),
        sa.Column('collection_count', sa.Integer(), nullable=True),
        sa.Column('collection_percentage', sa.Float(), nullable=True),
        sa.Column('full_count', sa.Integer(), nullable=True),
        sa.Column('full_percentage', sa.Float(), nullable=True),
        sa.Column('correios_count', sa.Integer(), nullable=True),
        sa.Column('correios_percentage', sa.Float(), nullable=True),
        sa.Column('envio_proprio_count', sa.Integer(), nullable=True),
        sa.Column('envio_proprio_percentage', sa.Float(), nullable=True),
        sa.Column('has_full', sa.Boolean(), nullable=True),
        sa.Column('reputation_level', sa.String(), nullable=True),
        sa.Column('reputation_color', sa.String(), nullable=True),
        sa.Column('real_reputation_level', sa.String(), nullable=True),
        sa.Column('protection_end_date', sa.DateTime(), nullable=True),
        sa.Column('has_decola', sa.Boolean(), nullable=True),
        sa.Column('claims_rate', sa.Float(), nullable=True),
        sa.Column('claims_value', sa.Integer(), nullable=True),
        sa.Column('delayed_handling_rate', sa.Float(), nullable=True),
        sa.Column('delayed_handling_value', sa.Integer(), nullable=True),
        sa.Column('cancellations_rate', sa.Float(), nullable=True),
        sa.Column('cancellations_value', sa.Integer(), nullable=True),
        sa.Column('decola_problems_count', sa.Integer(), nullable=True),
        sa.Column('transactions_total', sa.Integer(), nullable=True),
        sa.Column('positive_ratings_rate', sa.Float(), nullable=True),
        sa.Column('is_mercado_lider', sa.Boolean(), nullable=True),
        sa.Column('mercado_lider_level', sa.String(), nullable=True),
        sa.Column('has_recovery_benefit', sa.Boolean(), nullable=True),
        sa.Column('recovery_program_type', sa.String(), nullable=True),
        sa.Column('recovery_program_status', sa.String(), nullable=True),
        sa.Column('ads_active_campaigns', sa.Integer(), nullable=True),
        sa.Column('ads_total_spend', sa.Float(), nullable=True),
        sa.Column('ads_total_revenue', sa.Float(), nullable=True),
        sa.Column('ads_total_sales', sa.Integer(), nullable=True),
        sa.Column('ads_roas', sa.Float(), nullable=True),
        sa.Column('ads_acos', sa.Float(), nullable=True),
        sa.Column('period_start', sa.DateTime(), nullable=True),
        sa.Column('period_end', sa.DateTime(), nullable=True),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
    )
    _index('mercado_livre_metrics', 'id')
    _index('mercado_livre_metrics', 'ml_account_id', unique=True)

    # mercado_livre_campaigns
    op.create_table(
        'mercado_livre_campaigns',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('campaign_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('strategy', sa.String(), nullable=True),
        sa.Column('daily_budget', sa.Float(), nullable=True),
        sa.Column('impressions', sa.Integer(), nullable=True),
        sa.Column('clicks', sa.Integer(), nullable=True),
        sa.Column('total_spend', sa.Float(), nullable=True),
        sa.Column('ad_revenue', sa.Float(), nullable=True),
        sa.Column('advertised_sales', sa.Integer(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('ml_account_id', 'campaign_id', name='uq_ml_campaign_account_campaign'),
    )
    _index('mercado_livre_campaigns', 'id', 'ml_account_id', 'campaign_id', 'status')

    # mercado_livre_product_ads
    op.create_table(
        'mercado_livre_product_ads',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('ml_item_id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('is_recommended', sa.Boolean(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('ml_account_id', 'ml_item_id', name='uq_ml_product_ad_account_item'),
    )
    _index('mercado_livre_product_ads', 'id', 'ml_account_id', 'ml_item_id')

    # mercado_livre_seller_recovery
    op.create_table(
        'mercado_livre_seller_recovery',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('program_type', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('current_level', sa.String(), nullable=True),
        sa.Column('init_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('start_level', sa.String(), nullable=True),
        sa.Column('end_level', sa.String(), nullable=True),
        sa.Column('warning', sa.Text(), nullable=True),
        sa.Column('is_renewal', sa.Boolean(), nullable=True),
        sa.Column('max_issues_allowed', sa.Integer(), nullable=True),
        sa.Column('protection_days_limit', sa.Integer(), nullable=True),
        sa.Column('orders_qty', sa.Integer(), nullable=True),
        sa.Column('total_issues', sa.Integer(), nullable=True),
        sa.Column('claims_qty', sa.Integer(), nullable=True),
        sa.Column('cancel_qty', sa.Integer(), nullable=True),
        sa.Column('delay_qty', sa.Integer(), nullable=True),
        sa.Column('guarantee_price', sa.Float(), nullable=True),
        sa.Column('guarantee_status', sa.String(), nullable=True),
        sa.Column('last_checked_at', sa.DateTime(), nullable=True),
    )
    _index('mercado_livre_seller_recovery', 'id', 'status')
    _index('mercado_livre_seller_recovery', 'ml_account_id', unique=True)

    # mercado_livre_webhook_logs
    op.create_table(
        'mercado_livre_webhook_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('topic', sa.String(), nullable=False),
        sa.Column('resource', sa.String(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=True),
        sa.Column('application_id', sa.BigInteger(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('resource', 'topic', name='uq_ml_webhook_resource_topic'),
    )
    _index('mercado_livre_webhook_logs', 'id', 'topic', 'resource', 'user_id', 'processed')

    # ml_auto_sync_logs
    op.create_table(
        'ml_auto_sync_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('total_accounts', sa.Integer(), nullable=True),
        sa.Column('successful_syncs', sa.Integer(), nullable=True),
        sa.Column('failed_syncs', sa.Integer(), nullable=True),
        sa.Column('tokens_renewed', sa.Integer(), nullable=True),
        sa.Column('error_details', sa.JSON(), nullable=True),
    )
    _index('ml_auto_sync_logs', 'id')

    # milestones
    op.create_table(
        'milestones',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _account_fk(),
        sa.Column('phase', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('progress', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    _index('milestones', 'id', 'ml_account_id', 'status')


def downgrade() -> None:
    for table in (
        'milestones',
        'ml_auto_sync_logs',
        'mercado_livre_webhook_logs',
        'mercado_livre_seller_recovery',
        'mercado_livre_product_ads',
        'mercado_livre_campaigns',
        'mercado_livre_metrics',
        'mercado_livre_full_stock',
        'mercado_livre_orders',
        'mercado_livre_products',
        'mercado_livre_accounts',
    ):
        op.drop_table(table)
