"""
Mercado Livre Data Models

Stores seller accounts and everything synced from the Mercado Livre API:
listings, orders, fulfillment stock, product ads and the derived metrics
snapshot. Every synced table carries a natural key so re-syncs upsert.
"""
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, JSON, Boolean, Text, BigInteger,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.models.base import Base
from app.utils.helpers import utcnow


class MLAccount(Base):
    """
    A connected seller account.

    Credentials are rewritten only by the token manager; sync stamps and
    feature flags only by the sync pipeline.
    """
    __tablename__ = "mercado_livre_accounts"

    id = Column(Integer, primary_key=True, index=True)

    ml_user_id = Column(BigInteger, unique=True, index=True, nullable=False)
    ml_nickname = Column(String, nullable=True)
    site_id = Column(String, default="MLB")

    # OAuth credential triple
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    needs_reauth = Column(Boolean, default=False)

    is_active = Column(Boolean, default=True, index=True)
    is_primary = Column(Boolean, default=False)

    # Optional programs, discovered during sync
    advertiser_id = Column(BigInteger, nullable=True)
    has_product_ads_enabled = Column(Boolean, default=False)
    has_seller_recovery = Column(Boolean, default=False)

    connected_at = Column(DateTime, default=utcnow)
    last_sync_at = Column(DateTime, nullable=True, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    products = relationship("MLProduct", back_populates="account")
    orders = relationship("MLOrder", back_populates="account")


class MLProduct(Base):
    """
    A listing. Never deleted; status changes are upserted in place.

    shipping_modes / logistic_types are the authoritative shipping fields;
    the scalar shipping_mode / logistic_type columns are the legacy fallback.
    """
    __tablename__ = "mercado_livre_products"
    __table_args__ = (
        UniqueConstraint("ml_account_id", "ml_item_id", name="uq_ml_product_account_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), index=True, nullable=False)
    ml_item_id = Column(String, index=True, nullable=False)  # MLB123456789

    title = Column(String)
    status = Column(String, index=True)  # active, paused, closed
    price = Column(Float, default=0)
    available_quantity = Column(Integer, default=0)
    sold_quantity = Column(Integer, default=0)
    permalink = Column(String, nullable=True)
    thumbnail = Column(String, nullable=True)
    listing_type = Column(String, nullable=True)  # gold_special, gold_pro, free
    category_id = Column(String, nullable=True)
    inventory_id = Column(String, nullable=True, index=True)  # Present for FULL items

    # Shipping
    shipping_mode = Column(String, nullable=True)  # me1, me2, drop_off, not_specified
    logistic_type = Column(String, nullable=True)  # fulfillment, self_service, xd_drop_off, ...
    shipping_modes = Column(JSON, default=list)
    logistic_types = Column(JSON, default=list)
    free_shipping = Column(Boolean, default=False)

    # Quality flags
    has_description = Column(Boolean, default=False)
    has_pictures = Column(Boolean, default=False)
    has_tax_data = Column(Boolean, default=False)
    has_low_quality_photos = Column(Boolean, default=False)
    min_photo_dimension = Column(Integer, nullable=True)
    photo_count = Column(Integer, default=0)

    # Estimated health
    health_score = Column(Float, nullable=True)  # 0-1
    health_level = Column(String, nullable=True)  # basic, standard, professional

    synced_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

    account = relationship("MLAccount", back_populates="products")


class MLOrder(Base):
    """
    An order within the sync window.

    Once stored as paid only the status may change afterwards.
    """
    __tablename__ = "mercado_livre_orders"
    __table_args__ = (
        UniqueConstraint("ml_account_id", "ml_order_id", name="uq_ml_order_account_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), index=True, nullable=False)
    ml_order_id = Column(BigInteger, index=True, nullable=False)

    status = Column(String, index=True)  # paid, cancelled, confirmed, ...
    total_amount = Column(Float, nullable=True)
    paid_amount = Column(Float, nullable=True)
    currency = Column(String, default="BRL")

    buyer_id = Column(BigInteger, nullable=True)
    buyer_nickname = Column(String, nullable=True)
    shipping_mode = Column(String, nullable=True)

    date_created = Column(DateTime, index=True)
    date_closed = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, default=utcnow)

    account = relationship("MLAccount", back_populates="orders")


class MLFullStock(Base):
    """Fulfillment (FULL) warehouse stock for one inventory id"""
    __tablename__ = "mercado_livre_full_stock"
    __table_args__ = (
        UniqueConstraint("ml_account_id", "inventory_id", name="uq_ml_stock_account_inventory"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), index=True, nullable=False)
    inventory_id = Column(String, index=True, nullable=False)
    ml_item_id = Column(String, index=True, nullable=True)

    available_units = Column(Integer, default=0)
    reserved_units = Column(Integer, default=0)
    inbound_units = Column(Integer, default=0)
    damaged_units = Column(Integer, default=0)
    lost_units = Column(Integer, default=0)
    stock_status = Column(String, index=True)  # out_of_stock, low_quality, good_quality

    synced_at = Column(DateTime, default=utcnow, index=True)


class MLMetrics(Base):
    """
    Derived metrics, one row per account, fully overwritten every cycle.

    Shipping percentages are independent: a listing can count in several
    categories, so they may sum above 100.
    """
    __tablename__ = "mercado_livre_metrics"

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), unique=True, index=True, nullable=False)

    # Sales (paid orders in the window)
    total_sales = Column(Integer, default=0)
    total_revenue = Column(Float, default=0)
    average_ticket = Column(Float, default=0)

    # Listings
    active_listings = Column(Integer, default=0)
    paused_listings = Column(Integer, default=0)
    total_listings = Column(Integer, default=0)

    # Shipping mix over active listings
    shipping_total = Column(Integer, default=0)
    flex_count = Column(Integer, default=0)
    flex_percentage = Column(Float, default=0)
    agencies_count = Column(Integer, default=0)
    agencies_percentage = Column(Float, default=0)
    collection_count = Column(Integer, default=0)
    collection_percentage = Column(Float, default=0)
    full_count = Column(Integer, default=0)
    full_percentage = Column(Float, default=0)
    correios_count = Column(Integer, default=0)
    correios_percentage = Column(Float, default=0)
    envio_proprio_count = Column(Integer, default=0)
    envio_proprio_percentage = Column(Float, default=0)
    has_full = Column(Boolean, default=False)

    # Reputation snapshot
    reputation_level = Column(String, nullable=True)  # Displayed level_id
    reputation_color = Column(String, default="gray")
    real_reputation_level = Column(String, nullable=True)
    protection_end_date = Column(DateTime, nullable=True)
    has_decola = Column(Boolean, default=False)
    claims_rate = Column(Float, default=0)
    claims_value = Column(Integer, default=0)
    delayed_handling_rate = Column(Float, default=0)
    delayed_handling_value = Column(Integer, default=0)
    cancellations_rate = Column(Float, default=0)
    cancellations_value = Column(Integer, default=0)
    decola_problems_count = Column(Integer, default=0)
    transactions_total = Column(Integer, default=0)
    positive_ratings_rate = Column(Float, nullable=True)
    is_mercado_lider = Column(Boolean, default=False)
    mercado_lider_level = Column(String, nullable=True)

    # Reputation recovery program
    has_recovery_benefit = Column(Boolean, default=False)
    recovery_program_type = Column(String, nullable=True)
    recovery_program_status = Column(String, nullable=True)

    # Product Ads (active campaigns only)
    ads_active_campaigns = Column(Integer, default=0)
    ads_total_spend = Column(Float, default=0)
    ads_total_revenue = Column(Float, default=0)
    ads_total_sales = Column(Integer, default=0)
    ads_roas = Column(Float, default=0)
    ads_acos = Column(Float, default=0)

    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    last_updated = Column(DateTime, default=utcnow)


class MLCampaign(Base):
    """Product Ads campaign with metrics for the ads lookback window"""
    __tablename__ = "mercado_livre_campaigns"
    __table_args__ = (
        UniqueConstraint("ml_account_id", "campaign_id", name="uq_ml_campaign_account_campaign"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), index=True, nullable=False)
    campaign_id = Column(BigInteger, index=True, nullable=False)

    name = Column(String)
    status = Column(String, index=True)  # active, paused, ...
    strategy = Column(String, nullable=True)
    daily_budget = Column(Float, nullable=True)

    impressions = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    total_spend = Column(Float, default=0)
    ad_revenue = Column(Float, default=0)
    advertised_sales = Column(Integer, default=0)

    synced_at = Column(DateTime, default=utcnow)


class MLProductAd(Base):
    """Per-listing Product Ads status"""
    __tablename__ = "mercado_livre_product_ads"
    __table_args__ = (
        UniqueConstraint("ml_account_id", "ml_item_id", name="uq_ml_product_ad_account_item"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), index=True, nullable=False)
    ml_item_id = Column(String, index=True, nullable=False)

    campaign_id = Column(BigInteger, nullable=True)
    status = Column(String, nullable=True)  # active, paused, not_advertised
    is_recommended = Column(Boolean, default=False)

    synced_at = Column(DateTime, default=utcnow)


class MLSellerRecovery(Base):
    """Reputation recovery (Decola) program status, one row per account"""
    __tablename__ = "mercado_livre_seller_recovery"

    id = Column(Integer, primary_key=True, index=True)
    ml_account_id = Column(Integer, ForeignKey("mercado_livre_accounts.id"), unique=True, index=True, nullable=False)

    program_type = Column(String, nullable=True)  # NEWBIE_GRNTEE, RECOVERY_GRNTEE
    status = Column(String, index=True)  # AVAILABLE, ACTIVE, FINISHED_BY_DATE, UNAVAILABLE, ...
    current_level = Column(String, nullable=True)
    init_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    start_level = Column(String, nullable=True)
    end_level = Column(String, nullable=True)
    warning = Column(Text, nullable=True)
    is_renewal = Column(Boolean, default=False)

    max_issues_allowed = Column(Integer, default=5)
    protection_days_limit = Column(Integer, default=365)
    orders_qty = Column(Integer, default=0)
    total_issues = Column(Integer, default=0)
    claims_qty = Column(Integer, default=0)
    cancel_qty = Column(Integer, default=0)
    delay_qty = Column(Integer, default=0)

    guarantee_price = Column(Float, nullable=True)
    guarantee_status = Column(String, nullable=True)  # ON, OFF

    last_checked_at = Column(DateTime, default=utcnow)


class MLWebhookLog(Base):
    """Inbound notification, keyed by (resource, topic) for re-deliveries"""
    __tablename__ = "mercado_livre_webhook_logs"
    __table_args__ = (
        UniqueConstraint("resource", "topic", name="uq_ml_webhook_resource_topic"),
    )

    id = Column(Integer, primary_key=True, index=True)
    topic = Column(String, index=True, nullable=False)  # orders_v2, items, ...
    resource = Column(String, index=True, nullable=False)  # /orders/2000001
    user_id = Column(BigInteger, index=True, nullable=True)
    application_id = Column(BigInteger, nullable=True)
    payload = Column(JSON)

    processed = Column(Boolean, default=False, index=True)
    attempts = Column(Integer, default=1)
    error = Column(Text, nullable=True)
    received_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)


class MLAutoSyncLog(Base):
    """One row per run of the all-accounts auto sync"""
    __tablename__ = "ml_auto_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    started_at = Column(DateTime, default=utcnow)
    finished_at = Column(DateTime, nullable=True)
    status = Column(String, default="running")  # running, completed, failed

    total_accounts = Column(Integer, default=0)
    successful_syncs = Column(Integer, default=0)
    failed_syncs = Column(Integer, default=0)
    tokens_renewed = Column(Integer, default=0)
    error_details = Column(JSON, nullable=True)  # [{account_id, nickname, error}]
