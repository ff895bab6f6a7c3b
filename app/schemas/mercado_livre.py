"""
Typed views of Mercado Livre API payloads.

Every field is optional with a default so partial payloads parse cleanly;
unknown fields are ignored.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

class TokenGrant(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 21600
    user_id: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None


# ---------------------------------------------------------------------------
# Seller profile (/users/me)
# ---------------------------------------------------------------------------

class ExcludedMetric(BaseModel):
    """Values with protected (excluded) issues added back in."""
    real_rate: Optional[float] = None
    real_value: Optional[int] = None


class ReputationMetric(BaseModel):
    period: Optional[str] = None
    rate: Optional[float] = None
    value: Optional[int] = None
    excluded: Optional[ExcludedMetric] = None


class SalesMetric(BaseModel):
    period: Optional[str] = None
    completed: Optional[int] = None


class ReputationMetrics(BaseModel):
    sales: Optional[SalesMetric] = None
    claims: Optional[ReputationMetric] = None
    delayed_handling_time: Optional[ReputationMetric] = None
    cancellations: Optional[ReputationMetric] = None


class Ratings(BaseModel):
    positive: Optional[float] = None
    neutral: Optional[float] = None
    negative: Optional[float] = None


class Transactions(BaseModel):
    total: Optional[int] = None
    completed: Optional[int] = None
    canceled: Optional[int] = None
    period: Optional[str] = None
    ratings: Optional[Ratings] = None


class SellerReputation(BaseModel):
    level_id: Optional[str] = None
    power_seller_status: Optional[str] = None
    real_level: Optional[str] = None
    protection_end_date: Optional[str] = None
    transactions: Optional[Transactions] = None
    metrics: Optional[ReputationMetrics] = None


class SellerProfile(BaseModel):
    id: int
    nickname: Optional[str] = None
    site_id: Optional[str] = None
    permalink: Optional[str] = None
    email: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    seller_reputation: Optional[SellerReputation] = None


# ---------------------------------------------------------------------------
# Listings (/items/{id})
# ---------------------------------------------------------------------------

class AttributeValue(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class ItemAttribute(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    value_id: Optional[str] = None
    value_name: Optional[str] = None
    values: List[AttributeValue] = Field(default_factory=list)


class ItemPicture(BaseModel):
    id: Optional[str] = None
    url: Optional[str] = None
    secure_url: Optional[str] = None
    size: Optional[str] = None
    max_size: Optional[str] = None


class ItemShipping(BaseModel):
    mode: Optional[str] = None
    logistic_type: Optional[str] = None
    free_shipping: bool = False
    tags: List[str] = Field(default_factory=list)


class Item(BaseModel):
    id: str
    title: Optional[str] = None
    status: Optional[str] = None
    price: Optional[float] = None
    currency_id: Optional[str] = None
    available_quantity: int = 0
    sold_quantity: int = 0
    permalink: Optional[str] = None
    thumbnail: Optional[str] = None
    listing_type_id: Optional[str] = None
    category_id: Optional[str] = None
    condition: Optional[str] = None
    inventory_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    attributes: List[ItemAttribute] = Field(default_factory=list)
    sale_terms: List[ItemAttribute] = Field(default_factory=list)
    pictures: List[ItemPicture] = Field(default_factory=list)
    shipping: ItemShipping = Field(default_factory=ItemShipping)


class ItemDescription(BaseModel):
    plain_text: Optional[str] = None
    text: Optional[str] = None


class Paging(BaseModel):
    total: int = 0
    offset: int = 0
    limit: int = 0


class ItemSearchPage(BaseModel):
    results: List[str] = Field(default_factory=list)
    paging: Paging = Field(default_factory=Paging)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderBuyer(BaseModel):
    id: Optional[int] = None
    nickname: Optional[str] = None


class OrderShipping(BaseModel):
    id: Optional[int] = None
    shipping_mode: Optional[str] = None


class Order(BaseModel):
    id: int
    status: Optional[str] = None
    date_created: Optional[str] = None
    date_closed: Optional[str] = None
    total_amount: Optional[float] = None
    paid_amount: Optional[float] = None
    currency_id: Optional[str] = None
    buyer: Optional[OrderBuyer] = None
    shipping: Optional[OrderShipping] = None


class OrderSearchPage(BaseModel):
    results: List[Order] = Field(default_factory=list)
    paging: Paging = Field(default_factory=Paging)


# ---------------------------------------------------------------------------
# Fulfillment stock
# ---------------------------------------------------------------------------

class StockDetail(BaseModel):
    status: Optional[str] = None
    quantity: int = 0


class FulfillmentStock(BaseModel):
    inventory_id: Optional[str] = None
    available_quantity: int = 0
    not_available_quantity: int = 0
    total: int = 0
    not_available_detail: List[StockDetail] = Field(default_factory=list)

    def quantity_for(self, *statuses: str) -> int:
        return sum(d.quantity for d in self.not_available_detail if d.status in statuses)


# ---------------------------------------------------------------------------
# Product Ads
# ---------------------------------------------------------------------------

class Advertiser(BaseModel):
    advertiser_id: Optional[int] = None
    site_id: Optional[str] = None
    advertiser_name: Optional[str] = None
    account_name: Optional[str] = None


class CampaignMetrics(BaseModel):
    clicks: int = 0
    prints: int = 0
    cost: float = 0.0
    direct_amount: float = 0.0
    indirect_amount: float = 0.0
    total_amount: float = 0.0
    direct_units_quantity: int = 0
    units_quantity: int = 0


class Campaign(BaseModel):
    id: int
    name: Optional[str] = None
    status: Optional[str] = None
    strategy: Optional[str] = None
    budget: Optional[float] = None
    metrics: CampaignMetrics = Field(default_factory=CampaignMetrics)


class ProductAdItem(BaseModel):
    item_id: Optional[str] = None
    campaign_id: Optional[int] = None
    status: Optional[str] = None
    recommended: bool = False


# ---------------------------------------------------------------------------
# Seller recovery (Decola)
# ---------------------------------------------------------------------------

class ProtectionLimits(BaseModel):
    max_issues_allowed: int = 5
    protection_days_limit: int = 365


class ProtectionDetail(BaseModel):
    init_date: Optional[str] = None
    end_date: Optional[str] = None
    start_level: Optional[str] = None
    end_level: Optional[str] = None
    warning: Optional[str] = None
    is_renewal: bool = False
    orders: Optional[int] = None


class SalesDetail(BaseModel):
    orders_qty: Optional[int] = None
    total_issues: Optional[int] = None
    claims_qty: Optional[int] = None
    cancel_qty: Optional[int] = None
    delay_qty: Optional[int] = None


class SellerRecoveryStatus(BaseModel):
    type: Optional[str] = None
    status: Optional[str] = None
    current_level: Optional[str] = None
    protection_limits: ProtectionLimits = Field(default_factory=ProtectionLimits)
    protection_detail: Optional[ProtectionDetail] = None
    protection: Optional[ProtectionDetail] = None
    sales_detail: Optional[SalesDetail] = None
    guarantee_limits: Optional[Dict[str, Any]] = None

    @property
    def protection_info(self) -> ProtectionDetail:
        return self.protection_detail or self.protection or ProtectionDetail()
