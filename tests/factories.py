"""
Test doubles and payload builders for the sync pipeline.

FakeMLConnector mirrors MercadoLivreConnector's async surface, serving canned
payloads through the real pydantic schemas so parsing is exercised too.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.config import Settings
from app.exceptions import AuthError, ResourceNotFound, UpstreamUnavailable
from app.models.mercado_livre import MLAccount
from app.schemas.mercado_livre import (
    Advertiser, Campaign, FulfillmentStock, Item, ItemDescription, ItemSearchPage,
    Order, OrderSearchPage, ProductAdItem, SellerProfile, SellerRecoveryStatus,
    TokenGrant,
)

NOW = datetime(2026, 5, 10, 12, 0, 0)
USER_ID = 123456789


def clock():
    return NOW


def make_settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        database_url="sqlite:///:memory:",
        log_to_file=False,
        item_request_delay_seconds=0,
        ads_item_delay_seconds=0,
        ml_retry_base_delay=0,
        auto_sync_delay_between_accounts=0,
        auto_sync_circuit_breaker_pause=0,
        enable_scheduler=False,
    )
    values.update(overrides)
    return Settings(**values)


def make_account(db, **overrides) -> MLAccount:
    values = dict(
        ml_user_id=USER_ID,
        ml_nickname="LOJA_TESTE",
        access_token="APP_USR-valid",
        refresh_token="TG-refresh",
        token_expires_at=NOW + timedelta(hours=5),
        is_active=True,
    )
    values.update(overrides)
    account = MLAccount(**values)
    db.add(account)
    db.commit()
    return account


def make_item(
    item_id: str,
    mode: Optional[str] = "me2",
    logistic_type: Optional[str] = None,
    tags: tuple = (),
    inventory_id: Optional[str] = None,
    pictures: int = 5,
    picture_size: str = "1200x1200",
    status: str = "active",
    attributes: Optional[List[Dict[str, Any]]] = None,
    price: float = 100.0,
) -> Dict[str, Any]:
    return {
        "id": item_id,
        "title": f"Produto {item_id}",
        "status": status,
        "price": price,
        "available_quantity": 10,
        "sold_quantity": 3,
        "permalink": f"https://produto.mercadolivre.com.br/{item_id}",
        "listing_type_id": "gold_special",
        "category_id": "MLB1234",
        "inventory_id": inventory_id,
        "attributes": attributes or [],
        "pictures": [
            {"id": f"{item_id}-{n}", "max_size": picture_size} for n in range(pictures)
        ],
        "shipping": {
            "mode": mode,
            "logistic_type": logistic_type,
            "tags": list(tags),
            "free_shipping": True,
        },
    }


def make_order(order_id: int, status: str = "paid", total: float = 250.0,
               created: Optional[datetime] = None) -> Dict[str, Any]:
    created = created or NOW - timedelta(days=2)
    return {
        "id": order_id,
        "status": status,
        "date_created": created.strftime("%Y-%m-%dT%H:%M:%S.000-00:00"),
        "total_amount": total,
        "paid_amount": total,
        "currency_id": "BRL",
        "buyer": {"id": 555, "nickname": "COMPRADOR"},
    }


def make_profile(
    level_id: Optional[str] = "5_green",
    real_level: Optional[str] = None,
    protection_end_date: Optional[str] = None,
    power_seller_status: Optional[str] = None,
    claims=(0.01, 2, 0.0, 0),
    delayed=(0.02, 3, 0.0, 0),
    cancellations=(0.005, 1, 0.0, 0),
    tags: tuple = ("normal",),
) -> Dict[str, Any]:
    def metric(rate, value, real_rate, real_value):
        return {
            "rate": rate,
            "value": value,
            "excluded": {"real_rate": real_rate, "real_value": real_value},
        }

    return {
        "id": USER_ID,
        "nickname": "LOJA_TESTE",
        "site_id": "MLB",
        "tags": list(tags),
        "seller_reputation": {
            "level_id": level_id,
            "power_seller_status": power_seller_status,
            "real_level": real_level,
            "protection_end_date": protection_end_date,
            "transactions": {"total": 120, "ratings": {"positive": 0.97}},
            "metrics": {
                "claims": metric(*claims),
                "delayed_handling_time": metric(*delayed),
                "cancellations": metric(*cancellations),
            },
        },
    }


class FakeMLConnector:
    """In-memory stand-in for MercadoLivreConnector"""

    def __init__(self):
        self.profile: Dict[str, Any] = make_profile()
        self.items: Dict[str, Dict[str, Any]] = {}
        self.descriptions: Dict[str, str] = {}
        self.active_item_ids: Optional[List[str]] = None
        self.search_total: Optional[int] = None
        self.orders: List[Dict[str, Any]] = []
        self.order_total: Optional[int] = None
        self.stock: Dict[str, Dict[str, Any]] = {}
        self.advertisers: List[Dict[str, Any]] = []
        self.campaigns: List[Dict[str, Any]] = []
        self.product_ads: Dict[str, Dict[str, Any]] = {}
        self.recovery: Optional[Dict[str, Any]] = None

        self.refresh_grant = {"access_token": "APP_USR-new", "refresh_token": "TG-new", "expires_in": 21600}
        self.refresh_error: Optional[Exception] = None
        self.failing_items: Dict[str, Exception] = {}
        self.errors: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[tuple] = []

    async def _call(self, name: str, *args):
        self.calls.append((name,) + args)
        if name in self.delays:
            import asyncio
            await asyncio.sleep(self.delays[name])
        if name in self.errors:
            raise self.errors[name]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def add_items(self, *items: Dict[str, Any], description: str = "x" * 80):
        for item in items:
            self.items[item["id"]] = item
            self.descriptions[item["id"]] = description

    # OAuth -------------------------------------------------------------

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        await self._call("refresh_access_token", refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return TokenGrant.model_validate(self.refresh_grant)

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        await self._call("exchange_code", code, redirect_uri)
        if code == "bad":
            raise AuthError("invalid_grant", status_code=400)
        return TokenGrant.model_validate(self.refresh_grant)

    # Seller ------------------------------------------------------------

    async def get_me(self, access_token: str) -> SellerProfile:
        await self._call("get_me", access_token)
        return SellerProfile.model_validate(self.profile)

    async def get_seller_recovery_status(self, access_token: str) -> Optional[SellerRecoveryStatus]:
        await self._call("get_seller_recovery_status")
        if self.recovery is None:
            return None
        return SellerRecoveryStatus.model_validate(self.recovery)

    # Listings ----------------------------------------------------------

    async def search_active_items(self, access_token: str, user_id: int, offset: int = 0, limit: int = 50) -> ItemSearchPage:
        await self._call("search_active_items", offset, limit)
        ids = self.active_item_ids if self.active_item_ids is not None else list(self.items)
        total = self.search_total if self.search_total is not None else len(ids)
        return ItemSearchPage.model_validate({
            "results": ids[offset:offset + limit],
            "paging": {"total": total, "offset": offset, "limit": limit},
        })

    async def get_item(self, access_token: str, item_id: str) -> Item:
        await self._call("get_item", item_id)
        if item_id in self.failing_items:
            raise self.failing_items[item_id]
        if item_id not in self.items:
            raise ResourceNotFound(f"item {item_id} not found", status_code=404)
        return Item.model_validate(self.items[item_id])

    async def get_item_description(self, access_token: str, item_id: str) -> Optional[ItemDescription]:
        await self._call("get_item_description", item_id)
        text = self.descriptions.get(item_id)
        return ItemDescription(plain_text=text) if text is not None else None

    async def get_fulfillment_stock(self, access_token: str, inventory_id: str) -> FulfillmentStock:
        await self._call("get_fulfillment_stock", inventory_id)
        if inventory_id not in self.stock:
            raise UpstreamUnavailable(f"stock {inventory_id} unavailable", status_code=503)
        return FulfillmentStock.model_validate(self.stock[inventory_id])

    # Orders ------------------------------------------------------------

    async def search_orders(self, access_token: str, seller_id: int, date_from: datetime,
                            offset: int = 0, limit: int = 50) -> OrderSearchPage:
        await self._call("search_orders", offset, limit, date_from)
        total = self.order_total if self.order_total is not None else len(self.orders)
        return OrderSearchPage.model_validate({
            "results": self.orders[offset:offset + limit],
            "paging": {"total": total, "offset": offset, "limit": limit},
        })

    async def get_order(self, access_token: str, order_id: str) -> Order:
        await self._call("get_order", order_id)
        for order in self.orders:
            if str(order["id"]) == str(order_id):
                return Order.model_validate(order)
        raise ResourceNotFound(f"order {order_id} not found", status_code=404)

    # Product Ads -------------------------------------------------------

    async def get_advertisers(self, access_token: str) -> List[Advertiser]:
        await self._call("get_advertisers")
        return [Advertiser.model_validate(a) for a in self.advertisers]

    async def get_campaigns(self, access_token: str, advertiser_id: int, date_from: datetime,
                            date_to: datetime, max_pages: int = 10, limit: int = 50) -> List[Campaign]:
        await self._call("get_campaigns", advertiser_id)
        return [Campaign.model_validate(c) for c in self.campaigns]

    async def get_product_ad_item(self, access_token: str, item_id: str) -> Optional[ProductAdItem]:
        await self._call("get_product_ad_item", item_id)
        payload = self.product_ads.get(item_id)
        return ProductAdItem.model_validate(payload) if payload else None
