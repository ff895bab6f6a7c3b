"""
Resource syncers: seller profile, listings, orders and FULL stock.

Each syncer fetches one resource family for one account, upserts it by
natural key and returns a BatchResult. A failure on one item or page is
recorded and the syncer carries on; nothing here aborts the run.

Fetch bounds (all configurable in Settings):
  - listings: pages of 50, at most 500 items
  - orders:   last 30 days, at most 1000 orders or 10 pages
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import PersistenceError
from app.models.mercado_livre import MLAccount
from app.schemas.mercado_livre import FulfillmentStock, Item, ItemDescription, Order, SellerProfile
from app.services.batch_result import BatchResult
from app.services.listing_quality import (
    estimate_item_health, has_low_quality_photos, has_meaningful_description,
    has_tax_data, min_photo_dimension,
)
from app.services.ml_store import MLStore
from app.services.shipping_classifier import (
    MODE_ME2, ShippingSignals, derive_logistic_types, infer_logistic_type,
)
from app.utils.helpers import parse_ml_datetime, utcnow
from app.utils.logger import log

STOCK_OUT_OF_STOCK = "out_of_stock"
STOCK_LOW_QUALITY = "low_quality"
STOCK_GOOD_QUALITY = "good_quality"


class _Syncer:
    """Shared wiring: store, connector, settings and an injectable clock"""

    def __init__(
        self,
        db: Session,
        connector,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.store = MLStore(db)
        self.connector = connector
        self.settings = settings or get_settings()
        self.clock = clock


# ---------------------------------------------------------------------------
# Seller profile
# ---------------------------------------------------------------------------

class UserInfoSyncer(_Syncer):
    """Fetches the seller profile (reputation, tags). Nothing is persisted."""

    async def sync(self, account: MLAccount, access_token: str) -> SellerProfile:
        profile = await self.connector.get_me(access_token)
        if profile.nickname and profile.nickname != account.ml_nickname:
            account.ml_nickname = profile.nickname
        return profile


# ---------------------------------------------------------------------------
# FULL stock
# ---------------------------------------------------------------------------

def classify_stock_status(available: int, damaged: int, lost: int) -> str:
    """out_of_stock at zero, low_quality when damaged+lost exceed 10% of available"""
    if available <= 0:
        return STOCK_OUT_OF_STOCK
    if (damaged + lost) > available * 0.10:
        return STOCK_LOW_QUALITY
    return STOCK_GOOD_QUALITY


def stock_values(stock: FulfillmentStock, item_id: Optional[str], now: datetime) -> Dict[str, Any]:
    available = stock.available_quantity
    damaged = stock.quantity_for("damaged")
    lost = stock.quantity_for("lost")
    return {
        "ml_item_id": item_id,
        "available_units": available,
        "reserved_units": stock.quantity_for("reserved", "withdrawal"),
        "inbound_units": stock.quantity_for("transfer", "inbound"),
        "damaged_units": damaged,
        "lost_units": lost,
        "stock_status": classify_stock_status(available, damaged, lost),
        "synced_at": now,
    }


class StockSyncer(_Syncer):
    """Fulfillment warehouse stock for FULL listings"""

    async def sync(self, account: MLAccount, access_token: str, inventory_id: str, item_id: Optional[str] = None) -> BatchResult:
        result = BatchResult("stock")
        try:
            stock = await self.connector.get_fulfillment_stock(access_token, inventory_id)
            record = self.store.upsert_stock(account, inventory_id, stock_values(stock, item_id, self.clock()))
            result.add_success(record)
        except Exception as e:
            log.warning(f"Stock sync failed for inventory {inventory_id} ({item_id}): {e}")
            result.add_failure(inventory_id, e)
        return result


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

@dataclass
class ProductSyncResult:
    listings: BatchResult = field(default_factory=lambda: BatchResult("products"))
    stock: BatchResult = field(default_factory=lambda: BatchResult("stock"))


def listing_values(item: Item, description: Optional[ItemDescription], settings: Settings, now: datetime) -> Dict[str, Any]:
    """Column values for an MLProduct row built from an item payload"""
    signals = ShippingSignals(
        mode=item.shipping.mode,
        logistic_type=item.shipping.logistic_type,
        inventory_id=item.inventory_id,
        tags=tuple(item.shipping.tags),
    )
    logistic_type = infer_logistic_type(signals)
    logistic_types = derive_logistic_types(signals)

    photo_count = len(item.pictures)
    low_quality = has_low_quality_photos(item, settings.low_quality_photo_min_px)
    described = has_meaningful_description(description, settings.description_min_chars)
    tax = has_tax_data(item)
    health = estimate_item_health(photo_count, low_quality, described, tax, item.status)

    return {
        "title": item.title,
        "status": item.status,
        "price": item.price or 0,
        "available_quantity": item.available_quantity,
        "sold_quantity": item.sold_quantity,
        "permalink": item.permalink,
        "thumbnail": item.thumbnail,
        "listing_type": item.listing_type_id,
        "category_id": item.category_id,
        "inventory_id": item.inventory_id,
        "shipping_mode": item.shipping.mode,
        "logistic_type": logistic_type,
        "shipping_modes": [item.shipping.mode] if item.shipping.mode else [],
        "logistic_types": logistic_types,
        "free_shipping": item.shipping.free_shipping,
        "has_description": described,
        "has_pictures": photo_count > 0,
        "has_tax_data": tax,
        "has_low_quality_photos": low_quality,
        "min_photo_dimension": min_photo_dimension(item),
        "photo_count": photo_count,
        "health_score": health.score,
        "health_level": health.level,
        "synced_at": now,
    }


class ProductSyncer(_Syncer):
    """Active listings with details, quality flags and shipping inference"""

    def __init__(self, *args, stock_syncer: Optional[StockSyncer] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.stock_syncer = stock_syncer or StockSyncer(self.db, self.connector, self.settings, self.clock)

    async def list_active_item_ids(self, account: MLAccount, access_token: str, result: BatchResult) -> List[str]:
        """Page through the active listing ids, stopping at the configured cap"""
        page_size = self.settings.products_page_size
        max_items = self.settings.products_max_items
        max_pages = -(-max_items // page_size)

        item_ids: List[str] = []
        offset = 0
        for _page in range(max_pages):
            try:
                page = await self.connector.search_active_items(access_token, account.ml_user_id, offset, page_size)
            except Exception as e:
                log.warning(f"Listing search page at offset {offset} failed for account {account.id}: {e}")
                result.add_failure(f"page@{offset}", e)
                break

            item_ids.extend(page.results)
            offset += page_size
            if not page.results or offset >= page.paging.total:
                break
        else:
            result.truncated = True

        if len(item_ids) > max_items:
            item_ids = item_ids[:max_items]
            result.truncated = True
        if result.truncated:
            log.warning(f"Account {account.id} has more active listings than the {max_items} cap")
        return item_ids

    async def _fetch_description(self, access_token: str, item_id: str) -> Optional[ItemDescription]:
        try:
            return await self.connector.get_item_description(access_token, item_id)
        except Exception as e:
            # Treated as "no description"; the listing itself still syncs
            log.debug(f"Description fetch failed for {item_id}: {e}")
            return None

    async def sync_item(self, account: MLAccount, access_token: str, item_id: str, result: Optional[ProductSyncResult] = None) -> ProductSyncResult:
        """Fetch, enrich and upsert a single listing; FULL items also refresh stock"""
        result = result or ProductSyncResult()
        try:
            item = await self.connector.get_item(access_token, item_id)
            description = await self._fetch_description(access_token, item_id)
            values = listing_values(item, description, self.settings, self.clock())
            listing = self.store.upsert_listing(account, item.id, values)
        except Exception as e:
            log.warning(f"Listing {item_id} failed for account {account.id}: {e}")
            result.listings.add_failure(item_id, e)
            return result

        result.listings.add_success(listing)

        if item.shipping.mode == MODE_ME2 and item.inventory_id:
            stock = await self.stock_syncer.sync(account, access_token, item.inventory_id, item.id)
            result.stock.merge(stock)
        return result

    async def sync(self, account: MLAccount, access_token: str) -> ProductSyncResult:
        result = ProductSyncResult()
        item_ids = await self.list_active_item_ids(account, access_token, result.listings)
        log.info(f"Syncing {len(item_ids)} active listings for account {account.id}")

        for index, item_id in enumerate(item_ids):
            if index and self.settings.item_request_delay_seconds:
                await asyncio.sleep(self.settings.item_request_delay_seconds)
            await self.sync_item(account, access_token, item_id, result)

        # Only a complete search proves a stored listing left the active set
        if not result.listings.truncated and not any(
            str(record_id).startswith("page@") for record_id, _ in result.listings.failed
        ):
            try:
                retired = self.store.retire_missing_listings(account, item_ids, self.clock())
            except PersistenceError as e:
                log.warning(f"Retiring stale listings failed for account {account.id}: {e}")
                result.listings.add_failure("retire", e)
            else:
                if retired:
                    log.info(f"Marked {retired} listings inactive for account {account.id}")

        log.info(
            f"Listings for account {account.id}: {result.listings.synced} synced, "
            f"{result.listings.errors} failed; stock {result.stock.synced}/{result.stock.errors}"
        )
        return result


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def order_values(order: Order, now: datetime) -> Dict[str, Any]:
    return {
        "status": order.status,
        "total_amount": order.total_amount,
        "paid_amount": order.paid_amount,
        "currency": order.currency_id or "BRL",
        "buyer_id": order.buyer.id if order.buyer else None,
        "buyer_nickname": order.buyer.nickname if order.buyer else None,
        "shipping_mode": order.shipping.shipping_mode if order.shipping else None,
        "date_created": parse_ml_datetime(order.date_created),
        "date_closed": parse_ml_datetime(order.date_closed),
        "synced_at": now,
    }


class OrderSyncer(_Syncer):
    """Orders created within the lookback window"""

    def _upsert(self, account: MLAccount, order: Order, result: BatchResult):
        try:
            record = self.store.upsert_order(account, order.id, order_values(order, self.clock()))
            result.add_success(record)
        except PersistenceError as e:
            log.warning(f"Order {order.id} failed to persist for account {account.id}: {e}")
            result.add_failure(order.id, e)

    async def sync(self, account: MLAccount, access_token: str) -> BatchResult:
        result = BatchResult("orders")
        date_from = self.clock() - timedelta(days=self.settings.orders_lookback_days)
        page_size = self.settings.orders_page_size
        max_records = self.settings.orders_max_records

        fetched = 0
        offset = 0
        for _page in range(self.settings.orders_max_pages):
            try:
                page = await self.connector.search_orders(
                    access_token, account.ml_user_id, date_from, offset, page_size
                )
            except Exception as e:
                log.warning(f"Order search page at offset {offset} failed for account {account.id}: {e}")
                result.add_failure(f"page@{offset}", e)
                break

            for order in page.results[: max_records - fetched]:
                self._upsert(account, order, result)
            fetched += len(page.results)
            offset += page_size

            if fetched >= max_records:
                result.truncated = fetched > max_records or offset < page.paging.total
                break
            if not page.results or offset >= page.paging.total:
                break
        else:
            result.truncated = True

        if result.truncated:
            log.warning(f"Order sync for account {account.id} hit the fetch cap")
        log.info(f"Orders for account {account.id}: {result.synced} synced, {result.errors} failed")
        return result

    async def sync_order(self, account: MLAccount, access_token: str, order_id: str) -> BatchResult:
        """Fetch and upsert one order (webhook path)"""
        result = BatchResult("orders")
        try:
            order = await self.connector.get_order(access_token, order_id)
        except Exception as e:
            log.warning(f"Order {order_id} fetch failed for account {account.id}: {e}")
            result.add_failure(order_id, e)
            return result
        self._upsert(account, order, result)
        return result
