"""
Listing, stock and order syncer tests.

Guards against:
1. One failing item aborting the whole listing sync
2. Pagination running past the configured caps without saying so
3. Paid orders being rewritten by later fetches
4. FULL stock being skipped or misclassified
"""
import asyncio
from datetime import timedelta

from app.exceptions import UpstreamError, UpstreamUnavailable
from app.models.mercado_livre import MLFullStock, MLOrder, MLProduct
from app.services.resource_syncers import (
    OrderSyncer,
    ProductSyncer,
    StockSyncer,
    UserInfoSyncer,
    classify_stock_status,
)

from tests.factories import NOW, clock, make_item, make_order, make_settings


def _run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

class TestProductSyncer:

    def test_syncs_listing_with_quality_and_shipping(self, db, connector, settings, account):
        connector.add_items(make_item(
            "MLB1",
            tags=("self_service_in",),
            attributes=[{"id": "GTIN", "value_name": "789"}],
        ))
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.listings.synced == 1
        listing = db.query(MLProduct).filter_by(ml_item_id="MLB1").one()
        assert listing.shipping_modes == ["me2"]
        assert listing.logistic_types == ["self_service"]
        assert listing.logistic_type == "self_service"
        assert listing.has_description
        assert listing.has_tax_data
        assert listing.photo_count == 5
        assert listing.health_level == "professional"
        assert listing.synced_at == NOW

    def test_failing_item_is_recorded_and_others_continue(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1"), make_item("MLB2"), make_item("MLB3"))
        connector.failing_items["MLB2"] = UpstreamError("boom", status_code=400)
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.listings.synced == 2
        assert result.listings.errors == 1
        assert result.listings.failed[0][0] == "MLB2"
        assert db.query(MLProduct).count() == 2

    def test_description_failure_degrades_to_no_description(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1"))
        connector.errors["get_item_description"] = UpstreamUnavailable("down", status_code=503)
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.listings.synced == 1
        assert db.query(MLProduct).one().has_description is False

    def test_listing_cap_truncates(self, db, connector, account):
        settings = make_settings(products_page_size=2, products_max_items=5)
        connector.add_items(*[make_item(f"MLB{n}") for n in range(7)])
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.listings.synced == 5
        assert result.listings.truncated
        assert connector.count("search_active_items") == 3

    def test_search_page_failure_stops_paging(self, db, connector, settings, account):
        connector.errors["search_active_items"] = UpstreamUnavailable("down", status_code=503)
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.listings.synced == 0
        assert result.listings.failed[0][0] == "page@0"

    def test_resync_updates_in_place(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1", price=100.0))
        syncer = ProductSyncer(db, connector, settings, clock)
        _run(syncer.sync(account, "tok"))
        connector.items["MLB1"]["price"] = 120.0
        _run(syncer.sync(account, "tok"))

        listings = db.query(MLProduct).all()
        assert len(listings) == 1
        assert listings[0].price == 120.0

    def test_listing_dropped_from_active_search_is_retired(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1"), make_item("MLB2"))
        syncer = ProductSyncer(db, connector, settings, clock)
        _run(syncer.sync(account, "tok"))

        connector.active_item_ids = ["MLB1"]
        _run(syncer.sync(account, "tok"))

        statuses = {p.ml_item_id: p.status for p in db.query(MLProduct).all()}
        assert statuses == {"MLB1": "active", "MLB2": "inactive"}

    def test_failed_search_page_keeps_stored_listings(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1"), make_item("MLB2"))
        syncer = ProductSyncer(db, connector, settings, clock)
        _run(syncer.sync(account, "tok"))

        connector.errors["search_active_items"] = UpstreamUnavailable("down", status_code=503)
        _run(syncer.sync(account, "tok"))

        assert {p.status for p in db.query(MLProduct).all()} == {"active"}

    def test_truncated_search_keeps_stored_listings(self, db, connector, account):
        connector.add_items(*[make_item(f"MLB{n}") for n in range(4)])
        _run(ProductSyncer(db, connector, make_settings(), clock).sync(account, "tok"))

        capped = make_settings(products_page_size=2, products_max_items=2)
        result = _run(ProductSyncer(db, connector, capped, clock).sync(account, "tok"))

        assert result.listings.truncated
        assert {p.status for p in db.query(MLProduct).all()} == {"active"}

    def test_full_item_triggers_stock_sync(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1", inventory_id="INV1"), make_item("MLB2"))
        connector.stock["INV1"] = {"available_quantity": 40, "not_available_detail": []}
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.stock.synced == 1
        assert connector.count("get_fulfillment_stock") == 1
        stock = db.query(MLFullStock).one()
        assert stock.ml_item_id == "MLB1"
        assert stock.stock_status == "good_quality"
        assert db.query(MLProduct).filter_by(ml_item_id="MLB1").one().logistic_type == "fulfillment"

    def test_stock_failure_does_not_fail_listing(self, db, connector, settings, account):
        connector.add_items(make_item("MLB1", inventory_id="INV-missing"))
        result = _run(ProductSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.listings.synced == 1
        assert result.stock.errors == 1


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------

def test_stock_status_rules():
    assert classify_stock_status(0, 0, 0) == "out_of_stock"
    assert classify_stock_status(100, 8, 3) == "low_quality"
    assert classify_stock_status(100, 5, 5) == "good_quality"


def test_stock_breakdown_by_status(db, connector, settings, account):
    connector.stock["INV9"] = {
        "available_quantity": 20,
        "not_available_detail": [
            {"status": "damaged", "quantity": 2},
            {"status": "lost", "quantity": 1},
            {"status": "transfer", "quantity": 7},
            {"status": "withdrawal", "quantity": 4},
        ],
    }
    result = _run(StockSyncer(db, connector, settings, clock).sync(account, "tok", "INV9", "MLB9"))

    assert result.synced == 1
    stock = db.query(MLFullStock).one()
    assert stock.available_units == 20
    assert stock.inbound_units == 7
    assert stock.reserved_units == 4
    assert stock.stock_status == "low_quality"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class TestOrderSyncer:

    def test_orders_are_upserted(self, db, connector, settings, account):
        connector.orders = [make_order(1), make_order(2, status="cancelled")]
        result = _run(OrderSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.synced == 2
        assert db.query(MLOrder).count() == 2
        date_from = connector.calls[0][3]
        assert date_from == NOW - timedelta(days=30)

    def test_record_cap_truncates(self, db, connector, account):
        settings = make_settings(orders_page_size=2, orders_max_records=3)
        connector.orders = [make_order(n) for n in range(1, 6)]
        result = _run(OrderSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.synced == 3
        assert result.truncated

    def test_page_cap_truncates(self, db, connector, account):
        settings = make_settings(orders_page_size=1, orders_max_pages=2)
        connector.orders = [make_order(n) for n in range(1, 5)]
        result = _run(OrderSyncer(db, connector, settings, clock).sync(account, "tok"))

        assert result.synced == 2
        assert result.truncated

    def test_paid_order_amounts_are_frozen(self, db, connector, settings, account):
        syncer = OrderSyncer(db, connector, settings, clock)
        connector.orders = [make_order(1, total=250.0)]
        _run(syncer.sync(account, "tok"))

        connector.orders = [make_order(1, total=999.0)]
        _run(syncer.sync(account, "tok"))

        order = db.query(MLOrder).one()
        assert order.total_amount == 250.0
        assert order.status == "paid"

    def test_paid_order_status_change_applies(self, db, connector, settings, account):
        syncer = OrderSyncer(db, connector, settings, clock)
        connector.orders = [make_order(1)]
        _run(syncer.sync(account, "tok"))
        connector.orders = [make_order(1, status="cancelled")]
        _run(syncer.sync(account, "tok"))

        assert db.query(MLOrder).one().status == "cancelled"

    def test_single_order_not_found_is_recorded(self, db, connector, settings, account):
        result = _run(OrderSyncer(db, connector, settings, clock).sync_order(account, "tok", "404"))
        assert result.errors == 1


# ---------------------------------------------------------------------------
# Seller profile
# ---------------------------------------------------------------------------

def test_profile_sync_updates_nickname(db, connector, settings, account):
    connector.profile["nickname"] = "LOJA_NOVA"
    profile = _run(UserInfoSyncer(db, connector, settings, clock).sync(account, "tok"))

    assert profile.id == account.ml_user_id
    assert account.ml_nickname == "LOJA_NOVA"
