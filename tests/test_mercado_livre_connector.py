"""
Mercado Livre connector tests against a local aiohttp server.

Guards against:
1. Rejected refresh grants surfacing as generic upstream errors
2. Transient 5xx/429 responses not being retried
3. 404s being retried or reported as errors where absence is a normal answer
"""
import asyncio
from datetime import datetime

from aiohttp import web
from aiohttp.test_utils import TestServer
import pytest

from app.connectors.mercado_livre_connector import MercadoLivreConnector
from app.exceptions import AuthError, RateLimited, ResourceNotFound, UpstreamError
from app.utils.retry import calculate_backoff, is_retryable_error

from tests.factories import make_item, make_profile, make_settings


def _run(coro):
    return asyncio.run(coro)


async def _with_connector(routes, scenario, **overrides):
    """Serve ``routes`` locally and run ``scenario(connector, hits)``"""
    hits = []

    @web.middleware
    async def record(request, handler):
        hits.append((request.method, request.path, request.headers.copy(), dict(request.query)))
        return await handler(request)

    app = web.Application(middlewares=[record])
    app.add_routes(routes)
    server = TestServer(app)
    await server.start_server()
    try:
        settings = make_settings(ml_api_base_url=str(server.make_url("/")).rstrip("/"), ml_app_id="app", ml_secret_key="secret", **overrides)
        async with MercadoLivreConnector(settings) as connector:
            return await scenario(connector, hits)
    finally:
        await server.close()


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

def test_refresh_token_grant():
    async def token(request):
        form = await request.post()
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "TG-old"
        assert form["client_id"] == "app"
        return web.json_response({"access_token": "APP_USR-1", "refresh_token": "TG-2", "expires_in": 21600, "user_id": 1})

    async def scenario(connector, hits):
        return await connector.refresh_access_token("TG-old")

    grant = _run(_with_connector([web.post("/oauth/token", token)], scenario))
    assert grant.access_token == "APP_USR-1"
    assert grant.expires_in == 21600


def test_rejected_grant_is_auth_error():
    async def token(request):
        return web.json_response({"error": "invalid_grant"}, status=400)

    async def scenario(connector, hits):
        with pytest.raises(AuthError) as exc:
            await connector.refresh_access_token("TG-old")
        return exc.value, hits

    error, hits = _run(_with_connector([web.post("/oauth/token", token)], scenario))
    assert error.status_code == 400
    assert len(hits) == 1


# ---------------------------------------------------------------------------
# Error mapping and retries
# ---------------------------------------------------------------------------

def test_server_errors_are_retried():
    calls = {"n": 0}

    async def me(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return web.Response(status=503, text="unavailable")
        return web.json_response(make_profile())

    async def scenario(connector, hits):
        profile = await connector.get_me("tok")
        return profile, connector.get_status()

    profile, status = _run(_with_connector([web.get("/users/me", me)], scenario))
    assert profile.nickname == "LOJA_TESTE"
    assert calls["n"] == 3
    assert status["retry_stats"]["retries"] == 2


def test_rate_limit_gives_up_after_max_attempts():
    async def me(request):
        return web.Response(status=429, text="slow down")

    async def scenario(connector, hits):
        with pytest.raises(RateLimited):
            await connector.get_me("tok")
        return hits

    hits = _run(_with_connector([web.get("/users/me", me)], scenario, ml_retry_max_attempts=2))
    assert len(hits) == 2


def test_client_error_is_not_retried():
    async def item(request):
        return web.Response(status=403, text="forbidden")

    async def scenario(connector, hits):
        with pytest.raises(UpstreamError) as exc:
            await connector.get_item("tok", "MLB1")
        return exc.value, hits

    error, hits = _run(_with_connector([web.get("/items/{item_id}", item)], scenario))
    assert error.status_code == 403
    assert not isinstance(error, ResourceNotFound)
    assert len(hits) == 1


def test_missing_item_is_resource_not_found():
    async def scenario(connector, hits):
        with pytest.raises(ResourceNotFound):
            await connector.get_item("tok", "MLB404")
        return hits

    hits = _run(_with_connector([], scenario))
    assert len(hits) == 1


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

def test_item_and_bearer_header():
    async def item(request):
        return web.json_response(make_item(request.match_info["item_id"], inventory_id="INV1"))

    async def scenario(connector, hits):
        return await connector.get_item("APP_USR-x", "MLB9"), hits

    item, hits = _run(_with_connector([web.get("/items/{item_id}", item)], scenario))
    assert item.id == "MLB9"
    assert item.shipping.mode == "me2"
    assert hits[0][2]["Authorization"] == "Bearer APP_USR-x"


def test_absent_optional_resources():
    async def scenario(connector, hits):
        return (
            await connector.get_item_description("tok", "MLB1"),
            await connector.get_seller_recovery_status("tok"),
            await connector.get_advertisers("tok"),
            await connector.get_product_ad_item("tok", "MLB1"),
        )

    assert _run(_with_connector([], scenario)) == (None, None, [], None)


def test_campaigns_are_paginated_with_api_version():
    async def campaigns(request):
        offset = int(request.query["offset"])
        results = [{"id": offset + n, "status": "active"} for n in range(2)] if offset < 4 else []
        return web.json_response({"results": results, "paging": {"total": 4}})

    async def scenario(connector, hits):
        found = await connector.get_campaigns("tok", 77, datetime(2026, 4, 1), datetime(2026, 5, 1), limit=2)
        return found, hits

    route = web.get("/advertising/advertisers/77/product_ads/campaigns", campaigns)
    found, hits = _run(_with_connector([route], scenario))
    assert [c.id for c in found] == [0, 1, 2, 3]
    assert len(hits) == 2
    assert hits[0][2]["Api-Version"] == "2"
    assert hits[0][3]["date_from"] == "2026-04-01"


def test_order_search_params():
    async def search(request):
        return web.json_response({"results": [], "paging": {"total": 0}})

    async def scenario(connector, hits):
        await connector.search_orders("tok", 123, datetime(2026, 4, 10, 12, 0), offset=50, limit=50)
        return hits

    hits = _run(_with_connector([web.get("/orders/search", search)], scenario))
    query = hits[0][3]
    assert query["seller"] == "123"
    assert query["order.date_created.from"] == "2026-04-10T12:00:00.000-00:00"
    assert query["offset"] == "50"


# ---------------------------------------------------------------------------
# Retry helpers
# ---------------------------------------------------------------------------

def test_backoff_is_capped():
    assert calculate_backoff(1, base_delay=1.0, jitter=False) == 1.0
    assert calculate_backoff(3, base_delay=1.0, jitter=False) == 4.0
    assert calculate_backoff(10, base_delay=1.0, max_delay=30.0, jitter=False) == 30.0


def test_retryable_classification():
    assert is_retryable_error(RateLimited("x", status_code=429))
    assert is_retryable_error(ConnectionError())
    assert not is_retryable_error(ResourceNotFound("x", status_code=404))
    assert not is_retryable_error(AuthError("x", status_code=401))
