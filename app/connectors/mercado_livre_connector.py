"""
Mercado Livre API connector.

Thin async client over https://api.mercadolibre.com. Every method returns a
parsed payload from app.schemas.mercado_livre; HTTP failures are mapped onto
the app.exceptions taxonomy:

  - 404  -> ResourceNotFound (or None / [] where absence is a normal answer)
  - 429  -> RateLimited (retried)
  - 5xx, connection errors, timeouts -> UpstreamUnavailable (retried)
  - 400/401/403 on the OAuth endpoint -> AuthError
  - anything else non-2xx -> UpstreamError

Advertising endpoints need the "Api-Version: 2" header.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
import aiohttp

from app.config import Settings, get_settings
from app.connectors.base_connector import BaseConnector
from app.exceptions import (
    AuthError, RateLimited, ResourceNotFound, UpstreamError, UpstreamUnavailable,
)
from app.schemas.mercado_livre import (
    Advertiser, Campaign, FulfillmentStock, Item, ItemDescription, ItemSearchPage,
    Order, OrderSearchPage, ProductAdItem, SellerProfile, SellerRecoveryStatus,
    TokenGrant,
)
from app.utils.helpers import format_ml_datetime
from app.utils.logger import log

CAMPAIGN_METRICS = "clicks,prints,cost,direct_amount,indirect_amount,total_amount,direct_units_quantity,units_quantity"


class MercadoLivreConnector(BaseConnector):
    """Async client for the Mercado Livre REST API"""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings or get_settings()
        super().__init__(
            "MercadoLivre",
            max_attempts=self.settings.ml_retry_max_attempts,
            base_delay=self.settings.ml_retry_base_delay,
            max_delay=self.settings.ml_retry_max_delay,
        )
        self.base_url = self.settings.ml_api_base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.ml_request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        request_headers = {"Accept": "application/json"}
        if access_token:
            request_headers["Authorization"] = f"Bearer {access_token}"
        if headers:
            request_headers.update(headers)

        async def _do():
            session = self._get_session()
            try:
                async with session.request(
                    method,
                    f"{self.base_url}{path}",
                    params=params,
                    data=data,
                    headers=request_headers,
                ) as response:
                    if 200 <= response.status < 300:
                        return await response.json(content_type=None)

                    body = await response.text()
                    message = f"{method} {path} returned {response.status}: {body[:200]}"
                    if response.status == 404:
                        raise ResourceNotFound(message, status_code=404, path=path)
                    if response.status == 429:
                        raise RateLimited(message, status_code=429, path=path)
                    if response.status >= 500:
                        raise UpstreamUnavailable(message, status_code=response.status, path=path)
                    raise UpstreamError(message, status_code=response.status, path=path)
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                raise UpstreamUnavailable(f"{method} {path} failed: {e!r}", path=path) from e

        return await self._retry_operation(_do, operation_name=f"{method} {path}")

    async def _get(self, path: str, access_token: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self._request("GET", path, access_token=access_token, params=params, **kwargs)

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def _token_grant(self, form: Dict[str, str]) -> TokenGrant:
        form = {
            "client_id": self.settings.ml_app_id,
            "client_secret": self.settings.ml_secret_key,
            **form,
        }
        try:
            payload = await self._request(
                "POST",
                "/oauth/token",
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except UpstreamError as e:
            if e.status_code in (400, 401, 403):
                raise AuthError(f"Token grant rejected: {e}", status_code=e.status_code, path=e.path) from e
            raise
        return TokenGrant.model_validate(payload)

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new credential triple"""
        return await self._token_grant({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        """Exchange an OAuth authorization code for the first credential triple"""
        return await self._token_grant({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        })

    # ------------------------------------------------------------------
    # Seller
    # ------------------------------------------------------------------

    async def get_me(self, access_token: str) -> SellerProfile:
        payload = await self._get("/users/me", access_token)
        return SellerProfile.model_validate(payload)

    async def get_seller_recovery_status(self, access_token: str) -> Optional[SellerRecoveryStatus]:
        """Reputation recovery program status; None when the seller has no program"""
        try:
            payload = await self._get("/users/reputation/seller_recovery/status", access_token)
        except ResourceNotFound:
            return None
        return SellerRecoveryStatus.model_validate(payload)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def search_active_items(self, access_token: str, user_id: int, offset: int = 0, limit: int = 50) -> ItemSearchPage:
        payload = await self._get(
            f"/users/{user_id}/items/search",
            access_token,
            params={"status": "active", "offset": offset, "limit": limit},
        )
        return ItemSearchPage.model_validate(payload)

    async def get_item(self, access_token: str, item_id: str) -> Item:
        payload = await self._get(f"/items/{item_id}", access_token)
        return Item.model_validate(payload)

    async def get_item_description(self, access_token: str, item_id: str) -> Optional[ItemDescription]:
        try:
            payload = await self._get(f"/items/{item_id}/description", access_token)
        except ResourceNotFound:
            return None
        return ItemDescription.model_validate(payload)

    async def get_fulfillment_stock(self, access_token: str, inventory_id: str) -> FulfillmentStock:
        payload = await self._get(f"/inventories/{inventory_id}/stock/fulfillment", access_token)
        return FulfillmentStock.model_validate(payload)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def search_orders(
        self,
        access_token: str,
        seller_id: int,
        date_from: datetime,
        offset: int = 0,
        limit: int = 50,
    ) -> OrderSearchPage:
        payload = await self._get(
            "/orders/search",
            access_token,
            params={
                "seller": seller_id,
                "order.date_created.from": format_ml_datetime(date_from),
                "sort": "date_desc",
                "offset": offset,
                "limit": limit,
            },
        )
        return OrderSearchPage.model_validate(payload)

    async def get_order(self, access_token: str, order_id: str) -> Order:
        payload = await self._get(f"/orders/{order_id}", access_token)
        return Order.model_validate(payload)

    # ------------------------------------------------------------------
    # Product Ads
    # ------------------------------------------------------------------

    async def get_advertisers(self, access_token: str) -> List[Advertiser]:
        """Product Ads advertisers; empty when the seller never enabled ads"""
        try:
            payload = await self._get(
                "/advertising/advertisers",
                access_token,
                params={"product_id": "PADS"},
                headers={"Api-Version": "1"},
            )
        except ResourceNotFound:
            return []
        return [Advertiser.model_validate(a) for a in (payload or {}).get("advertisers", [])]

    async def get_campaigns(
        self,
        access_token: str,
        advertiser_id: int,
        date_from: datetime,
        date_to: datetime,
        max_pages: int = 10,
        limit: int = 50,
    ) -> List[Campaign]:
        campaigns: List[Campaign] = []
        offset = 0
        for _ in range(max_pages):
            payload = await self._get(
                f"/advertising/advertisers/{advertiser_id}/product_ads/campaigns",
                access_token,
                params={
                    "limit": limit,
                    "offset": offset,
                    "date_from": date_from.strftime("%Y-%m-%d"),
                    "date_to": date_to.strftime("%Y-%m-%d"),
                    "metrics": CAMPAIGN_METRICS,
                },
                headers={"Api-Version": "2"},
            )
            results = (payload or {}).get("results", [])
            campaigns.extend(Campaign.model_validate(c) for c in results)
            total = (payload or {}).get("paging", {}).get("total", 0)
            offset += limit
            if not results or offset >= total:
                break
        else:
            log.warning(f"Campaign listing for advertiser {advertiser_id} stopped at {max_pages} pages")
        return campaigns

    async def get_product_ad_item(self, access_token: str, item_id: str) -> Optional[ProductAdItem]:
        """Ad status for one listing; None when the listing is not advertised"""
        try:
            payload = await self._get(
                f"/advertising/product_ads/items/{item_id}",
                access_token,
                headers={"Api-Version": "2"},
            )
        except ResourceNotFound:
            return None
        item = ProductAdItem.model_validate(payload)
        if item.item_id is None:
            item.item_id = item_id
        return item
