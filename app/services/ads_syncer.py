"""
Product Ads sync.

Only sellers who enabled Product Ads have an advertiser id. Everyone else
gets OptionalFeatureUnavailable from resolve_advertiser(), which the
orchestrator turns into has_product_ads_enabled=False instead of an error.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import OptionalFeatureUnavailable
from app.models.mercado_livre import MLAccount
from app.services.batch_result import BatchResult
from app.services.ml_store import MLStore
from app.utils.helpers import calculate_date_range, utcnow
from app.utils.logger import log


@dataclass
class AdsSyncResult:
    advertiser_id: Optional[int] = None
    campaigns: BatchResult = field(default_factory=lambda: BatchResult("ads_campaigns"))
    items: BatchResult = field(default_factory=lambda: BatchResult("ads_items"))


class AdsSyncer:
    """Advertiser lookup, campaign metrics and per-listing ad status"""

    def __init__(
        self,
        db: Session,
        connector,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = MLStore(db)
        self.connector = connector
        self.settings = settings or get_settings()
        self.clock = clock

    async def resolve_advertiser(self, account: MLAccount, access_token: str) -> int:
        """Cached advertiser id, or look it up (preferring the account's site)"""
        if account.advertiser_id:
            return account.advertiser_id

        advertisers = [a for a in await self.connector.get_advertisers(access_token) if a.advertiser_id]
        if not advertisers:
            raise OptionalFeatureUnavailable("product_ads", "seller has no Product Ads advertiser")

        site = account.site_id or self.settings.ml_site_id
        chosen = next((a for a in advertisers if a.site_id == site), advertisers[0])
        self.store.set_feature_flags(account, advertiser_id=chosen.advertiser_id, has_product_ads_enabled=True)
        log.info(f"Account {account.id} advertiser resolved: {chosen.advertiser_id} ({chosen.site_id})")
        return chosen.advertiser_id

    async def sync_campaigns(self, account: MLAccount, access_token: str, advertiser_id: int, result: BatchResult):
        date_from, date_to = calculate_date_range(self.settings.ads_lookback_days, self.clock())
        try:
            campaigns = await self.connector.get_campaigns(access_token, advertiser_id, date_from, date_to)
        except Exception as e:
            log.warning(f"Campaign listing failed for account {account.id}: {e}")
            result.add_failure(f"advertiser:{advertiser_id}", e)
            return

        for campaign in campaigns:
            m = campaign.metrics
            try:
                record = self.store.upsert_campaign(account, campaign.id, {
                    "name": campaign.name,
                    "status": campaign.status,
                    "strategy": campaign.strategy,
                    "daily_budget": campaign.budget,
                    "impressions": m.prints,
                    "clicks": m.clicks,
                    "total_spend": m.cost,
                    "ad_revenue": m.total_amount or m.direct_amount,
                    "advertised_sales": m.units_quantity or m.direct_units_quantity,
                    "synced_at": self.clock(),
                })
                result.add_success(record)
            except Exception as e:
                result.add_failure(campaign.id, e)

    async def sync_item_status(self, account: MLAccount, access_token: str, result: BatchResult):
        """Ad status for active listings, one request at a time"""
        listings = self.store.list_active_listings(account, limit=self.settings.ads_max_items)
        for index, listing in enumerate(listings):
            if index and self.settings.ads_item_delay_seconds:
                await asyncio.sleep(self.settings.ads_item_delay_seconds)
            try:
                ad = await self.connector.get_product_ad_item(access_token, listing.ml_item_id)
                values = {
                    "campaign_id": ad.campaign_id if ad else None,
                    "status": (ad.status if ad else None) or "not_advertised",
                    "is_recommended": bool(ad and ad.recommended),
                    "synced_at": self.clock(),
                }
                result.add_success(self.store.upsert_product_ad(account, listing.ml_item_id, values))
            except Exception as e:
                result.add_failure(listing.ml_item_id, e)

    async def sync(self, account: MLAccount, access_token: str) -> AdsSyncResult:
        """
        Raises:
            OptionalFeatureUnavailable: the seller is not enrolled in Product Ads
        """
        result = AdsSyncResult()
        result.advertiser_id = await self.resolve_advertiser(account, access_token)
        await self.sync_campaigns(account, access_token, result.advertiser_id, result.campaigns)
        await self.sync_item_status(account, access_token, result.items)
        log.info(
            f"Product Ads for account {account.id}: {result.campaigns.synced} campaigns, "
            f"{result.items.synced} items ({result.campaigns.errors + result.items.errors} errors)"
        )
        return result
