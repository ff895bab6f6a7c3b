"""
Metrics derivation for a seller account.

Everything in this module except the store helpers at the bottom is pure.
compute() returns an immutable MetricsSnapshot; ad and recovery figures are
folded in with dataclasses.replace and the result is written once per cycle,
overwriting the previous row.

Decola (reputation protection) changes which numbers are shown: while it is
active the marketplace hides protected issues from the displayed rates, so
the snapshot reports the real_* values instead.
"""
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.models.mercado_livre import MLAccount, MLMetrics
from app.schemas.mercado_livre import ReputationMetric, SellerProfile
from app.services.ml_store import MLStore
from app.services.shipping_classifier import CATEGORY_KEYS, get_all_shipping_types
from app.utils.helpers import parse_ml_datetime, safe_divide

ACTIVE_CAMPAIGN_STATUSES = ("active", "enabled")
MERCADO_LIDER_TAGS = ("mercado_lider", "mercadolider")


# ---------------------------------------------------------------------------
# Shipping mix
# ---------------------------------------------------------------------------

def calculate_shipping_stats(listings: Iterable) -> Dict[str, Any]:
    """
    Count and percentage of active listings per shipping category.

    {"flex": {"count": 3, "percentage": 30.0}, ..., "total": 10}
    Categories overlap, so percentages are independent of each other.
    """
    active = [listing for listing in listings if getattr(listing, "status", None) == "active"]
    total = len(active)

    counts = {key: 0 for key in CATEGORY_KEYS.values()}
    for listing in active:
        for label in get_all_shipping_types(listing):
            key = CATEGORY_KEYS.get(label)
            if key:
                counts[key] += 1

    stats: Dict[str, Any] = {
        key: {"count": count, "percentage": round(safe_divide(count * 100, total), 2)}
        for key, count in counts.items()
    }
    stats["total"] = total
    return stats


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SalesMetrics:
    total_sales: int = 0
    total_revenue: float = 0.0
    average_ticket: float = 0.0


def calculate_sales_metrics(orders: Iterable, since: Optional[datetime] = None) -> SalesMetrics:
    """Paid orders only; revenue uses total_amount, falling back to paid_amount"""
    paid = [
        o for o in orders
        if o.status == "paid" and (since is None or (o.date_created is not None and o.date_created >= since))
    ]
    revenue = 0.0
    for order in paid:
        amount = order.total_amount if order.total_amount is not None else order.paid_amount
        revenue += float(amount or 0)
    return SalesMetrics(
        total_sales=len(paid),
        total_revenue=round(revenue, 2),
        average_ticket=round(safe_divide(revenue, len(paid)), 2),
    )


# ---------------------------------------------------------------------------
# Reputation
# ---------------------------------------------------------------------------

def reputation_color(level_id: Optional[str]) -> str:
    """Map a level_id such as "5_green" or "3_yellow" onto a display color"""
    if not level_id:
        return "gray"
    level = level_id.lower()
    if level.startswith("5") and "green" in level:
        return "dark_green"
    if "green" in level:
        return "light_green"
    for color in ("yellow", "orange", "red"):
        if color in level:
            return color
    return "gray"


def is_decola_active(real_level: Optional[str], protection_end_date: Optional[datetime], now: datetime) -> bool:
    return bool(real_level) and protection_end_date is not None and protection_end_date > now


def _metric_pair(metric: Optional[ReputationMetric], use_real: bool):
    if metric is None:
        return 0.0, 0
    if use_real and metric.excluded is not None:
        return float(metric.excluded.real_rate or 0), int(metric.excluded.real_value or 0)
    return float(metric.rate or 0), int(metric.value or 0)


@dataclass(frozen=True)
class ReputationSnapshot:
    reputation_level: Optional[str] = None
    reputation_color: str = "gray"
    real_reputation_level: Optional[str] = None
    protection_end_date: Optional[datetime] = None
    has_decola: bool = False
    claims_rate: float = 0.0
    claims_value: int = 0
    delayed_handling_rate: float = 0.0
    delayed_handling_value: int = 0
    cancellations_rate: float = 0.0
    cancellations_value: int = 0
    decola_problems_count: int = 0
    transactions_total: int = 0
    positive_ratings_rate: Optional[float] = None
    is_mercado_lider: bool = False
    mercado_lider_level: Optional[str] = None


def mercado_lider_status(profile: SellerProfile):
    reputation = profile.seller_reputation
    power_status = reputation.power_seller_status if reputation else None
    tagged = any(tag in MERCADO_LIDER_TAGS for tag in profile.tags)
    return bool(power_status) or tagged, power_status


def build_reputation(profile: Optional[SellerProfile], now: datetime) -> ReputationSnapshot:
    """Reputation snapshot from a seller profile; defaults when unavailable"""
    if profile is None or profile.seller_reputation is None:
        return ReputationSnapshot()

    rep = profile.seller_reputation
    protection_end = parse_ml_datetime(rep.protection_end_date)
    decola = is_decola_active(rep.real_level, protection_end, now)

    metrics = rep.metrics
    claims = _metric_pair(metrics.claims if metrics else None, decola)
    delayed = _metric_pair(metrics.delayed_handling_time if metrics else None, decola)
    cancellations = _metric_pair(metrics.cancellations if metrics else None, decola)

    transactions = rep.transactions
    lider, lider_level = mercado_lider_status(profile)

    return ReputationSnapshot(
        reputation_level=rep.level_id,
        reputation_color=reputation_color(rep.level_id),
        real_reputation_level=rep.real_level,
        protection_end_date=protection_end,
        has_decola=decola,
        claims_rate=claims[0],
        claims_value=claims[1],
        delayed_handling_rate=delayed[0],
        delayed_handling_value=delayed[1],
        cancellations_rate=cancellations[0],
        cancellations_value=cancellations[1],
        # Only meaningful under protection; zero otherwise
        decola_problems_count=(claims[1] + delayed[1] + cancellations[1]) if decola else 0,
        transactions_total=(transactions.total or 0) if transactions else 0,
        positive_ratings_rate=(
            transactions.ratings.positive if transactions and transactions.ratings else None
        ),
        is_mercado_lider=lider,
        mercado_lider_level=lider_level,
    )


def reputation_from_row(row: Optional[MLMetrics]) -> ReputationSnapshot:
    """Previously stored reputation, used when the profile can't be fetched"""
    if row is None:
        return ReputationSnapshot()
    return ReputationSnapshot(**{
        name: getattr(row, name)
        for name in ReputationSnapshot.__dataclass_fields__
        if getattr(row, name) is not None
    })


# ---------------------------------------------------------------------------
# Product Ads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdsMetrics:
    active_campaigns: int = 0
    total_spend: float = 0.0
    total_revenue: float = 0.0
    total_sales: int = 0
    impressions: int = 0
    clicks: int = 0
    roas: float = 0.0
    acos: float = 0.0
    ctr: float = 0.0


def calculate_ads_metrics(campaigns: Iterable) -> AdsMetrics:
    """Totals across active/enabled campaigns"""
    active = [c for c in campaigns if (c.status or "").lower() in ACTIVE_CAMPAIGN_STATUSES]
    spend = sum(float(c.total_spend or 0) for c in active)
    revenue = sum(float(c.ad_revenue or 0) for c in active)
    impressions = sum(int(c.impressions or 0) for c in active)
    clicks = sum(int(c.clicks or 0) for c in active)
    return AdsMetrics(
        active_campaigns=len(active),
        total_spend=round(spend, 2),
        total_revenue=round(revenue, 2),
        total_sales=sum(int(c.advertised_sales or 0) for c in active),
        impressions=impressions,
        clicks=clicks,
        roas=round(safe_divide(revenue, spend), 2),
        acos=round(safe_divide(spend * 100, revenue), 2),
        ctr=round(safe_divide(clicks * 100, impressions), 2),
    )


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricsSnapshot:
    period_start: datetime
    period_end: datetime
    sales: SalesMetrics = field(default_factory=SalesMetrics)
    active_listings: int = 0
    paused_listings: int = 0
    total_listings: int = 0
    shipping: Dict[str, Any] = field(default_factory=dict)
    reputation: ReputationSnapshot = field(default_factory=ReputationSnapshot)
    ads: AdsMetrics = field(default_factory=AdsMetrics)
    has_recovery_benefit: bool = False
    recovery_program_type: Optional[str] = None
    recovery_program_status: Optional[str] = None

    @property
    def has_full(self) -> bool:
        return self.shipping.get("full", {}).get("count", 0) > 0

    def to_record(self) -> Dict[str, Any]:
        """Column values for the MLMetrics row"""
        record: Dict[str, Any] = {
            **asdict(self.sales),
            **asdict(self.reputation),
            "active_listings": self.active_listings,
            "paused_listings": self.paused_listings,
            "total_listings": self.total_listings,
            "shipping_total": self.shipping.get("total", 0),
            "has_full": self.has_full,
            "has_recovery_benefit": self.has_recovery_benefit,
            "recovery_program_type": self.recovery_program_type,
            "recovery_program_status": self.recovery_program_status,
            "ads_active_campaigns": self.ads.active_campaigns,
            "ads_total_spend": self.ads.total_spend,
            "ads_total_revenue": self.ads.total_revenue,
            "ads_total_sales": self.ads.total_sales,
            "ads_roas": self.ads.roas,
            "ads_acos": self.ads.acos,
            "period_start": self.period_start,
            "period_end": self.period_end,
            "last_updated": self.period_end,
        }
        for key in CATEGORY_KEYS.values():
            category = self.shipping.get(key, {"count": 0, "percentage": 0.0})
            record[f"{key}_count"] = category["count"]
            record[f"{key}_percentage"] = category["percentage"]
        return record


class MetricsAggregator:
    """Builds and stores the per-account MetricsSnapshot"""

    def __init__(self, lookback_days: int = 30):
        self.lookback_days = lookback_days

    def compute(
        self,
        profile: Optional[SellerProfile],
        listings: List,
        orders: List,
        now: datetime,
        reputation: Optional[ReputationSnapshot] = None,
    ) -> MetricsSnapshot:
        """
        Pure derivation from synced data.

        Args:
            profile: seller profile, None when it could not be fetched
            listings: every stored listing of the account
            orders: stored orders; only paid ones inside the window count
            now: cycle timestamp, also the window end
            reputation: explicit reputation to use when profile is None
        """
        since = now - timedelta(days=self.lookback_days)
        if reputation is None or profile is not None:
            reputation = build_reputation(profile, now)
        return MetricsSnapshot(
            period_start=since,
            period_end=now,
            sales=calculate_sales_metrics(orders, since),
            active_listings=sum(1 for listing in listings if listing.status == "active"),
            paused_listings=sum(1 for listing in listings if listing.status == "paused"),
            total_listings=len(listings),
            shipping=calculate_shipping_stats(listings),
            reputation=reputation,
        )

    @staticmethod
    def with_ads(snapshot: MetricsSnapshot, campaigns: Iterable) -> MetricsSnapshot:
        return replace(snapshot, ads=calculate_ads_metrics(campaigns))

    @staticmethod
    def with_recovery(snapshot: MetricsSnapshot, program_type: Optional[str], status: Optional[str]) -> MetricsSnapshot:
        return replace(
            snapshot,
            has_recovery_benefit=status == "ACTIVE",
            recovery_program_type=program_type,
            recovery_program_status=status,
        )

    def compute_from_store(
        self,
        store: MLStore,
        account: MLAccount,
        profile: Optional[SellerProfile],
        now: datetime,
    ) -> MetricsSnapshot:
        """Snapshot from everything currently stored for the account"""
        since = now - timedelta(days=self.lookback_days)
        fallback = None if profile is not None else reputation_from_row(store.get_metrics(account))
        snapshot = self.compute(
            profile,
            store.list_listings(account),
            store.list_orders_since(account, since),
            now,
            reputation=fallback,
        )
        snapshot = self.with_ads(snapshot, store.list_campaigns(account))
        recovery = store.get_seller_recovery(account)
        if recovery is not None:
            snapshot = self.with_recovery(snapshot, recovery.program_type, recovery.status)
        return snapshot

    @staticmethod
    def save(store: MLStore, account: MLAccount, snapshot: MetricsSnapshot) -> MLMetrics:
        return store.save_metrics(account, snapshot.to_record())
