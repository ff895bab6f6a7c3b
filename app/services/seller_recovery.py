"""
Reputation recovery program (Decola) status.

A 404 from the status endpoint just means the seller has no program; it is
stored as UNAVAILABLE rather than reported as an error.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.models.mercado_livre import MLAccount
from app.schemas.mercado_livre import SellerRecoveryStatus
from app.services.metrics_aggregator import MetricsSnapshot
from app.services.ml_store import MLStore
from app.utils.helpers import parse_ml_datetime, to_float, utcnow
from app.utils.logger import log

STATUS_UNAVAILABLE = "UNAVAILABLE"
STATUS_ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class RecoveryCheck:
    has_program: bool
    program_type: Optional[str] = None
    status: Optional[str] = None
    current_level: Optional[str] = None


def recovery_values(status: SellerRecoveryStatus, snapshot: Optional[MetricsSnapshot], now: datetime) -> dict:
    """Row values; issue counts come from the snapshot while Decola is active"""
    protection = status.protection_info
    sales = status.sales_detail
    reputation = snapshot.reputation if snapshot else None

    if reputation is not None and reputation.has_decola:
        claims = reputation.claims_value
        cancels = reputation.cancellations_value
        delays = reputation.delayed_handling_value
        orders = snapshot.sales.total_sales
    else:
        claims = (sales.claims_qty if sales else None) or 0
        cancels = (sales.cancel_qty if sales else None) or 0
        delays = (sales.delay_qty if sales else None) or 0
        orders = (sales.orders_qty if sales else None) or protection.orders or 0

    total_issues = (sales.total_issues if sales and sales.total_issues is not None else claims + cancels + delays)
    guarantee = status.guarantee_limits or {}
    guarantee_detail = guarantee.get("guarantee_detail") or {}
    guarantee_price = guarantee.get("guarantee_price")

    return {
        "program_type": status.type,
        "status": status.status,
        "current_level": status.current_level or protection.start_level,
        "init_date": parse_ml_datetime(protection.init_date),
        "end_date": parse_ml_datetime(protection.end_date),
        "start_level": protection.start_level,
        "end_level": protection.end_level,
        "warning": protection.warning,
        "is_renewal": protection.is_renewal,
        "max_issues_allowed": status.protection_limits.max_issues_allowed,
        "protection_days_limit": status.protection_limits.protection_days_limit,
        "orders_qty": orders,
        "total_issues": total_issues,
        "claims_qty": claims,
        "cancel_qty": cancels,
        "delay_qty": delays,
        "guarantee_price": to_float(guarantee_price) if guarantee_price is not None else None,
        "guarantee_status": guarantee_detail.get("guarantee_status") or guarantee.get("guarantee_status"),
        "last_checked_at": now,
    }


class SellerRecoveryService:
    """Checks and stores the seller's recovery program status"""

    def __init__(self, db: Session, connector, clock: Callable[[], datetime] = utcnow):
        self.store = MLStore(db)
        self.connector = connector
        self.clock = clock

    async def check(self, account: MLAccount, access_token: str, snapshot: Optional[MetricsSnapshot] = None) -> RecoveryCheck:
        now = self.clock()
        status = await self.connector.get_seller_recovery_status(access_token)

        if status is None:
            self.store.upsert_seller_recovery(account, {"status": STATUS_UNAVAILABLE, "last_checked_at": now})
            self.store.set_feature_flags(account, has_seller_recovery=False)
            return RecoveryCheck(has_program=False, status=STATUS_UNAVAILABLE)

        self.store.upsert_seller_recovery(account, recovery_values(status, snapshot, now))
        self.store.set_feature_flags(account, has_seller_recovery=status.status == STATUS_ACTIVE)
        log.info(f"Recovery program for account {account.id}: {status.type} {status.status}")
        return RecoveryCheck(
            has_program=True,
            program_type=status.type,
            status=status.status,
            current_level=status.current_level,
        )
