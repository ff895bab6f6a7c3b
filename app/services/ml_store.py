"""
Persistence for synced Mercado Livre data.

Every write is an upsert on the table's natural key followed by a commit, so
re-running any stage is idempotent. Database failures roll the session back
and surface as PersistenceError for the caller to count.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import PersistenceError
from app.models.journey import Milestone
from app.models.mercado_livre import (
    MLAccount, MLCampaign, MLFullStock, MLMetrics, MLOrder, MLProduct,
    MLProductAd, MLSellerRecovery,
)
from app.utils.helpers import utcnow


class MLStore:
    """Natural-key upserts and the read queries the metrics stage needs"""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, what: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to persist {what}: {e}") from e

    def _upsert(self, model, keys: Dict[str, Any], values: Dict[str, Any]):
        try:
            record = self.db.query(model).filter_by(**keys).first()
            if record:
                for field, value in values.items():
                    setattr(record, field, value)
            else:
                record = model(**keys, **values)
                self.db.add(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to upsert {model.__tablename__} {keys}: {e}") from e
        self._commit(f"{model.__tablename__} {keys}")
        return record

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, account_id: int) -> Optional[MLAccount]:
        return self.db.query(MLAccount).filter(MLAccount.id == account_id).first()

    def get_active_account_by_user(self, ml_user_id: int) -> Optional[MLAccount]:
        return (
            self.db.query(MLAccount)
            .filter(MLAccount.ml_user_id == ml_user_id, MLAccount.is_active.is_(True))
            .first()
        )

    def list_active_accounts(self) -> List[MLAccount]:
        return self.db.query(MLAccount).filter(MLAccount.is_active.is_(True)).all()

    def save_tokens(self, account: MLAccount, access_token: str, refresh_token: Optional[str], expires_at: datetime):
        """Write the whole credential triple in one commit"""
        account.access_token = access_token
        if refresh_token:
            account.refresh_token = refresh_token
        account.token_expires_at = expires_at
        account.needs_reauth = False
        self._commit(f"tokens for account {account.id}")

    def flag_reauth(self, account: MLAccount):
        account.needs_reauth = True
        self._commit(f"reauth flag for account {account.id}")

    def set_feature_flags(self, account: MLAccount, **flags):
        for field, value in flags.items():
            setattr(account, field, value)
        self._commit(f"feature flags for account {account.id}")

    def mark_synced(self, account: MLAccount, when: datetime):
        account.last_sync_at = when
        self._commit(f"sync stamp for account {account.id}")

    # ------------------------------------------------------------------
    # Listings, orders, stock
    # ------------------------------------------------------------------

    def upsert_listing(self, account: MLAccount, item_id: str, values: Dict[str, Any]) -> MLProduct:
        return self._upsert(MLProduct, {"ml_account_id": account.id, "ml_item_id": item_id}, values)

    def upsert_order(self, account: MLAccount, order_id: int, values: Dict[str, Any]) -> MLOrder:
        existing = (
            self.db.query(MLOrder)
            .filter(MLOrder.ml_account_id == account.id, MLOrder.ml_order_id == order_id)
            .first()
        )
        if existing is not None and existing.status == "paid":
            # Paid orders are frozen; only status corrections (refunds, cancels) apply
            values = {"status": values.get("status", existing.status), "synced_at": values.get("synced_at", utcnow())}
        return self._upsert(MLOrder, {"ml_account_id": account.id, "ml_order_id": order_id}, values)

    def upsert_stock(self, account: MLAccount, inventory_id: str, values: Dict[str, Any]) -> MLFullStock:
        return self._upsert(MLFullStock, {"ml_account_id": account.id, "inventory_id": inventory_id}, values)

    def list_listings(self, account: MLAccount) -> List[MLProduct]:
        return self.db.query(MLProduct).filter(MLProduct.ml_account_id == account.id).all()

    def list_active_listings(self, account: MLAccount, limit: Optional[int] = None) -> List[MLProduct]:
        query = (
            self.db.query(MLProduct)
            .filter(MLProduct.ml_account_id == account.id, MLProduct.status == "active")
            .order_by(MLProduct.id)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def retire_missing_listings(self, account: MLAccount, active_item_ids: List[str], when: datetime) -> int:
        """Mark stored active listings absent from a complete active search as inactive"""
        try:
            stale = (
                self.db.query(MLProduct)
                .filter(
                    MLProduct.ml_account_id == account.id,
                    MLProduct.status == "active",
                    MLProduct.ml_item_id.notin_(active_item_ids),
                )
                .all()
            )
            for listing in stale:
                listing.status = "inactive"
                listing.synced_at = when
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to retire listings for account {account.id}: {e}") from e
        self._commit(f"retired listings for account {account.id}")
        return len(stale)

    def list_orders_since(self, account: MLAccount, since: datetime) -> List[MLOrder]:
        return (
            self.db.query(MLOrder)
            .filter(MLOrder.ml_account_id == account.id, MLOrder.date_created >= since)
            .all()
        )

    def has_available_full_stock(self, account: MLAccount, since: datetime) -> bool:
        return (
            self.db.query(MLFullStock)
            .filter(
                MLFullStock.ml_account_id == account.id,
                MLFullStock.available_units > 0,
                MLFullStock.synced_at >= since,
            )
            .first()
            is not None
        )

    # ------------------------------------------------------------------
    # Ads, recovery, metrics
    # ------------------------------------------------------------------

    def upsert_campaign(self, account: MLAccount, campaign_id: int, values: Dict[str, Any]) -> MLCampaign:
        return self._upsert(MLCampaign, {"ml_account_id": account.id, "campaign_id": campaign_id}, values)

    def list_campaigns(self, account: MLAccount) -> List[MLCampaign]:
        return self.db.query(MLCampaign).filter(MLCampaign.ml_account_id == account.id).all()

    def upsert_product_ad(self, account: MLAccount, item_id: str, values: Dict[str, Any]) -> MLProductAd:
        return self._upsert(MLProductAd, {"ml_account_id": account.id, "ml_item_id": item_id}, values)

    def upsert_seller_recovery(self, account: MLAccount, values: Dict[str, Any]) -> MLSellerRecovery:
        return self._upsert(MLSellerRecovery, {"ml_account_id": account.id}, values)

    def get_seller_recovery(self, account: MLAccount) -> Optional[MLSellerRecovery]:
        return self.db.query(MLSellerRecovery).filter(MLSellerRecovery.ml_account_id == account.id).first()

    def get_metrics(self, account: MLAccount) -> Optional[MLMetrics]:
        return self.db.query(MLMetrics).filter(MLMetrics.ml_account_id == account.id).first()

    def save_metrics(self, account: MLAccount, values: Dict[str, Any]) -> MLMetrics:
        return self._upsert(MLMetrics, {"ml_account_id": account.id}, values)

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def list_milestones(self, account: MLAccount) -> List[Milestone]:
        return (
            self.db.query(Milestone)
            .filter(Milestone.ml_account_id == account.id)
            .order_by(Milestone.id)
            .all()
        )

    def save_milestones(self, milestones: List[Milestone]):
        for milestone in milestones:
            self.db.add(milestone)
        self._commit(f"{len(milestones)} milestones")
