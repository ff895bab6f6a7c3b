"""
Per-account sync run.

Stages, in order:
  1. ensure a valid access token            (fatal on failure)
  2. profile, listings (+ FULL stock), orders, fetched concurrently
  3. metrics snapshot from the stored data
  4. Product Ads                            (skipped when not enrolled)
  5. reputation recovery program
  6. persist snapshot, advance milestones
  7. stamp last_sync_at

Only stage 1 can abort the run. Every other failure is recorded against its
resource in the SyncSummary and the run carries on. Runs for the same
account must not overlap; use run_locked() or account_locks.
"""
import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import AuthError, OptionalFeatureUnavailable
from app.models.mercado_livre import MLAccount
from app.services.ads_syncer import AdsSyncer
from app.services.batch_result import BatchResult
from app.services.metrics_aggregator import MetricsAggregator, MetricsSnapshot
from app.services.milestone_validator import MilestoneValidator
from app.services.ml_store import MLStore
from app.services.resource_syncers import OrderSyncer, ProductSyncer, UserInfoSyncer
from app.services.seller_recovery import SellerRecoveryService
from app.services.token_manager import TokenManager
from app.utils.helpers import utcnow
from app.utils.logger import log


class AccountLocks:
    """One asyncio.Lock per account id"""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, account_id: int) -> asyncio.Lock:
        return self._locks[account_id]

    def is_locked(self, account_id: int) -> bool:
        return account_id in self._locks and self._locks[account_id].locked()


account_locks = AccountLocks()


@dataclass
class SyncSummary:
    """Structured outcome of one account run"""
    account_id: int
    nickname: Optional[str] = None
    status: str = "running"  # success, partial, auth_error, failed, timeout
    resources: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    features: Dict[str, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    token_renewed: bool = False
    needs_reauth: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    def record(self, batch: BatchResult):
        entry = self.resources.setdefault(batch.resource, {"synced": 0, "errors": 0})
        entry["synced"] += batch.synced
        entry["errors"] += batch.errors
        if batch.truncated:
            entry["truncated"] = True
        for record_id, reason in batch.failed[:5]:
            self.errors.append(f"{batch.resource} {record_id}: {reason}")

    def record_count(self, resource: str, synced: int = 0, errors: int = 0):
        entry = self.resources.setdefault(resource, {"synced": 0, "errors": 0})
        entry["synced"] += synced
        entry["errors"] += errors

    def record_failure(self, resource: str, error: BaseException):
        self.record_count(resource, errors=1)
        self.errors.append(f"{resource}: {type(error).__name__}: {error}")

    @property
    def total_errors(self) -> int:
        return sum(entry["errors"] for entry in self.resources.values())

    @property
    def succeeded(self) -> bool:
        return self.status in ("success", "partial")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "nickname": self.nickname,
            "status": self.status,
            "resources": self.resources,
            "features": self.features,
            "errors": self.errors[:50],
            "token_renewed": self.token_renewed,
            "needs_reauth": self.needs_reauth,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration_seconds, 2),
        }


class SyncOrchestrator:
    """Runs the full sync pipeline for one account"""

    def __init__(
        self,
        db: Session,
        connector,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.connector = connector
        self.settings = settings or get_settings()
        self.clock = clock
        self.store = MLStore(db)

        self.token_manager = TokenManager(db, connector, self.settings, clock)
        self.user_info = UserInfoSyncer(db, connector, self.settings, clock)
        self.products = ProductSyncer(db, connector, self.settings, clock)
        self.orders = OrderSyncer(db, connector, self.settings, clock)
        self.ads = AdsSyncer(db, connector, self.settings, clock)
        self.recovery = SellerRecoveryService(db, connector, clock)
        self.aggregator = MetricsAggregator(lookback_days=self.settings.orders_lookback_days)
        self.milestones = MilestoneValidator(self.store)

    async def run_locked(self, account: MLAccount, timeout: Optional[float] = None) -> SyncSummary:
        """run(), serialized with any other run for the same account"""
        async with account_locks.lock_for(account.id):
            return await self.run(account, timeout=timeout)

    async def run(self, account: MLAccount, timeout: Optional[float] = None) -> SyncSummary:
        """
        Sync one account.

        With a timeout, in-flight stages are cancelled when it expires and the
        partial summary is returned with status "timeout"; last_sync_at is
        not stamped in that case.
        """
        summary = SyncSummary(account_id=account.id, nickname=account.ml_nickname, started_at=self.clock())
        start = time.time()
        log.info(f"Starting sync for account {account.id} ({account.ml_nickname})")

        try:
            if timeout:
                await asyncio.wait_for(self._run(account, summary), timeout=timeout)
            else:
                await self._run(account, summary)
        except asyncio.TimeoutError:
            summary.status = "timeout"
            summary.errors.append(f"Sync cancelled after {timeout}s")
            log.warning(f"Sync for account {account.id} timed out after {timeout}s")
        except AuthError as e:
            summary.status = "auth_error"
            summary.needs_reauth = True
            summary.record_failure("token", e)
            log.error(f"Sync for account {account.id} aborted: re-authorization required")
        except Exception as e:
            summary.status = "failed"
            summary.record_failure("run", e)
            log.error(f"Sync for account {account.id} aborted: {e}")
        finally:
            summary.completed_at = self.clock()
            summary.duration_seconds = time.time() - start

        log.info(
            f"Sync for account {account.id} finished: {summary.status} "
            f"({summary.total_errors} errors, {summary.duration_seconds:.1f}s)"
        )
        return summary

    async def _run(self, account: MLAccount, summary: SyncSummary):
        previous_token = account.access_token
        token = await self.token_manager.ensure_valid_token(account)
        summary.token_renewed = token != previous_token

        profile = await self._fetch_resources(account, token, summary)

        snapshot = None
        try:
            snapshot = self.aggregator.compute_from_store(self.store, account, profile, self.clock())
        except Exception as e:
            log.error(f"Metrics computation failed for account {account.id}: {e}")
            summary.record_failure("metrics", e)

        snapshot = await self._sync_ads(account, token, summary, snapshot)
        snapshot = await self._check_recovery(account, token, summary, snapshot)

        if snapshot is not None:
            try:
                self.aggregator.save(self.store, account, snapshot)
                summary.record_count("metrics", synced=1)
            except Exception as e:
                log.error(f"Saving metrics failed for account {account.id}: {e}")
                summary.record_failure("metrics", e)

            try:
                changed = self.milestones.validate(account, snapshot)
                summary.record_count("milestones", synced=len(changed))
            except Exception as e:
                log.error(f"Milestone validation failed for account {account.id}: {e}")
                summary.record_failure("milestones", e)

        self.store.mark_synced(account, self.clock())
        summary.status = "partial" if summary.total_errors else "success"

    async def _fetch_resources(self, account: MLAccount, token: str, summary: SyncSummary):
        # Each stage records into the summary as it finishes, so a timeout
        # still reports the siblings that completed
        profile, _, _ = await asyncio.gather(
            self._fetch_profile(account, token, summary),
            self._fetch_products(account, token, summary),
            self._fetch_orders(account, token, summary),
        )
        return profile

    async def _fetch_profile(self, account: MLAccount, token: str, summary: SyncSummary):
        try:
            profile = await self.user_info.sync(account, token)
        except Exception as e:
            log.warning(f"Profile fetch failed for account {account.id}: {e}")
            summary.record_failure("user_info", e)
            return None
        summary.record_count("user_info", synced=1)
        return profile

    async def _fetch_products(self, account: MLAccount, token: str, summary: SyncSummary):
        try:
            result = await self.products.sync(account, token)
        except Exception as e:
            summary.record_failure("products", e)
            return
        summary.record(result.listings)
        summary.record(result.stock)

    async def _fetch_orders(self, account: MLAccount, token: str, summary: SyncSummary):
        try:
            result = await self.orders.sync(account, token)
        except Exception as e:
            summary.record_failure("orders", e)
            return
        summary.record(result)

    async def _sync_ads(self, account: MLAccount, token: str, summary: SyncSummary,
                        snapshot: Optional[MetricsSnapshot]) -> Optional[MetricsSnapshot]:
        if not self.settings.enable_product_ads_sync:
            return snapshot
        try:
            result = await self.ads.sync(account, token)
        except OptionalFeatureUnavailable as e:
            log.info(f"Product Ads not available for account {account.id}: {e.reason}")
            summary.features["product_ads"] = False
            self.store.set_feature_flags(account, has_product_ads_enabled=False)
            return snapshot
        except Exception as e:
            log.warning(f"Product Ads sync failed for account {account.id}: {e}")
            summary.record_failure("ads", e)
            return snapshot

        summary.features["product_ads"] = True
        summary.record(result.campaigns)
        summary.record(result.items)
        if snapshot is not None:
            snapshot = self.aggregator.with_ads(snapshot, self.store.list_campaigns(account))
        return snapshot

    async def _check_recovery(self, account: MLAccount, token: str, summary: SyncSummary,
                              snapshot: Optional[MetricsSnapshot]) -> Optional[MetricsSnapshot]:
        if not self.settings.enable_seller_recovery_check:
            return snapshot
        try:
            check = await self.recovery.check(account, token, snapshot)
        except Exception as e:
            log.warning(f"Recovery program check failed for account {account.id}: {e}")
            summary.record_failure("seller_recovery", e)
            return snapshot

        summary.features["seller_recovery"] = check.status == "ACTIVE"
        summary.record_count("seller_recovery", synced=1)
        if snapshot is not None:
            snapshot = self.aggregator.with_recovery(snapshot, check.program_type, check.status)
        return snapshot
