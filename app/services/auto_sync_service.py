"""
Sync of every active account, run by the scheduler.

Accounts go one at a time to stay inside the marketplace rate limits:
  - tokens expiring within 24h first, then accounts never synced
  - each account gets a hard timeout
  - after N consecutive failures the loop pauses before carrying on
Each run leaves an MLAutoSyncLog row behind.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models.mercado_livre import MLAccount, MLAutoSyncLog
from app.services.ml_store import MLStore
from app.services.sync_orchestrator import SyncOrchestrator, SyncSummary, account_locks
from app.utils.helpers import utcnow
from app.utils.logger import log


def prioritize_accounts(accounts: List[MLAccount], now: datetime, token_window_hours: int = 24) -> List[MLAccount]:
    """Expiring tokens first, then never-synced accounts, then oldest sync first"""
    horizon = now + timedelta(hours=token_window_hours)

    def key(account: MLAccount):
        expiring = account.token_expires_at is None or account.token_expires_at < horizon
        never_synced = account.last_sync_at is None
        return (
            0 if expiring else 1,
            0 if never_synced else 1,
            account.last_sync_at or datetime.min,
            account.id,
        )

    return sorted(accounts, key=key)


class AutoSyncService:
    """Runs SyncOrchestrator across all active accounts"""

    def __init__(
        self,
        db: Session,
        connector,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable = asyncio.sleep,
    ):
        self.db = db
        self.store = MLStore(db)
        self.settings = settings or get_settings()
        self.clock = clock
        self.sleep = sleep
        self.orchestrator = SyncOrchestrator(db, connector, self.settings, clock)

    async def _sync_one(self, account: MLAccount) -> SyncSummary:
        async with account_locks.lock_for(account.id):
            return await self.orchestrator.run(
                account, timeout=self.settings.auto_sync_account_timeout_seconds
            )

    async def sync_all_accounts(self) -> MLAutoSyncLog:
        run_log = MLAutoSyncLog(started_at=self.clock(), status="running")
        self.db.add(run_log)
        self.db.commit()

        accounts = prioritize_accounts(
            self.store.list_active_accounts(), self.clock(), self.settings.auto_sync_token_priority_hours
        )
        run_log.total_accounts = len(accounts)
        log.info(f"Auto sync starting for {len(accounts)} active accounts")

        successful = failed = renewed = 0
        consecutive_failures = 0
        failures = []

        for index, account in enumerate(accounts):
            if index and self.settings.auto_sync_delay_between_accounts:
                await self.sleep(self.settings.auto_sync_delay_between_accounts)

            summary = await self._sync_one(account)
            if summary.token_renewed:
                renewed += 1

            if summary.succeeded:
                successful += 1
                consecutive_failures = 0
            else:
                failed += 1
                consecutive_failures += 1
                failures.append({
                    "account_id": account.id,
                    "nickname": account.ml_nickname,
                    "status": summary.status,
                    "error": summary.errors[-1] if summary.errors else None,
                })

            if consecutive_failures >= self.settings.auto_sync_circuit_breaker_failures:
                log.warning(
                    f"{consecutive_failures} consecutive failures, pausing "
                    f"{self.settings.auto_sync_circuit_breaker_pause}s"
                )
                await self.sleep(self.settings.auto_sync_circuit_breaker_pause)
                consecutive_failures = 0

        run_log.successful_syncs = successful
        run_log.failed_syncs = failed
        run_log.tokens_renewed = renewed
        run_log.error_details = failures or None
        run_log.finished_at = self.clock()
        run_log.status = "completed"
        self.db.commit()

        log.info(
            f"Auto sync finished: {successful}/{len(accounts)} ok, {failed} failed, "
            f"{renewed} tokens renewed"
        )
        return run_log
