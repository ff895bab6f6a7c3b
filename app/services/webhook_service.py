"""
Mercado Livre notification processing.

The marketplace expects a 200 within a few seconds and re-delivers
otherwise, so receive() only logs the notification and processing happens
afterwards. Logs are keyed by (resource, topic): a re-delivery of the same
resource reuses the row and bumps its attempt count.

Supported topics: orders_v2 and items. Others are logged and acknowledged.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import PersistenceError
from app.models.mercado_livre import MLWebhookLog
from app.services.metrics_aggregator import MetricsAggregator
from app.services.milestone_validator import MilestoneValidator
from app.services.ml_store import MLStore
from app.services.resource_syncers import OrderSyncer, ProductSyncer, UserInfoSyncer
from app.services.token_manager import TokenManager
from app.utils.helpers import utcnow
from app.utils.logger import log

TOPIC_ORDERS = "orders_v2"
TOPIC_ITEMS = "items"
SUPPORTED_TOPICS = (TOPIC_ORDERS, TOPIC_ITEMS)


def resource_id(resource: str) -> str:
    """"/orders/2000001" -> "2000001" """
    return resource.rstrip("/").split("/")[-1]


class WebhookService:
    """Logs notifications and applies them to the local store"""

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

    def receive(self, payload: Dict[str, Any]) -> MLWebhookLog:
        """Record a notification; re-deliveries reset it to unprocessed"""
        topic = payload.get("topic") or "unknown"
        resource = payload.get("resource") or ""
        try:
            entry = (
                self.db.query(MLWebhookLog)
                .filter(MLWebhookLog.resource == resource, MLWebhookLog.topic == topic)
                .first()
            )
            if entry is None:
                entry = MLWebhookLog(topic=topic, resource=resource, attempts=1)
                self.db.add(entry)
            else:
                entry.attempts = (entry.attempts or 0) + 1
            entry.user_id = payload.get("user_id")
            entry.application_id = payload.get("application_id")
            entry.payload = payload
            entry.processed = False
            entry.error = None
            entry.received_at = self.clock()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to log webhook {topic} {resource}: {e}") from e

        log.info(f"Webhook received: {topic} {resource} (user {entry.user_id}, attempt {entry.attempts})")
        return entry

    def _finish(self, entry: MLWebhookLog, error: Optional[str] = None):
        entry.processed = error is None
        entry.error = error
        entry.processed_at = self.clock()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Could not update webhook log {entry.id}: {e}")

    async def process(self, entry: MLWebhookLog) -> bool:
        """Apply one logged notification. Returns True when it was processed."""
        if entry.topic not in SUPPORTED_TOPICS:
            log.info(f"Ignoring webhook topic {entry.topic}")
            self._finish(entry)
            return True

        account = self.store.get_active_account_by_user(entry.user_id) if entry.user_id else None
        if account is None:
            self._finish(entry, error=f"No active account for user {entry.user_id}")
            log.warning(f"Webhook {entry.topic} {entry.resource}: no active account for user {entry.user_id}")
            return False

        try:
            token = await TokenManager(self.db, self.connector, self.settings, self.clock).ensure_valid_token(account)
            target = resource_id(entry.resource)

            if entry.topic == TOPIC_ORDERS:
                batch = await OrderSyncer(self.db, self.connector, self.settings, self.clock).sync_order(account, token, target)
            else:
                batch = (await ProductSyncer(self.db, self.connector, self.settings, self.clock).sync_item(account, token, target)).listings

            if batch.errors:
                _, reason = batch.failed[0]
                self._finish(entry, error=reason)
                return False

            await self._refresh_derived(account, token)
        except Exception as e:
            log.error(f"Webhook {entry.topic} {entry.resource} failed: {e}")
            self._finish(entry, error=f"{type(e).__name__}: {e}")
            return False

        self._finish(entry)
        log.info(f"Webhook processed: {entry.topic} {entry.resource}")
        return True

    async def _refresh_derived(self, account, token: str):
        """Recompute the snapshot and milestones after a single-resource change"""
        try:
            profile = await UserInfoSyncer(self.db, self.connector, self.settings, self.clock).sync(account, token)
        except Exception as e:
            log.warning(f"Profile fetch failed during webhook for account {account.id}, using stored reputation: {e}")
            profile = None

        aggregator = MetricsAggregator(lookback_days=self.settings.orders_lookback_days)
        snapshot = aggregator.compute_from_store(self.store, account, profile, self.clock())
        aggregator.save(self.store, account, snapshot)
        MilestoneValidator(self.store).validate(account, snapshot)
