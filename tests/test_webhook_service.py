"""
Notification logging and processing tests.
"""
import asyncio

from app.models.journey import Milestone
from app.models.mercado_livre import MLMetrics, MLOrder, MLProduct, MLWebhookLog
from app.services.webhook_service import WebhookService, resource_id

from tests.factories import USER_ID, clock, make_item, make_order


def _run(coro):
    return asyncio.run(coro)


def _payload(topic="orders_v2", resource="/orders/1", user_id=USER_ID):
    return {"topic": topic, "resource": resource, "user_id": user_id, "application_id": 42, "attempts": 1}


def test_resource_id():
    assert resource_id("/orders/2000001") == "2000001"
    assert resource_id("/items/MLB123/") == "MLB123"


def test_redelivery_reuses_log_row(db, connector, settings):
    service = WebhookService(db, connector, settings, clock)
    first = service.receive(_payload())
    first.processed = True
    db.commit()

    second = service.receive(_payload())

    assert second.id == first.id
    assert second.attempts == 2
    assert second.processed is False
    assert db.query(MLWebhookLog).count() == 1


def test_order_notification_updates_order_and_metrics(db, connector, settings, account):
    connector.orders = [make_order(n) for n in range(1, 11)]
    db.add(Milestone(ml_account_id=account.id, title="10 vendas"))
    db.commit()
    service = WebhookService(db, connector, settings, clock)

    for n in range(1, 11):
        entry = service.receive(_payload(resource=f"/orders/{n}"))
        assert _run(service.process(entry))

    assert db.query(MLOrder).count() == 10
    assert db.query(MLMetrics).one().total_sales == 10
    assert db.query(Milestone).one().status == "completed"
    assert db.query(MLWebhookLog).filter_by(processed=True).count() == 10


def test_item_notification_upserts_listing(db, connector, settings, account):
    connector.add_items(make_item("MLB77"))
    service = WebhookService(db, connector, settings, clock)
    entry = service.receive(_payload(topic="items", resource="/items/MLB77"))

    assert _run(service.process(entry))
    assert db.query(MLProduct).one().ml_item_id == "MLB77"
    assert entry.processed_at is not None


def test_unsupported_topic_is_acknowledged(db, connector, settings, account):
    service = WebhookService(db, connector, settings, clock)
    entry = service.receive(_payload(topic="questions", resource="/questions/5"))

    assert _run(service.process(entry))
    assert entry.processed
    assert connector.calls == []


def test_unknown_user_is_recorded_as_error(db, connector, settings, account):
    service = WebhookService(db, connector, settings, clock)
    entry = service.receive(_payload(user_id=999))

    assert not _run(service.process(entry))
    assert entry.processed is False
    assert "999" in entry.error


def test_missing_resource_records_error(db, connector, settings, account):
    service = WebhookService(db, connector, settings, clock)
    entry = service.receive(_payload(resource="/orders/404"))

    assert not _run(service.process(entry))
    assert "ResourceNotFound" in entry.error
    assert db.query(MLMetrics).count() == 0
