"""
All-accounts auto sync tests.

Guards against:
1. Accounts with expiring tokens waiting behind healthy ones
2. A run of failing accounts hammering the API without a pause
3. Run logs left in "running" state
"""
import asyncio
from datetime import timedelta

from app.exceptions import AuthError
from app.services.auto_sync_service import AutoSyncService, prioritize_accounts

from tests.factories import NOW, clock, make_account, make_settings


def _run(coro):
    return asyncio.run(coro)


class _RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def test_prioritize_expiring_then_never_synced_then_oldest(db):
    healthy_old = make_account(db, ml_user_id=1, token_expires_at=NOW + timedelta(days=3),
                               last_sync_at=NOW - timedelta(hours=10))
    healthy_recent = make_account(db, ml_user_id=2, token_expires_at=NOW + timedelta(days=3),
                                  last_sync_at=NOW - timedelta(hours=1))
    never_synced = make_account(db, ml_user_id=3, token_expires_at=NOW + timedelta(days=3))
    expiring = make_account(db, ml_user_id=4, token_expires_at=NOW + timedelta(hours=2),
                            last_sync_at=NOW - timedelta(minutes=5))

    ordered = prioritize_accounts([healthy_recent, healthy_old, never_synced, expiring], NOW, 24)

    assert ordered == [expiring, never_synced, healthy_old, healthy_recent]


def test_sync_all_accounts_writes_run_log(db, connector):
    settings = make_settings(auto_sync_delay_between_accounts=1.0)
    make_account(db, ml_user_id=1)
    make_account(db, ml_user_id=2, token_expires_at=NOW + timedelta(minutes=5))
    make_account(db, ml_user_id=3, is_active=False)
    sleep = _RecordingSleep()

    run_log = _run(AutoSyncService(db, connector, settings, clock, sleep=sleep).sync_all_accounts())

    assert run_log.status == "completed"
    assert run_log.total_accounts == 2
    assert run_log.successful_syncs == 2
    assert run_log.failed_syncs == 0
    assert run_log.tokens_renewed == 1
    assert run_log.error_details is None
    assert run_log.finished_at == NOW
    assert sleep.calls == [1.0]


def test_circuit_breaker_pauses_after_consecutive_failures(db, connector):
    settings = make_settings(auto_sync_circuit_breaker_failures=3, auto_sync_circuit_breaker_pause=5.0)
    for user_id in range(1, 5):
        make_account(db, ml_user_id=user_id, token_expires_at=NOW - timedelta(hours=1))
    connector.refresh_error = AuthError("invalid_grant", status_code=400)
    sleep = _RecordingSleep()

    run_log = _run(AutoSyncService(db, connector, settings, clock, sleep=sleep).sync_all_accounts())

    assert run_log.failed_syncs == 4
    assert sleep.calls == [5.0]
    assert len(run_log.error_details) == 4
    assert run_log.error_details[0]["status"] == "auth_error"


def test_failure_does_not_stop_remaining_accounts(db, connector, settings):
    make_account(db, ml_user_id=1, refresh_token=None, token_expires_at=NOW)
    healthy = make_account(db, ml_user_id=2)

    run_log = _run(AutoSyncService(db, connector, settings, clock, sleep=_RecordingSleep()).sync_all_accounts())

    assert run_log.successful_syncs == 1
    assert run_log.failed_syncs == 1
    assert healthy.last_sync_at == NOW
