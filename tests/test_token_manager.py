"""
Token lifecycle tests.

Guards against:
1. Tokens inside the refresh window being used until they expire mid-sync
2. A rejected refresh leaving the account silently broken instead of flagged
3. Partially persisted credentials after a refresh
"""
import asyncio
from datetime import timedelta

import pytest

from app.exceptions import AuthError, UpstreamUnavailable
from app.models.mercado_livre import MLAccount
from app.services.token_manager import TokenManager

from tests.factories import NOW, USER_ID, clock, make_account


def _run(coro):
    return asyncio.run(coro)


def _manager(db, connector, settings):
    return TokenManager(db, connector, settings, clock=clock)


def test_valid_token_is_returned_without_refresh(db, connector, settings):
    account = make_account(db, token_expires_at=NOW + timedelta(hours=5))
    token = _run(_manager(db, connector, settings).ensure_valid_token(account))

    assert token == "APP_USR-valid"
    assert connector.count("refresh_access_token") == 0


def test_token_inside_skew_window_is_refreshed(db, connector, settings):
    account = make_account(db, token_expires_at=NOW + timedelta(minutes=30))
    token = _run(_manager(db, connector, settings).ensure_valid_token(account))

    assert token == "APP_USR-new"
    db.refresh(account)
    assert account.access_token == "APP_USR-new"
    assert account.refresh_token == "TG-new"
    assert account.token_expires_at == NOW + timedelta(seconds=21600)
    assert account.needs_reauth is False


def test_refreshed_token_is_reused(db, connector, settings):
    account = make_account(db, token_expires_at=NOW + timedelta(minutes=30))
    manager = _manager(db, connector, settings)

    first = _run(manager.ensure_valid_token(account))
    second = _run(manager.ensure_valid_token(account))

    assert first == second == "APP_USR-new"
    assert connector.count("refresh_access_token") == 1


def test_missing_expiry_forces_refresh(db, connector, settings):
    account = make_account(db, token_expires_at=None)
    assert _manager(db, connector, settings).needs_refresh(account)


def test_rejected_refresh_flags_reauth(db, connector, settings):
    account = make_account(db, token_expires_at=NOW - timedelta(minutes=1))
    connector.refresh_error = AuthError("invalid_grant", status_code=400)

    with pytest.raises(AuthError):
        _run(_manager(db, connector, settings).ensure_valid_token(account))

    db.refresh(account)
    assert account.needs_reauth is True
    assert account.access_token == "APP_USR-valid"


def test_missing_refresh_token_flags_reauth(db, connector, settings):
    account = make_account(db, refresh_token=None, token_expires_at=NOW)

    with pytest.raises(AuthError):
        _run(_manager(db, connector, settings).ensure_valid_token(account))

    assert account.needs_reauth is True
    assert connector.count("refresh_access_token") == 0


def test_unreachable_oauth_does_not_flag_reauth(db, connector, settings):
    account = make_account(db, token_expires_at=NOW)
    connector.refresh_error = UpstreamUnavailable("oauth down", status_code=503)

    with pytest.raises(UpstreamUnavailable):
        _run(_manager(db, connector, settings).ensure_valid_token(account))

    assert not account.needs_reauth


def test_connect_account_creates_primary_account(db, connector, settings):
    account = _run(_manager(db, connector, settings).connect_account("TG-code", "https://example.com/cb"))

    assert account.ml_user_id == USER_ID
    assert account.ml_nickname == "LOJA_TESTE"
    assert account.is_primary
    assert account.access_token == "APP_USR-new"
    assert db.query(MLAccount).count() == 1


def test_connect_account_updates_existing(db, connector, settings):
    existing = make_account(db, needs_reauth=True)
    account = _run(_manager(db, connector, settings).connect_account("TG-code", "https://example.com/cb"))

    assert account.id == existing.id
    assert account.needs_reauth is False
    assert db.query(MLAccount).count() == 1
