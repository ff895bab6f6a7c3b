"""
Access token lifecycle for seller accounts.

Mercado Livre access tokens live six hours. Before any API call the sync
pipeline asks for a valid token; if the stored one expires within the skew
window it is refreshed and the new triple is persisted before use.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.exceptions import AuthError
from app.models.mercado_livre import MLAccount
from app.services.ml_store import MLStore
from app.utils.helpers import utcnow
from app.utils.logger import log


class TokenManager:
    """Guarantees a usable access token for an account"""

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

    def needs_refresh(self, account: MLAccount) -> bool:
        if not account.access_token or account.token_expires_at is None:
            return True
        skew = timedelta(seconds=self.settings.token_refresh_skew_seconds)
        return self.clock() >= account.token_expires_at - skew

    async def ensure_valid_token(self, account: MLAccount) -> str:
        """
        Return an access token valid for at least the skew window.

        Raises:
            AuthError: the refresh grant was rejected; the account is flagged
                for re-authorization and must be reconnected by the seller.
            UpstreamUnavailable: the OAuth endpoint could not be reached.
        """
        if not self.needs_refresh(account):
            return account.access_token

        if not account.refresh_token:
            self.store.flag_reauth(account)
            raise AuthError(f"Account {account.id} has no refresh token")

        log.info(f"Refreshing access token for account {account.id} ({account.ml_nickname})")
        try:
            grant = await self.connector.refresh_access_token(account.refresh_token)
        except AuthError:
            log.error(f"Token refresh rejected for account {account.id}; re-authorization required")
            self.store.flag_reauth(account)
            raise

        expires_at = self.clock() + timedelta(seconds=grant.expires_in)
        self.store.save_tokens(account, grant.access_token, grant.refresh_token, expires_at)
        log.info(f"Token refreshed for account {account.id}, valid until {expires_at.isoformat()}")
        return grant.access_token

    async def connect_account(self, code: str, redirect_uri: str) -> MLAccount:
        """Complete the OAuth authorization-code flow and store the account"""
        grant = await self.connector.exchange_code(code, redirect_uri)
        profile = await self.connector.get_me(grant.access_token)
        expires_at = self.clock() + timedelta(seconds=grant.expires_in)

        account = self.store.db.query(MLAccount).filter(MLAccount.ml_user_id == profile.id).first()
        if account is None:
            is_first = self.store.db.query(MLAccount).count() == 0
            account = MLAccount(ml_user_id=profile.id, is_primary=is_first, connected_at=self.clock())
            self.store.db.add(account)

        account.ml_nickname = profile.nickname
        account.site_id = profile.site_id or self.settings.ml_site_id
        account.is_active = True
        self.store.save_tokens(account, grant.access_token, grant.refresh_token, expires_at)
        log.info(f"Connected Mercado Livre account {profile.nickname} ({profile.id})")
        return account
