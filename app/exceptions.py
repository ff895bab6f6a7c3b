"""
Error taxonomy for the sync pipeline.

Only credential failures abort a sync run. Everything else is caught at the
stage that raised it and counted in the run summary.
"""
from typing import Optional


class MarketplaceError(Exception):
    """Base class for failures talking to the marketplace API."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class AuthError(MarketplaceError):
    """Credential refresh was rejected. The account must be re-authorized."""


class UpstreamError(MarketplaceError):
    """Non-success response that is neither auth, missing, nor transient."""


class UpstreamUnavailable(UpstreamError):
    """Transient failure: 5xx, connection error or timeout."""


class RateLimited(UpstreamUnavailable):
    """HTTP 429 from the marketplace."""


class ResourceNotFound(UpstreamError):
    """HTTP 404 for a specific resource."""


class OptionalFeatureUnavailable(Exception):
    """The account is not enrolled in an optional program (ads, recovery)."""

    def __init__(self, feature: str, reason: str = "not enabled"):
        super().__init__(f"{feature}: {reason}")
        self.feature = feature
        self.reason = reason


class PersistenceError(Exception):
    """An upsert against the local store failed."""


class InvalidMilestoneTransition(Exception):
    """Attempted to move a milestone backwards."""
