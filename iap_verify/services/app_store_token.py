"""
App Store Server API authentication tokens.

Requests are authorised with a short-lived ES256 JWT. Signing is cheap but
not free, so tokens are cached per bundle id for less than their lifetime.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from structlog import get_logger

from iap_verify.models.apple import AppleStoreKitConfig
from iap_verify.services.dates import utc_now

logger = get_logger(__name__)

APP_STORE_AUDIENCE = "appstoreconnect-v1"
TOKEN_LIFETIME = timedelta(minutes=20)
TOKEN_CACHE_TTL = timedelta(minutes=15)
# Apple rejects tokens issued in the future; allow for clock skew
ISSUED_AT_SKEW = timedelta(seconds=5)


class AppStoreTokenSigner:
    """Signs App Store Server API bearer tokens."""

    def __init__(
        self,
        config: AppleStoreKitConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self._clock = clock

    def sign(self, bundle_id: str) -> str:
        issued_at = self._clock() - ISSUED_AT_SKEW
        payload = {
            "iss": self.config.issuer_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + TOKEN_LIFETIME).timestamp()),
            "aud": APP_STORE_AUDIENCE,
            "bid": bundle_id,
        }

        return jwt.encode(
            payload,
            self.config.private_key,
            algorithm="ES256",
            headers={"kid": self.config.key_id},
        )


@dataclass(frozen=True)
class _CachedToken:
    token: str
    expires_at: datetime


class AppStoreTokenCache:
    """
    Per bundle id token cache.

    Shared across requests. A miss signs a new token and replaces the entry;
    two concurrent misses both sign and the last write wins, which is harmless.
    """

    def __init__(
        self,
        signer: Callable[[str], str],
        ttl: timedelta = TOKEN_CACHE_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._signer = signer
        self._ttl = ttl
        self._clock = clock
        self._tokens: dict[str, _CachedToken] = {}

    def get(self, bundle_id: str) -> str:
        now = self._clock()
        cached = self._tokens.get(bundle_id)
        if cached is not None and now < cached.expires_at:
            return cached.token

        token = self._signer(bundle_id)
        self._tokens[bundle_id] = _CachedToken(token=token, expires_at=now + self._ttl)
        logger.debug("app_store_token_signed", bundle_id=bundle_id)
        return token

    def invalidate(self, bundle_id: str) -> None:
        self._tokens.pop(bundle_id, None)
