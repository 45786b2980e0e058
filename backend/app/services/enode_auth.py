"""
Enode client-credentials token provider.

Obtains and caches the bearer token used for every Enode API call. The cache
is shared by all requests in the process; a refresh happens synchronously
when the cached token is missing or expires within the refresh margin.
Concurrent callers may each refresh during that window, which is harmless
because the exchange has no side effects on Enode.
"""
import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

import httpx

from app.core.config import settings
from app.core.errors import ChargingError

logger = logging.getLogger(__name__)


@dataclass
class CachedToken:
    token: str
    expires_at: float  # epoch seconds


class EnodeTokenProvider:
    """Client-credentials exchange with an in-memory, lock-guarded cache."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        oauth_url: str,
        refresh_margin_seconds: int = 30,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.oauth_url = oauth_url
        self.refresh_margin_seconds = refresh_margin_seconds
        self.timeout = timeout
        self._clock = clock
        self._transport = transport
        self._lock = threading.Lock()
        self._cached: Optional[CachedToken] = None

    def get_token(self) -> str:
        now = self._clock()
        with self._lock:
            cached = self._cached
        if cached and cached.expires_at > now + self.refresh_margin_seconds:
            return cached.token

        fresh = self._exchange(now)
        with self._lock:
            self._cached = fresh
        return fresh.token

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def _exchange(self, now: float) -> CachedToken:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    self.oauth_url,
                    auth=(self.client_id, self.client_secret),
                    data={"grant_type": "client_credentials"},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Enode OAuth transport error: {type(e).__name__}")
            raise ChargingError.external_auth(None, None, cause=e)

        if not response.is_success:
            logger.error(f"Enode OAuth error: status={response.status_code} body={response.text[:500]}")
            raise ChargingError.external_auth(response.status_code, response.text or None)

        try:
            data = response.json()
        except ValueError as e:
            raise ChargingError.external_auth(response.status_code, response.text, cause=e)

        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise ChargingError.external_auth(response.status_code, None, message="Enode OAuth response has no access_token")

        try:
            expires_in = float(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0

        logger.info(f"Obtained Enode access token (expires_in={int(expires_in)}s)")
        return CachedToken(token=token, expires_at=now + expires_in)


@lru_cache(maxsize=1)
def get_token_provider() -> EnodeTokenProvider:
    """Process-wide token provider built from settings."""
    return EnodeTokenProvider(
        client_id=settings.ENODE_CLIENT_ID,
        client_secret=settings.ENODE_CLIENT_SECRET,
        oauth_url=settings.ENODE_OAUTH_URL,
        refresh_margin_seconds=settings.ENODE_TOKEN_REFRESH_MARGIN_SECONDS,
        timeout=settings.ENODE_HTTP_TIMEOUT_SECONDS,
    )
