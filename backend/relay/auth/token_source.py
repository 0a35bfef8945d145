"""Bearer token source.

Owns the process-wide credential record. Readers ask for a valid access token;
when the cached one has expired, it is refreshed through the OAuth token
endpoint and persisted before being returned.

Refreshes are serialized with an asyncio lock and expiry is re-checked once the
lock is held, so a burst of concurrent requests triggers a single exchange.
"""

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

from relay.llm.errors import ConfigurationError, TokenRefreshError

from .credentials import CredentialStore, Credentials

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_EXPIRES_IN_SECONDS = 3600
# Tokens are treated as expired this long before the server says so.
EXPIRY_MARGIN_SECONDS = 300


class TokenSource:
    """Refresh-on-demand access token holder.

    Usage:
        source = TokenSource(CredentialStore(path), http_client)
        token = await source.get_valid_access_token()
    """

    def __init__(
        self,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
        credentials: Credentials | None = None,
        token_url: str = TOKEN_URL,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize token source.

        Args:
            store: Where refreshed credentials are persisted.
            http_client: Client used for the token exchange.
            credentials: Already-loaded record. Loaded from ``store`` when omitted.
            token_url: OAuth token endpoint.
            clock: Returns the current time in epoch seconds.

        Raises:
            ConfigurationError: No record was given and the store cannot be read.
        """
        self._store = store
        self._http_client = http_client
        self._credentials = credentials if credentials is not None else store.load()
        self._token_url = token_url
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def project_id(self) -> str | None:
        return self._credentials.project_id

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_expired(self) -> bool:
        return not self._credentials.access_token or self._now_ms() >= self._credentials.expires_at

    async def get_valid_access_token(self) -> str:
        """Return a usable access token, refreshing it first if needed.

        Raises:
            ConfigurationError: No refresh material is available.
            TokenRefreshError: The token endpoint did not return a token.
        """
        if not self.is_expired():
            return self._credentials.access_token

        async with self._lock:
            # Another request may have refreshed while we waited.
            if not self.is_expired():
                return self._credentials.access_token
            return await self._refresh_locked()

    async def refresh(self) -> str:
        """Force a token exchange regardless of expiry."""
        async with self._lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> str:
        creds = self._credentials
        if not (creds.refresh_token and creds.client_id and creds.client_secret):
            raise ConfigurationError(
                "Credentials lack refresh_token/client_id/client_secret; re-run the login setup."
            )

        try:
            response = await self._http_client.post(
                self._token_url,
                data={
                    "client_id": creds.client_id,
                    "client_secret": creds.client_secret,
                    "refresh_token": creds.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            data = response.json()
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Token refresh failed: {e}") from e
        except ValueError as e:
            raise TokenRefreshError(
                f"Token refresh failed: non-JSON answer ({response.status_code})",
                status_code=response.status_code,
            ) from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise TokenRefreshError(
                f"Token refresh failed: {str(data)[:200]}",
                status_code=response.status_code,
            )

        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS
        self._credentials = creds.model_copy(
            update={
                "access_token": access_token,
                "expires_at": self._now_ms() + (int(expires_in) - EXPIRY_MARGIN_SECONDS) * 1000,
            }
        )
        self._store.save(self._credentials)
        logger.info("Access token refreshed", extra={"expires_in": expires_in})
        return access_token
