"""Unit tests for the bearer token source.

Tests cover:
- Cached token reuse
- Refresh on expiry and persistence
- Concurrent refresh coalescing
- Refresh failures
"""

import asyncio
import json

import httpx
import pytest

from relay.auth.credentials import CredentialStore, Credentials
from relay.auth.token_source import EXPIRY_MARGIN_SECONDS, TOKEN_URL, TokenSource
from relay.llm.errors import ConfigurationError, TokenRefreshError

NOW = 1_700_000_000.0


def make_credentials(**overrides) -> Credentials:
    data = {
        "access_token": "old-token",
        "refresh_token": "refresh",
        "client_id": "client",
        "client_secret": "secret",
        "project_id": "proj",
        "expires_at": int((NOW + 600) * 1000),
    }
    data.update(overrides)
    return Credentials.model_validate(data)


def token_handler(calls: list, payload=None, status: int = 200, delay: float = 0):
    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(delay)
        body = payload if payload is not None else {"access_token": "new-token", "expires_in": 3600}
        return httpx.Response(status, json=body)

    return handler


def make_source(tmp_path, handler, credentials: Credentials, clock=lambda: NOW) -> TokenSource:
    store = CredentialStore(tmp_path / "creds.json")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TokenSource(store, http_client, credentials=credentials, clock=clock)


class TestTokenSource:
    """Tests for token refresh behavior."""

    @pytest.mark.asyncio
    async def test_valid_token_is_reused(self, tmp_path):
        calls = []
        source = make_source(tmp_path, token_handler(calls), make_credentials())

        assert await source.get_valid_access_token() == "old-token"
        assert calls == []

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_saved(self, tmp_path):
        calls = []
        source = make_source(
            tmp_path,
            token_handler(calls),
            make_credentials(expires_at=int(NOW * 1000), extra_field="kept"),
        )

        assert await source.get_valid_access_token() == "new-token"

        assert len(calls) == 1
        assert str(calls[0].url) == TOKEN_URL
        form = dict(pair.split("=") for pair in calls[0].content.decode().split("&"))
        assert form == {
            "client_id": "client",
            "client_secret": "secret",
            "refresh_token": "refresh",
            "grant_type": "refresh_token",
        }

        saved = json.loads((tmp_path / "creds.json").read_text())
        assert saved["access_token"] == "new-token"
        assert saved["expires_at"] == int((NOW + 3600 - EXPIRY_MARGIN_SECONDS) * 1000)
        assert saved["extra_field"] == "kept"
        assert not source.is_expired()

    @pytest.mark.asyncio
    async def test_missing_access_token_counts_as_expired(self, tmp_path):
        calls = []
        source = make_source(tmp_path, token_handler(calls), make_credentials(access_token=""))

        assert await source.get_valid_access_token() == "new-token"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_default_expiry_when_not_reported(self, tmp_path):
        calls = []
        source = make_source(
            tmp_path,
            token_handler(calls, payload={"access_token": "new-token"}),
            make_credentials(expires_at=0),
        )

        await source.get_valid_access_token()

        saved = json.loads((tmp_path / "creds.json").read_text())
        assert saved["expires_at"] == int((NOW + 3600 - EXPIRY_MARGIN_SECONDS) * 1000)

    @pytest.mark.asyncio
    async def test_concurrent_refresh_happens_once(self, tmp_path):
        """Test that a burst of callers shares a single token exchange."""
        calls = []
        source = make_source(
            tmp_path, token_handler(calls, delay=0.05), make_credentials(expires_at=0)
        )

        tokens = await asyncio.gather(*(source.get_valid_access_token() for _ in range(5)))

        assert tokens == ["new-token"] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_refresh_forces_exchange(self, tmp_path):
        calls = []
        source = make_source(tmp_path, token_handler(calls), make_credentials())

        assert await source.refresh() == "new-token"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_missing_refresh_material(self, tmp_path):
        calls = []
        source = make_source(
            tmp_path, token_handler(calls), make_credentials(expires_at=0, refresh_token=None)
        )

        with pytest.raises(ConfigurationError):
            await source.get_valid_access_token()
        assert calls == []

    @pytest.mark.asyncio
    async def test_error_answer(self, tmp_path):
        calls = []
        source = make_source(
            tmp_path,
            token_handler(calls, payload={"error": "invalid_grant"}, status=400),
            make_credentials(expires_at=0),
        )

        with pytest.raises(TokenRefreshError) as exc_info:
            await source.get_valid_access_token()

        assert "invalid_grant" in str(exc_info.value)
        assert exc_info.value.status_code == 400
        assert not (tmp_path / "creds.json").exists()

    @pytest.mark.asyncio
    async def test_non_json_answer(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="<html>bad gateway</html>")

        source = make_source(tmp_path, handler, make_credentials(expires_at=0))

        with pytest.raises(TokenRefreshError):
            await source.get_valid_access_token()

    @pytest.mark.asyncio
    async def test_transport_failure(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        source = make_source(tmp_path, handler, make_credentials(expires_at=0))

        with pytest.raises(TokenRefreshError):
            await source.get_valid_access_token()

    def test_expiry_boundary(self, tmp_path):
        credentials = make_credentials(expires_at=int(NOW * 1000) + 1)
        source = make_source(tmp_path, token_handler([]), credentials)
        assert not source.is_expired()

        later = make_source(tmp_path, token_handler([]), credentials, clock=lambda: NOW + 1)
        assert later.is_expired()

    def test_loads_from_store(self, tmp_path):
        path = tmp_path / "creds.json"
        path.write_text(json.dumps(make_credentials().model_dump()))
        source = TokenSource(CredentialStore(path), httpx.AsyncClient())
        assert source.project_id == "proj"

    def test_missing_store_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            TokenSource(CredentialStore(tmp_path / "absent.json"), httpx.AsyncClient())
