"""Upstream client: header construction and endpoint racing.

The same serialized request is sent to every configured endpoint at once.
The racer waits for every endpoint to answer (response headers, or an error)
and then picks deterministically:

- the first-listed endpoint that succeeded, if any did;
- otherwise the first-listed endpoint's failure.

This prefers a stable backend choice over the lowest latency. Failures are
classified so the API layer can tell capacity problems (429/503) apart from
genuine rejections.
"""

import asyncio
import json
import logging
from dataclasses import dataclass

import httpx

from .errors import (
    OVERLOADED_STATUS_CODES,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamOverloadedError,
    UpstreamRejectedError,
)
from .translator import is_thinking_model

logger = logging.getLogger(__name__)

PROD_ENDPOINT = "https://cloudcode-pa.googleapis.com"
SANDBOX_ENDPOINT = "https://daily-cloudcode-pa.sandbox.googleapis.com"
DEFAULT_ENDPOINTS = [PROD_ENDPOINT, SANDBOX_ENDPOINT]

STREAM_PATH = "/v1internal:streamGenerateContent?alt=sse"
DEFAULT_CLIENT_VERSION = "1.15.8"
THINKING_BETA = "interleaved-thinking-2025-05-14"
LOG_EXCERPT_LIMIT = 200

CLIENT_METADATA = {
    "ideType": "IDE_UNSPECIFIED",
    "platform": "PLATFORM_UNSPECIFIED",
    "pluginType": "GEMINI",
}


def build_upstream_headers(
    access_token: str,
    target_model: str,
    client_version: str = DEFAULT_CLIENT_VERSION,
) -> dict[str, str]:
    """Headers shared by every candidate endpoint."""
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
        "User-Agent": f"antigravity/{client_version} linux/x86_64",
        "X-Goog-Api-Client": "google-cloud-sdk vscode_cloudshelleditor/0.1",
        "Client-Metadata": json.dumps(CLIENT_METADATA, separators=(",", ":")),
    }
    if is_thinking_model(target_model):
        headers["anthropic-beta"] = THINKING_BETA
    return headers


def classify_failure(endpoint: str, status_code: int, body: str) -> UpstreamError:
    """Map a non-2xx answer to the matching upstream error."""
    if status_code in OVERLOADED_STATUS_CODES:
        return UpstreamOverloadedError(
            f"Endpoint overloaded ({status_code})",
            endpoint=endpoint,
            status_code=status_code,
            body=body,
        )
    return UpstreamRejectedError(
        f"Endpoint rejected request ({status_code})",
        endpoint=endpoint,
        status_code=status_code,
        body=body,
    )


@dataclass
class RaceWinner:
    """The selected endpoint and its open, unread response."""

    endpoint: str
    response: httpx.Response


class EndpointRacer:
    """Fan one request out to all endpoints and resolve to a single outcome.

    Usage:
        racer = EndpointRacer(http_client, endpoints=[primary, secondary])
        winner = await racer.race(provider_request.to_json(), headers)
        async for text in winner.response.aiter_text():
            ...
        await winner.response.aclose()

    The caller owns the winning response and must close it.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoints: list[str] | None = None,
        path: str = STREAM_PATH,
    ):
        """Initialize racer.

        Args:
            http_client: Shared async HTTP client.
            endpoints: Candidate base URLs, primary first. At least two are expected.
            path: Path appended to every base URL.
        """
        self._http_client = http_client
        self._endpoints = list(endpoints or DEFAULT_ENDPOINTS)
        self._path = path

    @property
    def endpoints(self) -> list[str]:
        return list(self._endpoints)

    async def race(self, body: bytes, headers: dict[str, str]) -> RaceWinner:
        """Send ``body`` to every endpoint and pick the outcome.

        Raises:
            UpstreamOverloadedError: The primary failed with 429/503 and nothing succeeded.
            UpstreamRejectedError: The primary failed otherwise and nothing succeeded.
            UpstreamConnectionError: The primary was unreachable and nothing succeeded.
        """
        attempts = [
            asyncio.ensure_future(self._attempt(endpoint, body, headers))
            for endpoint in self._endpoints
        ]
        try:
            outcomes = await asyncio.gather(*attempts, return_exceptions=True)
        except asyncio.CancelledError:
            # Attempts that already connected hold open streams nobody will read.
            for attempt in attempts:
                if attempt.done() and not attempt.cancelled() and attempt.exception() is None:
                    await attempt.result().response.aclose()
            raise

        winner: RaceWinner | None = None
        for outcome in outcomes:
            if isinstance(outcome, RaceWinner):
                if winner is None:
                    winner = outcome
                else:
                    await outcome.response.aclose()

        if winner is not None:
            logger.debug("Selected endpoint %s", winner.endpoint)
            return winner

        # Nothing succeeded, so every outcome is an exception.
        raise outcomes[0]

    async def _attempt(self, endpoint: str, body: bytes, headers: dict[str, str]) -> RaceWinner:
        request = self._http_client.build_request(
            "POST", f"{endpoint}{self._path}", content=body, headers=headers
        )
        try:
            response = await self._http_client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.warning(
                "  [%s] connection failed: %s",
                endpoint,
                e,
                extra={"endpoint": endpoint},
            )
            raise UpstreamConnectionError(
                f"Failed to reach {endpoint}: {e}", endpoint=endpoint
            ) from e

        if response.is_success:
            return RaceWinner(endpoint=endpoint, response=response)

        try:
            await response.aread()
            text = response.text
        except httpx.HTTPError:
            text = ""
        finally:
            await response.aclose()

        logger.warning(
            "  [%s] %d: %s",
            endpoint,
            response.status_code,
            text[:LOG_EXCERPT_LIMIT],
            extra={"endpoint": endpoint, "status_code": response.status_code},
        )
        raise classify_failure(endpoint, response.status_code, text)
