"""Relay error hierarchy.

Custom exceptions for translation and upstream operations with endpoint context.
Used by the API layer to pick the client-facing status code and error kind.
"""


class RelayError(Exception):
    """Base exception for relay operations."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.endpoint:
            parts.append(f"endpoint={self.endpoint}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " ".join(parts)


class ConfigurationError(RelayError):
    """Missing identity or credentials.

    Fatal. No request can be served until the configuration is fixed.
    """

    pass


class TokenRefreshError(ConfigurationError):
    """The token exchange did not return a usable access token."""

    pass


class UpstreamError(RelayError):
    """A backend endpoint answered with a failure.

    Carries a bounded excerpt of the response body for diagnostics.
    """

    EXCERPT_LIMIT = 300

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        body: str = "",
    ):
        super().__init__(message, endpoint, status_code)
        self.excerpt = body[: self.EXCERPT_LIMIT]


class UpstreamOverloadedError(UpstreamError):
    """429/503 - Backend capacity exhausted.

    Retryable. Surfaced to the client as a distinct overloaded status.
    """

    pass


class UpstreamRejectedError(UpstreamError):
    """Any other non-2xx answer from the backend.

    Non-retryable. The excerpt is forwarded to the client.
    """

    pass


class UpstreamConnectionError(UpstreamError):
    """The backend could not be reached at all (no HTTP status)."""

    pass


class TranslationAnomaly(RelayError):
    """Unexpected shape inside a backend payload.

    Never fatal. Translators catch it, skip the fragment, and continue.
    """

    pass


# Backend statuses reported to the caller as overloaded
OVERLOADED_STATUS_CODES = frozenset({429, 503})
