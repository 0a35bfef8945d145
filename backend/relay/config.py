"""Runtime configuration.

Every setting can come from the environment (or a ``.env`` file loaded at
startup). CLI flags override the environment.

Configuration (env vars):
- PROXY_HOST: Bind host (default: 127.0.0.1)
- PROXY_PORT: Bind port (default: 51200)
- RELAY_CREDENTIALS_PATH: Credential file (default: ~/.cloudcode-relay-credentials.json)
- RELAY_ENDPOINTS: Comma-separated backend base URLs, primary first
- RELAY_CLIENT_VERSION: Version advertised upstream (default: 1.15.8)
- RELAY_TIMEOUT_SECONDS: Upstream timeout (default: 300)
- RELAY_DEFAULT_MAX_TOKENS: Output budget when the client sends none (default: 16384)
- RELAY_LOG_FILE: Log to this file instead of stderr
- RELAY_LOG_LEVEL: Root log level (default: INFO)
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from relay.auth.credentials import DEFAULT_CREDENTIALS_PATH
from relay.llm.client import DEFAULT_CLIENT_VERSION, DEFAULT_ENDPOINTS
from relay.llm.translator import DEFAULT_MAX_TOKENS

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 51200
DEFAULT_TIMEOUT = 300.0


def _split_endpoints(value: str | None) -> list[str]:
    if not value:
        return list(DEFAULT_ENDPOINTS)
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Relay settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    credentials_path: Path = DEFAULT_CREDENTIALS_PATH
    endpoints: list[str] = Field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    client_version: str = DEFAULT_CLIENT_VERSION
    timeout_seconds: float = DEFAULT_TIMEOUT
    default_max_tokens: int = DEFAULT_MAX_TOKENS
    log_file: Path | None = None
    log_level: str = "INFO"

    @field_validator("credentials_path", "log_file")
    @classmethod
    def _expand_home(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        log_file = os.environ.get("RELAY_LOG_FILE")
        return cls(
            host=os.environ.get("PROXY_HOST", DEFAULT_HOST),
            port=int(os.environ.get("PROXY_PORT", DEFAULT_PORT)),
            credentials_path=Path(
                os.environ.get("RELAY_CREDENTIALS_PATH", str(DEFAULT_CREDENTIALS_PATH))
            ),
            endpoints=_split_endpoints(os.environ.get("RELAY_ENDPOINTS")),
            client_version=os.environ.get("RELAY_CLIENT_VERSION", DEFAULT_CLIENT_VERSION),
            timeout_seconds=float(os.environ.get("RELAY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT)),
            default_max_tokens=int(
                os.environ.get("RELAY_DEFAULT_MAX_TOKENS", DEFAULT_MAX_TOKENS)
            ),
            log_file=Path(log_file) if log_file else None,
            log_level=os.environ.get("RELAY_LOG_LEVEL", "INFO").upper(),
        )
