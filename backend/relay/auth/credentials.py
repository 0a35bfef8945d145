"""On-disk credential record.

The interactive login that produces this file lives outside the relay. The
relay only reads the record at startup and writes it back after a refresh.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from relay.llm.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_PATH = Path.home() / ".cloudcode-relay-credentials.json"


class Credentials(BaseModel):
    """OAuth material plus the backend project id.

    ``expires_at`` is epoch milliseconds and already includes the safety margin,
    so a token is usable while ``now < expires_at``. Unknown keys written by the
    login tool are kept and written back unchanged.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = ""
    refresh_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    project_id: str | None = None
    expires_at: int = 0


class CredentialStore:
    """JSON file holding one ``Credentials`` record."""

    def __init__(self, path: Path | str = DEFAULT_CREDENTIALS_PATH):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Credentials:
        """Read the record.

        Raises:
            ConfigurationError: The file is missing, unreadable, or not a credential record.
        """
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return Credentials.model_validate(raw)
        except OSError as e:
            raise ConfigurationError(f"Cannot read credentials at {self._path}: {e}") from e
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"Invalid credentials file {self._path}: {e}") from e

    def save(self, credentials: Credentials) -> None:
        """Write the record atomically, readable by the owner only."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(credentials.model_dump(), indent=2), encoding="utf-8"
        )
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self._path)
        logger.debug("Credentials saved to %s", self._path)
