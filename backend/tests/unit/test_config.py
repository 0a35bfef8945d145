"""Unit tests for settings and the command-line entrypoint."""

import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from relay import __main__ as cli
from relay.config import Settings
from relay.llm.client import DEFAULT_ENDPOINTS
from relay.llm.errors import TokenRefreshError


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()
        assert settings.host == "127.0.0.1"
        assert settings.port == 51200
        assert settings.endpoints == DEFAULT_ENDPOINTS
        assert settings.client_version == "1.15.8"
        assert settings.default_max_tokens == 16384
        assert settings.log_file is None
        assert settings.log_level == "INFO"

    def test_environment(self):
        with patch.dict(os.environ, {
            "PROXY_HOST": "0.0.0.0",
            "PROXY_PORT": "8080",
            "RELAY_CREDENTIALS_PATH": "/tmp/creds.json",
            "RELAY_ENDPOINTS": "https://a.test/, https://b.test",
            "RELAY_TIMEOUT_SECONDS": "60",
            "RELAY_DEFAULT_MAX_TOKENS": "4096",
            "RELAY_LOG_FILE": "/tmp/relay.log",
            "RELAY_LOG_LEVEL": "debug",
        }, clear=True):
            settings = Settings.from_env()
        assert settings.host == "0.0.0.0"
        assert settings.port == 8080
        assert settings.credentials_path == Path("/tmp/creds.json")
        assert settings.endpoints == ["https://a.test", "https://b.test"]
        assert settings.timeout_seconds == 60.0
        assert settings.default_max_tokens == 4096
        assert settings.log_file == Path("/tmp/relay.log")
        assert settings.log_level == "DEBUG"

    def test_home_is_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        settings = Settings(credentials_path="~/c.json", log_file="~/r.log")
        assert settings.credentials_path == tmp_path / "c.json"
        assert settings.log_file == tmp_path / "r.log"


class TestCli:
    """Tests for the command-line entrypoint."""

    def test_cli_overrides_environment(self):
        with patch.dict(os.environ, {"PROXY_PORT": "9000", "PROXY_HOST": "0.0.0.0"}, clear=True):
            args = cli.parse_args(["--credentials", "/tmp/c.json", "serve", "--port", "9100"])
            settings = cli.build_settings(args)
        assert settings.port == 9100
        assert settings.host == "0.0.0.0"
        assert settings.credentials_path == Path("/tmp/c.json")

    def test_serve_is_default(self):
        with patch.dict(os.environ, {}, clear=True), \
             patch.object(cli, "configure_logging"), \
             patch.object(cli.uvicorn, "run") as run, \
             patch("relay.api.main.create_app") as create_app:
            assert cli.main([]) == 0

        create_app.assert_called_once()
        _, kwargs = run.call_args
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 51200

    def test_refresh_success(self, capsys):
        with patch.dict(os.environ, {}, clear=True), \
             patch.object(cli, "configure_logging"), \
             patch.object(cli, "refresh_credentials", new=AsyncMock()) as refresh:
            assert cli.main(["refresh"]) == 0

        refresh.assert_awaited_once()
        assert "refreshed" in capsys.readouterr().out

    def test_refresh_failure(self, capsys):
        failing = AsyncMock(side_effect=TokenRefreshError("invalid_grant"))
        with patch.dict(os.environ, {}, clear=True), \
             patch.object(cli, "configure_logging"), \
             patch.object(cli, "refresh_credentials", new=failing):
            assert cli.main(["refresh"]) == 1

        assert "invalid_grant" in capsys.readouterr().err

    def test_configure_logging_uses_log_file(self, tmp_path):
        settings = Settings(log_file=tmp_path / "relay.log")
        with patch.object(cli.logging, "basicConfig", MagicMock()) as basic_config:
            cli.configure_logging(settings, verbose=True)
        _, kwargs = basic_config.call_args
        assert kwargs["filename"] == str(tmp_path / "relay.log")
        assert kwargs["level"] == cli.logging.DEBUG
