"""Command-line entrypoint.

Usage:
    # Serve the Messages endpoint (default command)
    python -m relay serve --port 51200

    # Log to a file so the client's terminal stays clean
    python -m relay --log-file ~/.cloudcode-relay.log serve

    # Force a token refresh and persist it
    python -m relay refresh
"""

import argparse
import asyncio
import logging
import sys

import httpx
import uvicorn

from relay.auth.credentials import CredentialStore
from relay.auth.token_source import TokenSource
from relay.config import Settings
from relay.llm.errors import ConfigurationError

logger = logging.getLogger("relay")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="relay",
        description="Local Messages API relay for the Cloud Code backend",
    )
    parser.add_argument("--credentials", default=None, help="Credential file path")
    parser.add_argument("--log-file", default=None, help="Write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")
    serve = subparsers.add_parser("serve", help="Run the relay server (default)")
    serve.add_argument("--host", default=None, help="Host to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on")
    subparsers.add_parser("refresh", help="Refresh the access token and exit")

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with CLI overrides applied."""
    overrides = {
        "credentials_path": args.credentials,
        "log_file": args.log_file,
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
    }
    env = Settings.from_env()
    merged = env.model_dump()
    merged.update({key: value for key, value in overrides.items() if value is not None})
    return Settings.model_validate(merged)


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format=LOG_FORMAT,
        filename=str(settings.log_file) if settings.log_file else None,
    )


async def refresh_credentials(settings: Settings) -> None:
    async with httpx.AsyncClient(timeout=settings.timeout_seconds) as http_client:
        source = TokenSource(CredentialStore(settings.credentials_path), http_client)
        await source.refresh()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = build_settings(args)
    configure_logging(settings, args.verbose)

    if args.command == "refresh":
        try:
            asyncio.run(refresh_credentials(settings))
        except ConfigurationError as e:
            logger.error("Refresh failed: %s", e)
            print(f"Refresh failed: {e}", file=sys.stderr)
            return 1
        print(f"Access token refreshed and saved to {settings.credentials_path}")
        return 0

    from relay.api.main import create_app

    print(f"Relay running on http://{settings.host}:{settings.port}")
    if settings.log_file:
        print(f"   Log: {settings.log_file}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
