"""FastAPI application setup."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay.api.response import (
    API_ERROR,
    INVALID_REQUEST,
    OVERLOADED,
    OVERLOADED_STATUS,
    error_response,
)
from relay.api.routes import health, messages
from relay.auth.credentials import CredentialStore
from relay.auth.token_source import TokenSource
from relay.config import Settings
from relay.llm.client import EndpointRacer
from relay.llm.errors import (
    ConfigurationError,
    RelayError,
    UpstreamOverloadedError,
    UpstreamRejectedError,
)

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Startup fails with ``ConfigurationError`` when the credential file cannot
    be read: without it no request can be served.
    """
    settings: Settings = app.state.settings
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds, connect=CONNECT_TIMEOUT)
    )
    try:
        token_source = TokenSource(CredentialStore(settings.credentials_path), http_client)
    except ConfigurationError:
        await http_client.aclose()
        raise

    app.state.token_source = token_source
    racer = EndpointRacer(http_client, settings.endpoints)
    app.state.racer = racer
    logger.info(
        "--- Relay started on %s:%d ---",
        settings.host,
        settings.port,
        extra={"endpoints": racer.endpoints, "project_id": token_source.project_id},
    )
    logger.info("   Endpoints: %s", ", ".join(racer.endpoints))
    logger.info("   Project: %s", token_source.project_id)

    yield

    await http_client.aclose()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle unparsable or invalid request bodies."""
    details = "; ".join(
        f"{'.'.join(str(loc) for loc in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content=error_response(INVALID_REQUEST, details or "Invalid request body"),
    )


async def overloaded_handler(request: Request, exc: UpstreamOverloadedError) -> JSONResponse:
    """Handle rate-limited or unavailable backends."""
    if exc.status_code == 429:
        message = "Overloaded: the backend is rate limiting this account. Try again shortly."
    else:
        message = "Service temporarily unavailable. Try again."
    return JSONResponse(status_code=OVERLOADED_STATUS, content=error_response(OVERLOADED, message))


async def rejected_handler(request: Request, exc: UpstreamRejectedError) -> JSONResponse:
    """Forward the backend's rejection with a bounded excerpt."""
    logger.error("[relay error] %s", exc.excerpt or exc.message)
    return JSONResponse(
        status_code=400 if exc.status_code == 400 else 500,
        content=error_response(API_ERROR, exc.excerpt or "All endpoints failed"),
    )


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Handle configuration and connectivity errors."""
    logger.error("[relay error] %s", exc)
    return JSONResponse(status_code=500, content=error_response(API_ERROR, exc.message))


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the relay application."""
    app = FastAPI(
        title="Cloud Code Relay",
        description="Messages API front for the Cloud Code generate-content backend",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings.from_env()

    # Local clients of any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(UpstreamOverloadedError, overloaded_handler)
    app.add_exception_handler(UpstreamRejectedError, rejected_handler)
    app.add_exception_handler(RelayError, relay_error_handler)

    app.include_router(health.router)
    app.include_router(messages.router)
    return app


app = create_app()
