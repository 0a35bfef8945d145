"""FastAPI dependency providers.

Long-lived collaborators are created once in the application lifespan and kept
on ``app.state``. Routes receive them through these providers, which tests
replace with ``app.dependency_overrides``.
"""

from fastapi import Depends, Request

from relay.auth.token_source import TokenSource
from relay.config import Settings
from relay.llm.client import EndpointRacer
from relay.llm.translator import RequestTranslator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_source(request: Request) -> TokenSource:
    return request.app.state.token_source


def get_racer(request: Request) -> EndpointRacer:
    return request.app.state.racer


def get_translator(
    token_source: TokenSource = Depends(get_token_source),
    settings: Settings = Depends(get_settings),
) -> RequestTranslator:
    """Translator bound to the project id of the current credentials."""
    return RequestTranslator(
        project_id=token_source.project_id,
        default_max_tokens=settings.default_max_tokens,
    )
