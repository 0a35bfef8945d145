"""Messages endpoint.

POST /v1/messages accepts a Messages API request, forwards it to the backend
as a generate-content request, and answers either with one message object or
with a ``text/event-stream`` of Messages stream events.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import StreamingResponse

from relay.api.dependencies import get_racer, get_settings, get_token_source, get_translator
from relay.auth.token_source import TokenSource
from relay.config import Settings
from relay.llm.batch import BatchTranslator
from relay.llm.client import EndpointRacer, RaceWinner, build_upstream_headers
from relay.llm.errors import UpstreamConnectionError
from relay.llm.models import MessagesRequest
from relay.llm.sse import iter_payloads
from relay.llm.streaming import StreamTranslator, encode_sse
from relay.llm.translator import RequestTranslator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def relay_stream(response: httpx.Response, model: str) -> AsyncIterator[str]:
    """Re-encode the winning backend stream as client events.

    The backend response is closed when the client goes away or the stream ends.
    """
    translator = StreamTranslator(model=model)
    try:
        async for event in translator.translate(response.aiter_text()):
            yield encode_sse(event)
    finally:
        await response.aclose()


def stream_response(winner: RaceWinner, model: str) -> StreamingResponse:
    """Wrap the winning backend stream in a client event stream.

    The background task closes the backend response even if the body is
    never iterated.
    """
    cleanup = BackgroundTasks()
    cleanup.add_task(winner.response.aclose)
    return StreamingResponse(
        relay_stream(winner.response, model),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
        background=cleanup,
    )


@router.post("/v1/messages", response_model=None)
async def create_message(
    payload: MessagesRequest,
    translator: RequestTranslator = Depends(get_translator),
    token_source: TokenSource = Depends(get_token_source),
    racer: EndpointRacer = Depends(get_racer),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse | dict[str, Any]:
    """Create a message through the backend.

    Raises:
        ConfigurationError: No project id or refresh material is configured.
        UpstreamOverloadedError: The selected endpoint was rate limited or unavailable.
        UpstreamRejectedError: The selected endpoint rejected the request.
        UpstreamConnectionError: The backend could not be reached.
    """
    provider_request = translator.translate(payload)
    logger.info(
        "%s -> %s (stream=%s)",
        payload.model,
        provider_request.model,
        payload.stream,
        extra={
            "model": payload.model,
            "target_model": provider_request.model,
            "stream": payload.stream,
            "request_id": provider_request.request_id,
        },
    )

    access_token = await token_source.get_valid_access_token()
    headers = build_upstream_headers(access_token, provider_request.model, settings.client_version)
    winner = await racer.race(provider_request.to_json(), headers)

    if payload.stream:
        return stream_response(winner, payload.model)

    try:
        await winner.response.aread()
        body = winner.response.text
    except httpx.HTTPError as e:
        raise UpstreamConnectionError(
            f"Failed to read response from {winner.endpoint}: {e}",
            endpoint=winner.endpoint,
        ) from e
    finally:
        await winner.response.aclose()

    message = BatchTranslator(model=payload.model).translate(iter_payloads(body))
    return message.model_dump()
