"""Event-stream framing for backend responses.

The backend answers with ``data: <json>`` lines. These helpers turn either a
live text stream or a fully read body into parsed JSON payloads. Lines that
are not data lines, and data that is not valid JSON, are dropped.
"""

import json
import logging
from collections.abc import AsyncIterator, Iterator
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"


def parse_data_line(line: str) -> Any | None:
    """Return the JSON payload of a ``data:`` line, or ``None`` to skip it."""
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    raw = line[len(DATA_PREFIX):].strip()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("Dropping malformed event line: %.200s", raw)
        return None


def iter_payloads(body: str) -> Iterator[Any]:
    """Parse every data line of a complete event-stream body."""
    for line in body.split("\n"):
        payload = parse_data_line(line)
        if payload is not None:
            yield payload


async def aiter_payloads(chunks: AsyncIterator[str]) -> AsyncIterator[Any]:
    """Parse data lines from a text stream as they complete.

    An unterminated trailing line is held until the next chunk arrives, and
    parsed once the stream ends.
    """
    buffer = ""
    async for chunk in chunks:
        buffer += chunk
        *lines, buffer = buffer.split("\n")
        for line in lines:
            payload = parse_data_line(line)
            if payload is not None:
                yield payload

    if buffer:
        payload = parse_data_line(buffer)
        if payload is not None:
            yield payload
