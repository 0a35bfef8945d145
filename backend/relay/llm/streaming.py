"""Backend event stream -> client event stream.

``StreamTranslator`` consumes the backend's ``data:`` lines as they arrive and
re-emits them as Messages-style stream events:

    message_start
    content_block_start / content_block_delta* / content_block_stop   (per block)
    message_delta (stop_reason, output_tokens)
    message_stop

Block indices start at 0 and are contiguous; a block is always stopped before
the next one starts. Visible text is forwarded fragment by fragment. Reasoning
text is never forwarded. Each function call becomes a complete tool_use block
whose arguments are sent as a single JSON delta.

The closing sequence runs even when reading the backend stream fails, so the
client always sees a terminated message.
"""

import json
import logging
import uuid
from collections.abc import AsyncIterator, Callable

import httpx
from pydantic import ValidationError

from .errors import TranslationAnomaly
from .models import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    DeltaUsage,
    FunctionCallFragment,
    InputJsonDelta,
    MessageDelta,
    MessageDeltaEvent,
    MessageResponse,
    MessageStartEvent,
    MessageStopEvent,
    ReasoningText,
    ResponsePart,
    SignatureOnly,
    StreamEvent,
    TextContent,
    TextDelta,
    ToolUseContent,
    Usage,
    VisibleText,
    classify_part,
    parse_envelope,
)
from .sse import aiter_payloads

logger = logging.getLogger(__name__)


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


def new_tool_use_id() -> str:
    return f"toolu_{uuid.uuid4().hex[:24]}"


def encode_sse(event: StreamEvent) -> str:
    """Frame one client event as a server-sent event."""
    return f"event: {event.type}\ndata: {event.model_dump_json()}\n\n"


class StreamTranslator:
    """Per-request translation state for one streamed response.

    Usage:
        translator = StreamTranslator(model="claude-sonnet-4-5")
        async for event in translator.translate(response.aiter_text()):
            yield encode_sse(event)
    """

    def __init__(
        self,
        model: str,
        message_id_factory: Callable[[], str] = new_message_id,
        tool_use_id_factory: Callable[[], str] = new_tool_use_id,
    ):
        """Initialize translator.

        Args:
            model: Client-facing model name echoed back in message_start.
            message_id_factory: Generates the message id.
            tool_use_id_factory: Generates one id per tool_use block.
        """
        self._model = model
        self._message_id_factory = message_id_factory
        self._tool_use_id_factory = tool_use_id_factory

        self.content_index = 0
        self.block_open = False
        self.tool_use_emitted = False
        self.input_tokens = 0
        self.output_tokens = 0
        self.reasoning_chars = 0

    async def translate(self, chunks: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
        """Yield client events for a backend text stream."""
        yield MessageStartEvent(
            message=MessageResponse(id=self._message_id_factory(), model=self._model, usage=Usage())
        )

        try:
            async for payload in aiter_payloads(chunks):
                for event in self._handle_payload(payload):
                    yield event
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.warning("[stream error] %s", e, extra={"model": self._model})

        for event in self._finish():
            yield event

    def _handle_payload(self, payload: object) -> list[StreamEvent]:
        try:
            response = parse_envelope(payload)
        except TranslationAnomaly as e:
            logger.debug("Skipping envelope: %s", e)
            return []
        if response is None:
            return []

        events: list[StreamEvent] = []
        for raw in response.parts:
            try:
                fragments = classify_part(raw)
            except TranslationAnomaly as e:
                logger.debug("Skipping part: %s", e)
                continue
            for fragment in fragments:
                try:
                    events.extend(self._handle_part(fragment))
                except ValidationError as e:
                    logger.debug("Skipping part: %s", e)

        if response.usage_metadata is not None:
            # Counters are cumulative; the latest report wins.
            self.input_tokens = response.usage_metadata.input_tokens
            self.output_tokens = response.usage_metadata.output_tokens
        return events

    def _handle_part(self, part: ResponsePart) -> list[StreamEvent]:
        if isinstance(part, VisibleText):
            events: list[StreamEvent] = []
            if not self.block_open:
                events.append(
                    ContentBlockStartEvent(index=self.content_index, content_block=TextContent())
                )
                self.block_open = True
            events.append(
                ContentBlockDeltaEvent(index=self.content_index, delta=TextDelta(text=part.text))
            )
            return events

        if isinstance(part, ReasoningText):
            self.reasoning_chars += len(part.text)
            return []

        if isinstance(part, SignatureOnly):
            return []

        if isinstance(part, FunctionCallFragment):
            # Build the block before touching state so a bad fragment leaves none behind.
            index = self.content_index + 1 if self.block_open else self.content_index
            tool_events: list[StreamEvent] = [
                ContentBlockStartEvent(
                    index=index,
                    content_block=ToolUseContent(
                        id=self._tool_use_id_factory(), name=part.name, input={}
                    ),
                ),
                ContentBlockDeltaEvent(
                    index=index, delta=InputJsonDelta(partial_json=json.dumps(part.args))
                ),
                ContentBlockStopEvent(index=index),
            ]
            events = self._close_text_block()
            events.extend(tool_events)
            self.content_index += 1
            self.tool_use_emitted = True
            return events

        raise TypeError(f"Unhandled response part: {type(part).__name__}")

    def _close_text_block(self) -> list[StreamEvent]:
        if not self.block_open:
            return []
        event = ContentBlockStopEvent(index=self.content_index)
        self.content_index += 1
        self.block_open = False
        return [event]

    def _finish(self) -> list[StreamEvent]:
        events = self._close_text_block()
        stop_reason = "tool_use" if self.tool_use_emitted else "end_turn"
        logger.debug(
            "Stream finished: stop_reason=%s output_tokens=%d reasoning_chars=%d",
            stop_reason,
            self.output_tokens,
            self.reasoning_chars,
        )
        events.append(
            MessageDeltaEvent(
                delta=MessageDelta(stop_reason=stop_reason),
                usage=DeltaUsage(output_tokens=self.output_tokens),
            )
        )
        events.append(MessageStopEvent())
        return events
