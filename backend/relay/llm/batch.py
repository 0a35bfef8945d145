"""Backend event sequence -> single client message.

Used for non-streaming calls. The backend still answers with an event stream,
so the full body is read and folded into one ``MessageResponse``.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError

from .errors import TranslationAnomaly
from .models import (
    FunctionCallFragment,
    MessageResponse,
    OutputBlock,
    ReasoningText,
    SignatureOnly,
    TextContent,
    ToolUseContent,
    Usage,
    VisibleText,
    classify_part,
    parse_envelope,
)
from .streaming import new_message_id, new_tool_use_id

logger = logging.getLogger(__name__)


class BatchTranslator:
    """Fold a backend event sequence into one message.

    All visible text is concatenated into a single text block that sits where
    the first text fragment appeared. Each function call becomes its own
    tool_use block. Usage comes from the last usage report.
    """

    def __init__(
        self,
        model: str,
        message_id_factory: Callable[[], str] = new_message_id,
        tool_use_id_factory: Callable[[], str] = new_tool_use_id,
    ):
        self._model = model
        self._message_id_factory = message_id_factory
        self._tool_use_id_factory = tool_use_id_factory

    def translate(self, payloads: Iterable[Any]) -> MessageResponse:
        content: list[OutputBlock] = []
        text_block: TextContent | None = None
        usage = Usage()

        for payload in payloads:
            try:
                response = parse_envelope(payload)
            except TranslationAnomaly as e:
                logger.debug("Skipping envelope: %s", e)
                continue
            if response is None:
                continue

            for raw in response.parts:
                try:
                    fragments = classify_part(raw)
                except TranslationAnomaly as e:
                    logger.debug("Skipping part: %s", e)
                    continue

                for part in fragments:
                    if isinstance(part, VisibleText):
                        if text_block is None:
                            text_block = TextContent(text=part.text)
                            content.append(text_block)
                        else:
                            text_block.text += part.text
                    elif isinstance(part, FunctionCallFragment):
                        try:
                            tool_use = ToolUseContent(
                                id=self._tool_use_id_factory(), name=part.name, input=part.args
                            )
                        except ValidationError as e:
                            logger.debug("Skipping part: %s", e)
                            continue
                        content.append(tool_use)
                    elif isinstance(part, (ReasoningText, SignatureOnly)):
                        continue
                    else:
                        raise TypeError(f"Unhandled response part: {type(part).__name__}")

            if response.usage_metadata is not None:
                usage = Usage(
                    input_tokens=response.usage_metadata.input_tokens,
                    output_tokens=response.usage_metadata.output_tokens,
                )

        has_tool_use = any(isinstance(block, ToolUseContent) for block in content)
        if not content:
            content.append(TextContent(text=""))

        return MessageResponse(
            id=self._message_id_factory(),
            model=self._model,
            content=content,
            stop_reason="tool_use" if has_tool_use else "end_turn",
            usage=usage,
        )
