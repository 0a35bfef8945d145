"""Relay data models.

Two vocabularies live here:

- Client format: the Messages-style request (messages made of content blocks),
  the response message, and the stream events sent back to the caller.
- Provider format: the generate-content request (turns made of parts) and the
  response envelopes the backend streams back.

Client content blocks form a closed tagged union. Any block whose ``type`` is not
recognized is routed to ``OtherBlock`` so the translator handles it explicitly
instead of guessing.
"""

import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .errors import TranslationAnomaly

# =============================================================================
# Client format: request
# =============================================================================


class TextBlock(BaseModel):
    """Plain text content."""

    model_config = ConfigDict(extra="allow")

    type: Literal["text"] = "text"
    text: str | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _stringify_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)


class ThinkingBlock(BaseModel):
    """Reasoning produced by a previous assistant turn."""

    model_config = ConfigDict(extra="allow")

    type: Literal["thinking"] = "thinking"
    thinking: str = ""
    signature: str | None = None


class ImageSource(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "base64"
    media_type: str | None = None
    data: str | None = None


class ImageBlock(BaseModel):
    """Inline image content."""

    model_config = ConfigDict(extra="allow")

    type: Literal["image"] = "image"
    source: ImageSource | None = None


class ToolUseBlock(BaseModel):
    """A tool call issued by the assistant."""

    model_config = ConfigDict(extra="allow")

    type: Literal["tool_use"] = "tool_use"
    id: str | None = None
    name: str
    input: dict[str, Any] | None = None


class ToolResultBlock(BaseModel):
    """The caller's answer to a tool call."""

    model_config = ConfigDict(extra="allow")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str | None = None
    content: Any = None
    is_error: bool | None = None


class OtherBlock(BaseModel):
    """Any block kind this relay does not know about."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    text: Any = None
    content: Any = None


BLOCK_TYPES = frozenset({"text", "thinking", "image", "tool_use", "tool_result"})


def _block_tag(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return kind if kind in BLOCK_TYPES else "other"


ContentBlock = Annotated[
    Union[
        Annotated[TextBlock, Tag("text")],
        Annotated[ThinkingBlock, Tag("thinking")],
        Annotated[ImageBlock, Tag("image")],
        Annotated[ToolUseBlock, Tag("tool_use")],
        Annotated[ToolResultBlock, Tag("tool_result")],
        Annotated[OtherBlock, Tag("other")],
    ],
    Discriminator(_block_tag),
]


def _drop_null_blocks(value: Any) -> Any:
    if isinstance(value, list):
        return [block for block in value if block is not None]
    return value


class ClientMessage(BaseModel):
    """A single message in the conversation."""

    model_config = ConfigDict(extra="allow")

    role: str
    content: str | list[ContentBlock] = ""

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        if value is None:
            return ""
        return _drop_null_blocks(value)


class ToolDefinition(BaseModel):
    """A callable tool offered to the model."""

    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = None


class ThinkingParam(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    budget_tokens: int | None = None


class MessagesRequest(BaseModel):
    """Inbound Messages API request."""

    model_config = ConfigDict(extra="allow")

    model: str
    messages: list[ClientMessage] = Field(default_factory=list)
    system: str | list[ContentBlock] | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    thinking: ThinkingParam | None = None
    tools: list[ToolDefinition] | None = None
    stream: bool = False

    @field_validator("system", mode="before")
    @classmethod
    def _skip_null_system_blocks(cls, value: Any) -> Any:
        return _drop_null_blocks(value)


# =============================================================================
# Client format: response and stream events
# =============================================================================


class Usage(BaseModel):
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolUseContent(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


OutputBlock = Union[TextContent, ToolUseContent]


class MessageResponse(BaseModel):
    """Messages API response object."""

    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    model: str
    content: list[OutputBlock] = Field(default_factory=list)
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: Usage = Field(default_factory=Usage)


class TextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class InputJsonDelta(BaseModel):
    type: Literal["input_json_delta"] = "input_json_delta"
    partial_json: str


class MessageStartEvent(BaseModel):
    type: Literal["message_start"] = "message_start"
    message: MessageResponse


class ContentBlockStartEvent(BaseModel):
    type: Literal["content_block_start"] = "content_block_start"
    index: int
    content_block: OutputBlock


class ContentBlockDeltaEvent(BaseModel):
    type: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: TextDelta | InputJsonDelta


class ContentBlockStopEvent(BaseModel):
    type: Literal["content_block_stop"] = "content_block_stop"
    index: int


class MessageDelta(BaseModel):
    stop_reason: str | None = None
    stop_sequence: str | None = None


class DeltaUsage(BaseModel):
    output_tokens: int = 0


class MessageDeltaEvent(BaseModel):
    type: Literal["message_delta"] = "message_delta"
    delta: MessageDelta
    usage: DeltaUsage


class MessageStopEvent(BaseModel):
    type: Literal["message_stop"] = "message_stop"


StreamEvent = Union[
    MessageStartEvent,
    ContentBlockStartEvent,
    ContentBlockDeltaEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStopEvent,
]


# =============================================================================
# Provider format: request
# =============================================================================


class ProviderModel(BaseModel):
    """Base for provider models; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextPart(ProviderModel):
    text: str


class InlineData(ProviderModel):
    mime_type: str
    data: str


class InlineDataPart(ProviderModel):
    inline_data: InlineData


class FunctionCall(ProviderModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class FunctionCallPart(ProviderModel):
    function_call: FunctionCall


class FunctionResponse(ProviderModel):
    name: str
    id: str | None = None
    response: dict[str, Any]


class FunctionResponsePart(ProviderModel):
    function_response: FunctionResponse


Part = Union[TextPart, InlineDataPart, FunctionCallPart, FunctionResponsePart]


class ProviderTurn(ProviderModel):
    """One entry of the provider conversation."""

    role: Literal["user", "model"]
    parts: list[Part]


class SystemInstruction(ProviderModel):
    role: Literal["user"] = "user"
    parts: list[TextPart] = Field(default_factory=list)


class ThinkingConfig(ProviderModel):
    include_thoughts: bool = True
    thinking_budget: int


class GenerationConfig(ProviderModel):
    max_output_tokens: int
    temperature: float | None = None
    thinking_config: ThinkingConfig | None = None


class FunctionDeclaration(ProviderModel):
    """Tool declaration; exactly one of the two schema fields is set."""

    name: str
    description: str = ""
    parameters: dict[str, Any] | None = None
    parameters_json_schema: dict[str, Any] | None = None


class ToolDeclarations(ProviderModel):
    function_declarations: list[FunctionDeclaration]


class GenerateContentRequest(ProviderModel):
    contents: list[ProviderTurn]
    system_instruction: SystemInstruction = Field(default_factory=SystemInstruction)
    generation_config: GenerationConfig
    tools: list[ToolDeclarations] | None = None


class ProviderRequest(ProviderModel):
    """Outbound request envelope: identity plus the generate-content request."""

    project: str
    model: str
    request: GenerateContentRequest
    request_type: str = "agent"
    user_agent: str = "antigravity"
    request_id: str

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


# =============================================================================
# Provider format: response envelopes
# =============================================================================


class UsageMetadata(ProviderModel):
    """Cumulative token counts reported by the backend."""

    prompt_token_count: int | None = None
    candidates_token_count: int | None = None
    thoughts_token_count: int | None = None

    @property
    def input_tokens(self) -> int:
        return self.prompt_token_count or 0

    @property
    def output_tokens(self) -> int:
        # Reasoning tokens are billed as output.
        return (self.candidates_token_count or 0) + (self.thoughts_token_count or 0)


class CandidateContent(ProviderModel):
    role: str | None = None
    parts: list[Any] = Field(default_factory=list)


class Candidate(ProviderModel):
    content: CandidateContent | None = None
    finish_reason: str | None = None


class GenerateContentResponse(ProviderModel):
    candidates: list[Candidate] = Field(default_factory=list)
    usage_metadata: UsageMetadata | None = None

    @property
    def parts(self) -> list[Any]:
        """Parts of the first candidate, the only one the relay reads."""
        if not self.candidates or self.candidates[0].content is None:
            return []
        return self.candidates[0].content.parts


class StreamEnvelope(ProviderModel):
    response: GenerateContentResponse | None = None


# =============================================================================
# Provider format: classified response parts
# =============================================================================


@dataclass(frozen=True)
class VisibleText:
    """Answer text meant for the caller."""

    text: str


@dataclass(frozen=True)
class ReasoningText:
    """Internal reasoning; never forwarded."""

    text: str


@dataclass(frozen=True)
class SignatureOnly:
    """A reasoning signature without any text."""

    signature: str


@dataclass(frozen=True)
class FunctionCallFragment:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


ResponsePart = Union[VisibleText, ReasoningText, SignatureOnly, FunctionCallFragment]


def classify_part(raw: Any) -> list[ResponsePart]:
    """Sort one backend part into the closed set of part kinds.

    A part may carry text and a function call at once. Both are kept, text
    first, so the caller sees them in the order the backend meant.

    Raises:
        TranslationAnomaly: The part matches none of the known kinds, or its
            function call has no usable name.
    """
    if not isinstance(raw, dict):
        raise TranslationAnomaly(f"Part is not an object: {raw!r:.80}")

    call: FunctionCallFragment | None = None
    if "functionCall" in raw:
        function_call = raw["functionCall"]
        name = function_call.get("name") if isinstance(function_call, dict) else None
        if not isinstance(name, str) or not name:
            raise TranslationAnomaly(f"Malformed functionCall: {function_call!r:.80}")
        args = function_call.get("args")
        call = FunctionCallFragment(name=name, args=args if isinstance(args, dict) else {})

    fragments: list[ResponsePart] = []
    text = raw.get("text")
    signature = raw.get("thoughtSignature")
    if isinstance(text, str) and (text or (not signature and call is None)):
        if raw.get("thought") is True:
            fragments.append(ReasoningText(text=text))
        else:
            fragments.append(VisibleText(text=text))
    elif signature and call is None:
        fragments.append(SignatureOnly(signature=signature))

    if call is not None:
        fragments.append(call)
    if not fragments:
        raise TranslationAnomaly(f"Unrecognized part keys: {sorted(raw)}")
    return fragments


def parse_envelope(payload: Any) -> GenerateContentResponse | None:
    """Return the response carried by one stream envelope, if any.

    Raises:
        TranslationAnomaly: The payload is not a valid envelope.
    """
    try:
        envelope = StreamEnvelope.model_validate(payload)
    except ValidationError as e:
        raise TranslationAnomaly(f"Malformed envelope: {e.error_count()} error(s)") from e
    return envelope.response
