"""Client request -> provider request translation.

Builds a ``ProviderRequest`` from an inbound ``MessagesRequest``:

- maps the client model name to a backend model id;
- converts messages to provider turns, splitting tool results into their own turn;
- merges adjacent same-role turns so roles strictly alternate;
- forwards the system prompt as a dedicated system instruction;
- derives the generation config, including a thinking budget for targets
  that accept one;
- normalizes tool schemas and declares them under the field the target expects.

The translation is a pure transform. The only failure is a missing project id,
which is a configuration problem rather than a problem with the request.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from .errors import ConfigurationError
from .models import (
    ClientMessage,
    ContentBlock,
    FunctionCall,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponse,
    FunctionResponsePart,
    GenerateContentRequest,
    GenerationConfig,
    ImageBlock,
    InlineData,
    InlineDataPart,
    MessagesRequest,
    OtherBlock,
    Part,
    ProviderRequest,
    ProviderTurn,
    SystemInstruction,
    TextBlock,
    TextPart,
    ThinkingBlock,
    ThinkingConfig,
    ToolDeclarations,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)
from .schemas import normalize_tool_schema

logger = logging.getLogger(__name__)

# Client model name -> backend model id
MODEL_MAP: dict[str, str] = {
    "claude-sonnet-4-5-20250514": "claude-sonnet-4-5",
    "claude-sonnet-4-5": "claude-sonnet-4-5",
    "claude-sonnet-4-20250514": "claude-sonnet-4-5",
    "claude-opus-4-5-20250414": "claude-opus-4-6-thinking",
    "claude-opus-4-5": "claude-opus-4-6-thinking",
    "claude-opus-4-6": "claude-opus-4-6-thinking",
    "claude-sonnet-4-5-thinking": "claude-sonnet-4-5-thinking",
    "claude-opus-4-5-thinking": "claude-opus-4-6-thinking",
    "claude-opus-4-6-thinking": "claude-opus-4-6-thinking",
    "claude-haiku-3-5-20241022": "claude-sonnet-4-5",
    "claude-3-5-haiku-20241022": "claude-sonnet-4-5",
}

OPUS_TARGET = "claude-opus-4-6-thinking"
SONNET_TARGET = "claude-sonnet-4-5-thinking"
DEFAULT_TARGET = OPUS_TARGET

DEFAULT_MAX_TOKENS = 16384
MIN_THINKING_BUDGET = 1024
MAX_THINKING_BUDGET = 10240
THINKING_BUDGET_RATIO = 0.25
# Output budget must stay this far above the thinking budget.
ANSWER_HEADROOM = 1024

EMPTY_TURN_PLACEHOLDER = "..."
DEFAULT_IMAGE_MIME_TYPE = "image/png"


def map_model(client_model: str) -> str:
    """Map a client model name to a backend model id.

    Exact matches win, then a substring heuristic, then a fixed default.
    Unknown names never fail.
    """
    if client_model in MODEL_MAP:
        return MODEL_MAP[client_model]
    if "opus" in client_model:
        return OPUS_TARGET
    if "sonnet" in client_model:
        return SONNET_TARGET
    return DEFAULT_TARGET


def is_thinking_model(model_id: str) -> bool:
    """Whether the backend model accepts a thinking budget."""
    return "thinking" in model_id


def extract_tool_result_text(content: Any) -> str:
    """Best-effort text for a tool result's content."""
    if content is None:
        return "(no output)"
    if isinstance(content, str):
        return content or "(empty)"
    if isinstance(content, list):
        texts = [
            str(block.get("text", ""))
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(texts) or "(empty)"
    return json.dumps(content)


def _fallback_text(block: OtherBlock) -> str | None:
    value = block.text or block.content
    if not value:
        return None
    return value if isinstance(value, str) else json.dumps(value)


def convert_block(block: ContentBlock) -> Part | None:
    """Convert one client block to a provider part, or ``None`` to drop it."""
    if isinstance(block, TextBlock):
        return TextPart(text=block.text) if block.text else None
    if isinstance(block, ThinkingBlock):
        return None
    if isinstance(block, ImageBlock):
        source = block.source
        return InlineDataPart(
            inline_data=InlineData(
                mime_type=(source.media_type if source else None) or DEFAULT_IMAGE_MIME_TYPE,
                data=(source.data if source else None) or "",
            )
        )
    if isinstance(block, ToolUseBlock):
        return FunctionCallPart(
            function_call=FunctionCall(name=block.name, args=block.input or {}, id=block.id)
        )
    if isinstance(block, ToolResultBlock):
        # convert_message splits these into their own turn before we get here.
        return _tool_result_part(block)
    if isinstance(block, OtherBlock):
        text = _fallback_text(block)
        return TextPart(text=text) if text else None
    raise TypeError(f"Unhandled content block: {type(block).__name__}")


def _tool_result_part(block: ToolResultBlock) -> FunctionResponsePart:
    tool_use_id = block.tool_use_id
    return FunctionResponsePart(
        function_response=FunctionResponse(
            name=tool_use_id or "unknown",
            id=tool_use_id,
            response={"output": extract_tool_result_text(block.content)},
        )
    )


def convert_message(message: ClientMessage) -> list[ProviderTurn]:
    """Convert one client message to one or two provider turns.

    A message holding tool results becomes a user turn of function responses,
    followed by a separate user turn for any plain text that came with them.
    """
    role = "model" if message.role == "assistant" else "user"
    content = message.content

    if isinstance(content, list):
        tool_results = [block for block in content if isinstance(block, ToolResultBlock)]
        if tool_results:
            turns = [
                ProviderTurn(role="user", parts=[_tool_result_part(block) for block in tool_results])
            ]
            texts = [
                TextPart(text=block.text)
                for block in content
                if isinstance(block, TextBlock) and block.text
            ]
            if texts:
                turns.append(ProviderTurn(role="user", parts=texts))
            return turns

    parts: list[Part] = []
    if isinstance(content, str):
        if content:
            parts.append(TextPart(text=content))
    else:
        for block in content:
            part = convert_block(block)
            if part is not None:
                parts.append(part)

    if not parts:
        parts.append(TextPart(text=EMPTY_TURN_PLACEHOLDER))
    return [ProviderTurn(role=role, parts=parts)]


def merge_alternating_turns(turns: list[ProviderTurn]) -> list[ProviderTurn]:
    """Fold each turn into its predecessor when both share a role."""
    merged: list[ProviderTurn] = []
    for turn in turns:
        if merged and merged[-1].role == turn.role:
            merged[-1].parts.extend(turn.parts)
        else:
            merged.append(ProviderTurn(role=turn.role, parts=list(turn.parts)))
    return merged


def build_system_instruction(system: str | list[ContentBlock] | None) -> SystemInstruction:
    """Forward the system prompt; block lists keep their text blocks only."""
    parts: list[TextPart] = []
    if isinstance(system, str):
        if system:
            parts.append(TextPart(text=system))
    elif system:
        parts.extend(
            TextPart(text=block.text)
            for block in system
            if isinstance(block, TextBlock) and block.text is not None
        )
    return SystemInstruction(parts=parts)


def compute_thinking_budget(max_tokens: int, client_budget: int | None = None) -> int:
    """Client budget if given, else a quarter of the output budget, clamped."""
    if client_budget:
        return client_budget
    scaled = int(max_tokens * THINKING_BUDGET_RATIO)
    return min(MAX_THINKING_BUDGET, max(MIN_THINKING_BUDGET, scaled))


def build_generation_config(
    request: MessagesRequest,
    target_model: str,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
) -> GenerationConfig:
    """Derive output limits, thinking budget and temperature."""
    max_tokens = request.max_tokens or default_max_tokens
    thinking_config = None

    if is_thinking_model(target_model):
        client_budget = request.thinking.budget_tokens if request.thinking else None
        budget = compute_thinking_budget(max_tokens, client_budget)
        max_tokens = max(max_tokens, budget + ANSWER_HEADROOM)
        thinking_config = ThinkingConfig(thinking_budget=budget)
        logger.info(
            "[thinking] budget=%d (%s) maxOut=%d",
            budget,
            "from client" if client_budget else "auto",
            max_tokens,
        )

    return GenerationConfig(
        max_output_tokens=max_tokens,
        temperature=request.temperature,
        thinking_config=thinking_config,
    )


def build_tool_declarations(
    tools: list[ToolDefinition] | None,
    target_model: str,
) -> list[ToolDeclarations] | None:
    """Normalize tool schemas and attach them where the target family reads them."""
    if not tools:
        return None

    # Claude targets pass `parameters` through; other families read the JSON-schema field.
    claude_target = target_model.startswith("claude-")
    declarations = []
    for tool in tools:
        schema = normalize_tool_schema(tool.input_schema)
        declarations.append(
            FunctionDeclaration(
                name=tool.name,
                description=tool.description or "",
                parameters=schema if claude_target else None,
                parameters_json_schema=None if claude_target else schema,
            )
        )
    return [ToolDeclarations(function_declarations=declarations)]


def new_request_id() -> str:
    return f"agent-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class RequestTranslator:
    """Builds provider requests for one backend project.

    Usage:
        translator = RequestTranslator(project_id="my-project")
        provider_request = translator.translate(messages_request)
    """

    def __init__(
        self,
        project_id: str | None,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        request_id_factory: Callable[[], str] = new_request_id,
    ):
        """Initialize translator.

        Args:
            project_id: Backend project the requests are billed to.
            default_max_tokens: Output budget used when the client sends none.
            request_id_factory: Generates the per-request id.
        """
        self._project_id = project_id
        self._default_max_tokens = default_max_tokens
        self._request_id_factory = request_id_factory

    def translate(self, request: MessagesRequest) -> ProviderRequest:
        """Translate a client request.

        Raises:
            ConfigurationError: No project id is configured.
        """
        if not self._project_id:
            raise ConfigurationError(
                "No project id configured. Re-run the credential setup to fetch one."
            )

        target_model = map_model(request.model)

        turns: list[ProviderTurn] = []
        for message in request.messages:
            turns.extend(convert_message(message))

        return ProviderRequest(
            project=self._project_id,
            model=target_model,
            request=GenerateContentRequest(
                contents=merge_alternating_turns(turns),
                system_instruction=build_system_instruction(request.system),
                generation_config=build_generation_config(
                    request, target_model, self._default_max_tokens
                ),
                tools=build_tool_declarations(request.tools, target_model),
            ),
            request_id=self._request_id_factory(),
        )
