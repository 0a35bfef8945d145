"""Unit tests for relay data models and error classes.

Tests cover:
- Content block union routing
- Provider model wire format
- Response part classification
- Error hierarchy and attributes
"""

import pytest
from pydantic import ValidationError

from relay.llm.errors import (
    ConfigurationError,
    RelayError,
    TokenRefreshError,
    TranslationAnomaly,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamOverloadedError,
    UpstreamRejectedError,
)
from relay.llm.models import (
    ClientMessage,
    FunctionCallFragment,
    ImageBlock,
    MessagesRequest,
    OtherBlock,
    ReasoningText,
    SignatureOnly,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UsageMetadata,
    VisibleText,
    classify_part,
    parse_envelope,
)


class TestContentBlocks:
    """Tests for client content block routing."""

    def test_known_types(self):
        message = ClientMessage.model_validate({
            "role": "user",
            "content": [
                {"type": "text", "text": "a", "cache_control": {"type": "ephemeral"}},
                {"type": "thinking", "thinking": "b"},
                {"type": "image", "source": {"type": "base64", "data": "x"}},
                {"type": "tool_use", "id": "t", "name": "f", "input": {}},
                {"type": "tool_result", "tool_use_id": "t", "content": "r"},
            ],
        })
        assert [type(block) for block in message.content] == [
            TextBlock,
            ThinkingBlock,
            ImageBlock,
            ToolUseBlock,
            ToolResultBlock,
        ]

    def test_unknown_type_routes_to_other(self):
        message = ClientMessage.model_validate(
            {"role": "user", "content": [{"type": "redacted_thinking", "data": "x"}, {"text": "no type"}]}
        )
        assert all(isinstance(block, OtherBlock) for block in message.content)
        assert message.content[1].text == "no type"

    def test_request_requires_model(self):
        with pytest.raises(ValidationError):
            MessagesRequest.model_validate({"messages": []})

    def test_request_keeps_unknown_fields(self):
        request = MessagesRequest.model_validate(
            {"model": "m", "messages": [], "metadata": {"user_id": "u"}, "top_k": 5}
        )
        assert request.stream is False
        assert request.model_extra["top_k"] == 5


class TestClassifyPart:
    """Tests for response part classification."""

    def test_visible_text(self):
        assert classify_part({"text": "hi"}) == [VisibleText(text="hi")]

    def test_reasoning_text(self):
        assert classify_part({"text": "hmm", "thought": True}) == [ReasoningText(text="hmm")]

    def test_signature_only(self):
        assert classify_part({"thoughtSignature": "sig"}) == [SignatureOnly(signature="sig")]
        assert classify_part({"text": "", "thoughtSignature": "sig"}) == [SignatureOnly(signature="sig")]

    def test_text_with_signature_is_visible(self):
        assert classify_part({"text": "answer", "thoughtSignature": "sig"}) == [VisibleText(text="answer")]

    def test_function_call(self):
        parts = classify_part({"functionCall": {"name": "read", "args": {"path": "a"}}})
        assert parts == [FunctionCallFragment(name="read", args={"path": "a"})]

    def test_function_call_with_signature(self):
        parts = classify_part({"functionCall": {"name": "read"}, "thoughtSignature": "sig"})
        assert parts == [FunctionCallFragment(name="read", args={})]

    def test_text_and_function_call_in_one_part(self):
        parts = classify_part({"text": "Reading it now.", "functionCall": {"name": "read", "args": {}}})
        assert parts == [
            VisibleText(text="Reading it now."),
            FunctionCallFragment(name="read", args={}),
        ]

    @pytest.mark.parametrize(
        "raw",
        [
            "text",
            None,
            {},
            {"functionCall": {"args": {}}},
            {"functionCall": "read"},
            {"functionCall": {"name": 7, "args": {}}},
            {"functionCall": {"name": ["read"]}},
            {"functionCall": {"name": ""}},
            {"inlineData": {}},
            {"text": 5},
        ],
    )
    def test_anomalies(self, raw):
        with pytest.raises(TranslationAnomaly):
            classify_part(raw)


class TestParseEnvelope:
    """Tests for envelope parsing."""

    def test_parts_and_usage(self):
        response = parse_envelope({
            "response": {
                "candidates": [{"content": {"role": "model", "parts": [{"text": "a"}]}}],
                "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 4, "thoughtsTokenCount": 6},
            }
        })
        assert response.parts == [{"text": "a"}]
        assert response.usage_metadata.input_tokens == 10
        assert response.usage_metadata.output_tokens == 10

    def test_missing_response(self):
        assert parse_envelope({"traceId": "x"}) is None

    def test_no_candidates(self):
        assert parse_envelope({"response": {}}).parts == []

    def test_invalid_envelope(self):
        with pytest.raises(TranslationAnomaly):
            parse_envelope({"response": {"candidates": "nope"}})

    def test_usage_defaults(self):
        usage = UsageMetadata()
        assert usage.input_tokens == 0
        assert usage.output_tokens == 0


class TestErrors:
    """Tests for the error hierarchy."""

    def test_str_includes_context(self):
        error = UpstreamRejectedError("Rejected", endpoint="https://a", status_code=400, body="bad")
        assert str(error) == "Rejected endpoint=https://a status=400"
        assert error.message == "Rejected"

    def test_excerpt_is_bounded(self):
        error = UpstreamError("x", body="y" * 1000)
        assert len(error.excerpt) == UpstreamError.EXCERPT_LIMIT

    def test_hierarchy(self):
        assert issubclass(TokenRefreshError, ConfigurationError)
        for cls in (UpstreamOverloadedError, UpstreamRejectedError, UpstreamConnectionError):
            assert issubclass(cls, UpstreamError)
        assert issubclass(UpstreamError, RelayError)
        assert issubclass(TranslationAnomaly, RelayError)
