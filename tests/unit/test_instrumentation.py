"""Unit tests for the tracing helpers.

OpenTelemetry is mocked throughout; ``opentelemetry-api`` is only
imported for the ``SpanKind`` and ``StatusCode`` constants.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import chatbubble.instrumentation as inst
from chatbubble.instrumentation import (
    record_error,
    record_rate_limited,
    record_step,
    record_tool_output,
    record_turn,
    step_span,
    tool_span,
    turn_span,
    uninstrument,
)
from chatbubble.message import ToolCall
from chatbubble.streaming import StreamData


@pytest.fixture(autouse=True)
def _reset_tracer():
    inst._tracer = None
    yield
    inst._tracer = None


def _fake_otel(tracer):
    trace_module = MagicMock()
    trace_module.get_tracer.return_value = tracer
    trace_module.NoOpTracer = type("NoOpTracer", (), {})
    patches = (
        patch("importlib.util.find_spec", return_value=MagicMock()),
        patch.dict("sys.modules", {
            "opentelemetry": MagicMock(trace=trace_module),
            "opentelemetry.trace": trace_module,
        }),
    )
    return trace_module, patches


class TestInstrument:
    def test_missing_otel_points_at_extra(self):
        with patch("importlib.util.find_spec", return_value=None):
            with pytest.raises(ImportError, match=r"agentic-chat-bubble\[otel\]"):
                inst.instrument()

    def test_uses_package_tracer_name(self):
        tracer = MagicMock()
        trace_module, (p1, p2) = _fake_otel(tracer)
        with p1, p2:
            inst.instrument()

        assert inst._tracer is tracer
        trace_module.get_tracer.assert_called_once_with("chatbubble")

    def test_custom_tracer_name(self):
        trace_module, (p1, p2) = _fake_otel(MagicMock())
        with p1, p2:
            inst.instrument(tracer_name="my-site")

        trace_module.get_tracer.assert_called_once_with("my-site")

    def test_noop_tracer_is_reported(self, caplog):
        trace_module, (p1, p2) = _fake_otel(None)
        trace_module.get_tracer.return_value = trace_module.NoOpTracer()
        with p1, p2, caplog.at_level(logging.INFO, logger="chatbubble.instrumentation"):
            inst.instrument()

        assert any("No TracerProvider configured" in r.message for r in caplog.records)

    def test_uninstrument_clears_tracer(self):
        inst._tracer = MagicMock()
        uninstrument()
        assert inst._tracer is None


class TestSpans:
    @pytest.mark.asyncio
    async def test_spans_yield_none_without_tracer(self):
        call = ToolCall(id="call_1", name="search", arguments={})
        async with turn_span("sess-1", "m", "openai") as a, step_span("openai", "m", 0) as b:
            async with tool_span(call) as c:
                assert (a, b, c) == (None, None, None)

    @pytest.fixture
    def span(self):
        span = MagicMock()
        tracer = MagicMock()
        tracer.start_as_current_span.return_value.__enter__ = MagicMock(return_value=span)
        tracer.start_as_current_span.return_value.__exit__ = MagicMock(return_value=False)
        inst._tracer = tracer
        return span

    @pytest.mark.asyncio
    async def test_turn_span_carries_session_provider_and_model(self, span):
        async with turn_span("sess-1", "gpt-4.1-mini", "gemini") as s:
            assert s is span

        inst._tracer.start_as_current_span.assert_called_once_with(
            "invoke_agent chat_bubble",
            attributes={
                "gen_ai.operation.name": "invoke_agent",
                "gen_ai.conversation.id": "sess-1",
                "gen_ai.provider.name": "gemini",
                "gen_ai.request.model": "gpt-4.1-mini",
            },
        )

    @pytest.mark.asyncio
    async def test_step_span_is_client_span_with_step_index(self, span):
        async with step_span("openrouter", "gpt-4o", 2):
            pass

        args, kwargs = inst._tracer.start_as_current_span.call_args
        assert args == ("chat gpt-4o",)
        assert kwargs["kind"] is SpanKind.CLIENT
        assert kwargs["attributes"]["chatbubble.step"] == 2

    @pytest.mark.asyncio
    async def test_tool_span_carries_call(self, span):
        call = ToolCall(id="call_42", name="search", arguments={"query": "hours"})
        async with tool_span(call):
            pass

        args, kwargs = inst._tracer.start_as_current_span.call_args
        assert args == ("execute_tool search",)
        assert kwargs["attributes"]["gen_ai.tool.call.id"] == "call_42"
        assert kwargs["attributes"]["gen_ai.tool.call.arguments"] == '{"query": "hours"}'


class TestRecording:
    def test_step_sets_finish_reason_and_tokens(self):
        span = MagicMock()
        record_step(span, "tool_calls", MagicMock(prompt_tokens=12, completion_tokens=3), "gpt-4o-2024-08-06")

        span.set_attribute.assert_any_call("gen_ai.response.finish_reasons", ["tool_calls"])
        span.set_attribute.assert_any_call("gen_ai.usage.input_tokens", 12)
        span.set_attribute.assert_any_call("gen_ai.usage.output_tokens", 3)
        span.set_attribute.assert_any_call("gen_ai.response.model", "gpt-4o-2024-08-06")

    def test_step_without_usage(self):
        span = MagicMock()
        record_step(span, None, None)
        span.set_attribute.assert_not_called()

    def test_tool_output_length(self):
        span = MagicMock()
        record_tool_output(span, "- id: 1\n")
        span.set_attribute.assert_called_once_with("chatbubble.tool.output_length", 8)

    def test_rate_limited_adds_event(self):
        span = MagicMock()
        record_rate_limited(span, 42)

        span.add_event.assert_called_once_with(
            "chatbubble.rate_limited", {"chatbubble.retry_after": 42},
        )
        span.set_attribute.assert_called_once_with("chatbubble.turn.rate_limited", True)

    def test_turn_summary(self):
        span = MagicMock()
        data = StreamData(text="Hello", tool_calls=[ToolCall(id="c1", name="search", arguments={})])

        record_turn(span, data, snapshots=4, entries=1)

        span.set_attribute.assert_any_call("chatbubble.turn.snapshots", 4)
        span.set_attribute.assert_any_call("chatbubble.turn.entries", 1)
        span.set_attribute.assert_any_call("chatbubble.turn.tool_calls", 1)
        span.set_attribute.assert_any_call("chatbubble.turn.text_length", 5)
        span.set_attribute.assert_any_call("chatbubble.turn.interrupted", False)

    def test_error_sets_status(self):
        span = MagicMock()
        exc = TimeoutError("slow")
        record_error(span, exc)

        span.record_exception.assert_called_once_with(exc)
        status = span.set_status.call_args.args[0]
        assert status.status_code is StatusCode.ERROR
        assert status.description == "slow"
        span.set_attribute.assert_called_once_with("error.type", "TimeoutError")

    def test_helpers_ignore_missing_span(self):
        record_step(None, "stop", MagicMock(prompt_tokens=1))
        record_tool_output(None, "x")
        record_rate_limited(None, 1)
        record_turn(None, StreamData(), 0, 1)
        record_error(None, RuntimeError("boom"))
