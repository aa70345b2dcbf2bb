"""OpenTelemetry tracing for chat turns.

Tracing stays off until :func:`instrument` is called.  Every turn that
passes the consent gate gets one turn span; the provider's completion
steps and tool executions nest beneath it.  While tracing is off the
span helpers yield ``None`` and the ``record_*`` helpers ignore it, so
callers never branch on whether ``opentelemetry-api`` is installed.
"""

import importlib.util
import json
import logging
from contextlib import asynccontextmanager

from chatbubble.message import ToolCall

logger = logging.getLogger(__name__)

_tracer = None

TURN_SPAN_NAME = "invoke_agent chat_bubble"


def instrument(*, tracer_name: str = "chatbubble") -> None:
    """Start emitting spans for chat turns.

    Configure a TracerProvider first; with none configured, spans are
    created and then discarded.

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: ``opentelemetry-api`` is missing. It ships with
            the ``agentic-chat-bubble[otel]`` extra.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing chat turns needs opentelemetry-api: "
            "pip install agentic-chat-bubble[otel]"
        )
    from opentelemetry import trace

    tracer = trace.get_tracer(tracer_name)
    if isinstance(tracer, trace.NoOpTracer):
        logger.info("No TracerProvider configured, chat turn spans will be discarded")
    else:
        logger.info(f"Tracing chat turns with tracer {tracer_name!r}")
    _tracer = tracer


def uninstrument() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    options = {"attributes": attributes}
    if client:
        from opentelemetry.trace import SpanKind
        options["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, **options) as span:
        yield span


def turn_span(session_id: str, model: str, provider: str):
    """Span covering one turn, from rate-limit admission to commit."""
    return _span(TURN_SPAN_NAME, {
        "gen_ai.operation.name": "invoke_agent",
        "gen_ai.conversation.id": session_id,
        "gen_ai.provider.name": provider,
        "gen_ai.request.model": model,
    })


def step_span(provider: str, model: str, step: int):
    """Span for one streamed completion of the tool loop."""
    return _span(
        f"chat {model}",
        {
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": provider,
            "gen_ai.request.model": model,
            "chatbubble.step": step,
        },
        client=True,
    )


def tool_span(call: ToolCall):
    return _span(f"execute_tool {call.name}", {
        "gen_ai.operation.name": "execute_tool",
        "gen_ai.tool.name": call.name,
        "gen_ai.tool.call.id": call.id,
        "gen_ai.tool.call.arguments": json.dumps(call.arguments),
    })


def record_step(span, finish_reason: str | None, usage=None, response_model: str | None = None) -> None:
    """Finish reason, token counts and served model of one completion step."""
    if span is None:
        return
    if finish_reason:
        span.set_attribute("gen_ai.response.finish_reasons", [finish_reason])
    for field, key in (
        ("prompt_tokens", "gen_ai.usage.input_tokens"),
        ("completion_tokens", "gen_ai.usage.output_tokens"),
    ):
        count = getattr(usage, field, None)
        if count is not None:
            span.set_attribute(key, count)
    if response_model:
        span.set_attribute("gen_ai.response.model", response_model)


def record_tool_output(span, output: str) -> None:
    if span is None:
        return
    span.set_attribute("chatbubble.tool.output_length", len(output))


def record_rate_limited(span, retry_after: int) -> None:
    """Mark a turn refused by the rate limiter."""
    if span is None:
        return
    span.add_event("chatbubble.rate_limited", {"chatbubble.retry_after": retry_after})
    span.set_attribute("chatbubble.turn.rate_limited", True)


def record_turn(span, data, snapshots: int, entries: int, interrupted: bool = False) -> None:
    """Summarize a finalized turn.

    Args:
        data: The turn's final ``StreamData`` buffer.
        snapshots: Snapshots published while streaming.
        entries: Transcript entries committed for the turn.
        interrupted: The provider stream failed before it ended.
    """
    if span is None:
        return
    span.set_attribute("chatbubble.turn.snapshots", snapshots)
    span.set_attribute("chatbubble.turn.entries", entries)
    span.set_attribute("chatbubble.turn.tool_calls", len(data.tool_calls))
    span.set_attribute("chatbubble.turn.text_length", len(data.text))
    span.set_attribute("chatbubble.turn.interrupted", interrupted)


def record_error(span, exception: BaseException) -> None:
    if span is None:
        return
    from opentelemetry.trace import Status, StatusCode

    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))
    span.set_attribute("error.type", type(exception).__name__)
