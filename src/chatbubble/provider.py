"""Model provider boundary.

A provider receives a :class:`ProviderRequest` and yields
:class:`~chatbubble.events.ProviderEvent` objects.  The bundled
:class:`OpenAIProvider` drives the multi-step tool loop itself: it
streams a completion, executes any requested tools, feeds the results
back and repeats until the model stops or ``max_steps`` is reached.
Every supported provider is reached through an OpenAI-compatible
endpoint.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Union

from openai import APIError, AsyncOpenAI

from chatbubble.events import (
    ProviderEvent,
    meta_chunk,
    text_chunk,
    thinking_chunk,
    tool_call_chunk,
    tool_result_chunk,
)
from chatbubble.instrumentation import (
    record_error,
    record_step,
    record_tool_output,
    step_span,
    tool_span,
)
from chatbubble.message import ToolCall, ToolResult
from chatbubble.streaming import PendingToolCall, ToolCallAccumulator, ToolCallFragment
from chatbubble.tools import Tool

logger = logging.getLogger(__name__)


@dataclass
class UserTurn:
    text: str


@dataclass
class AssistantTurn:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class ToolResultTurn:
    results: list[ToolResult] = field(default_factory=list)


HistoryTurn = Union[UserTurn, AssistantTurn, ToolResultTurn]


@dataclass
class ProviderRequest:
    model: str
    system_prompt: str
    history: list[HistoryTurn]
    tools: list[Tool] = field(default_factory=list)
    max_steps: int = 5


class ModelProvider(ABC):
    name: str = "provider"

    @abstractmethod
    def stream(self, request: ProviderRequest) -> AsyncIterator[ProviderEvent]:
        """Yield events for one turn; the sequence ends when the turn does."""


def _tool_call_dict(call: ToolCall) -> dict:
    return {
        "id": call.id,
        "type": "function",
        "function": {
            "name": call.name,
            "arguments": json.dumps(call.arguments),
        },
    }


def history_to_openai(history: list[HistoryTurn]) -> list[dict]:
    """Convert replayed history into OpenAI chat messages.

    The transcript stores a turn's tool results *before* the assistant
    entry that requested them, while the chat API requires each ``tool``
    message to follow the assistant message announcing its call.  Tool
    results are therefore held back until the next assistant turn and
    emitted after its tool calls; results no call claims are dropped.
    """
    messages: list[dict] = []
    held: dict[str, ToolResult] = {}
    for turn in history:
        if isinstance(turn, ToolResultTurn):
            for result in turn.results:
                held[result.tool_call_id] = result
        elif isinstance(turn, AssistantTurn):
            if turn.tool_calls:
                messages.append({
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [_tool_call_dict(c) for c in turn.tool_calls],
                })
                for call in turn.tool_calls:
                    result = held.pop(call.id, None)
                    messages.append({
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": result.result if result else "No result recorded.",
                    })
            held.clear()
            if turn.text:
                messages.append({"role": "assistant", "content": turn.text})
        else:
            held.clear()
            messages.append({"role": "user", "content": turn.text})
    return messages


class OpenAIProvider(ModelProvider):
    """Streams chat completions from any OpenAI-compatible endpoint.

    Args:
        api_key: Defaults to ``OPENAI_API_KEY``.
        base_url: Endpoint root; ``None`` means api.openai.com.
        name: Provider name reported in logs and spans.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        name: str = "openai",
        timeout: float = 180.0,
        max_retries: int = 2,
    ):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        self.name = name
        self.base_url = base_url.rstrip("/") if base_url else None
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            max_retries=max_retries,
            timeout=timeout,
        )

    async def stream(self, request: ProviderRequest) -> AsyncIterator[ProviderEvent]:
        messages = [
            {"role": "system", "content": request.system_prompt},
            *history_to_openai(request.history),
        ]
        tool_registry = {t.name: t for t in request.tools}
        tool_schemas = [t.tool_schema() for t in request.tools]

        for step in range(request.max_steps):
            acc = ToolCallAccumulator()
            content = ""
            finish_reason = None
            usage = None
            response_model = None

            kwargs = {
                "model": request.model,
                "messages": messages,
                "stream": True,
                "stream_options": {"include_usage": True},
            }
            if tool_schemas:
                kwargs["tools"] = tool_schemas
                kwargs["tool_choice"] = "auto"

            async with step_span(self.name, request.model, step) as span:
                try:
                    response = await self.client.chat.completions.create(**kwargs)
                    async for chunk in response:
                        if getattr(chunk, "usage", None) is not None:
                            usage = chunk.usage
                        response_model = getattr(chunk, "model", None) or response_model
                        if not chunk.choices:
                            continue
                        choice = chunk.choices[0]
                        if choice.finish_reason:
                            finish_reason = choice.finish_reason
                        delta = choice.delta
                        if delta is None:
                            continue
                        reasoning = (
                            getattr(delta, "reasoning_content", None)
                            or getattr(delta, "reasoning", None)
                        )
                        if reasoning:
                            yield thinking_chunk(reasoning)
                        if delta.content:
                            content += delta.content
                            yield text_chunk(delta.content)
                        for frag in delta.tool_calls or []:
                            acc.feed(ToolCallFragment(
                                index=frag.index,
                                call_id=frag.id,
                                name=frag.function.name if frag.function else None,
                                arguments_delta=frag.function.arguments if frag.function else None,
                            ))
                except APIError as e:
                    # An interrupted stream ends the turn with what arrived so far.
                    logger.error(f"{self.name} stream interrupted: {e}")
                    record_error(span, e)
                    yield meta_chunk(step=step, finish_reason="error", error=str(e))
                    return
                record_step(span, finish_reason, usage, response_model)

            completed = acc.finalize()
            yield meta_chunk(
                step=step,
                finish_reason=finish_reason,
                usage=usage.model_dump() if hasattr(usage, "model_dump") else None,
            )
            if not completed:
                return

            calls = [self._to_tool_call(pending) for pending in completed]
            messages.append({
                "role": "assistant",
                "content": content or None,
                "tool_calls": [
                    {
                        "id": pending.id,
                        "type": "function",
                        "function": {"name": pending.name, "arguments": pending.arguments or "{}"},
                    }
                    for pending in completed
                ],
            })
            for call, pending in zip(calls, completed):
                yield tool_call_chunk(call)
                output = await self._execute(call, pending, tool_registry)
                yield tool_result_chunk(ToolResult(
                    tool_call_id=call.id,
                    tool_name=call.name,
                    args=call.arguments,
                    result=output,
                ))
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": output,
                })

        logger.info(f"{self.name} reached max steps ({request.max_steps})")

    @staticmethod
    def _to_tool_call(pending: PendingToolCall) -> ToolCall:
        try:
            arguments = json.loads(pending.arguments) if pending.arguments else {}
        except json.JSONDecodeError:
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        return ToolCall(id=pending.id, name=pending.name, arguments=arguments)

    async def _execute(
        self, call: ToolCall, pending: PendingToolCall, tool_registry: dict[str, Tool],
    ) -> str:
        tool_obj = tool_registry.get(call.name)
        if tool_obj is None:
            logger.warning(f"Tool not found: {call.name}")
            return f"Error: tool '{call.name}' not found"

        if pending.arguments:
            try:
                json.loads(pending.arguments)
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in arguments for {call.name}: {e}")
                return f"Error: invalid arguments: {e}"

        logger.info(f"Calling {call.name} with {call.arguments}")
        async with tool_span(call) as span:
            try:
                output = await tool_obj.invoke(call.arguments)
            except Exception as e:
                logger.error(f"Tool {call.name} raised: {e}")
                record_error(span, e)
                output = f"Error calling {call.name}: {e}"
            record_tool_output(span, output)
            return output


PROVIDER_ENDPOINTS = {
    "openai": (None, "OPENAI_API_KEY"),
    "anthropic": ("https://api.anthropic.com/v1/", "ANTHROPIC_API_KEY"),
    "gemini": ("https://generativelanguage.googleapis.com/v1beta/openai/", "GEMINI_API_KEY"),
    "ollama": ("http://localhost:11434/v1", None),
    "openrouter": ("https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
}

PROVIDER_ALIASES = {"google": "gemini"}


def provider_name(name: str) -> str:
    """Normalize a configured provider name; unknown names fall back to openai."""
    key = PROVIDER_ALIASES.get(name.strip().lower(), name.strip().lower())
    if key not in PROVIDER_ENDPOINTS:
        logger.warning(f"Unknown provider {name!r}, falling back to openai")
        return "openai"
    return key


def create_provider(
    name: str,
    api_key: str | None = None,
    base_url: str | None = None,
) -> OpenAIProvider:
    key = provider_name(name)
    default_url, env_var = PROVIDER_ENDPOINTS[key]
    if key == "ollama":
        default_url = os.getenv("OLLAMA_BASE_URL", default_url)
        api_key = api_key or "ollama"
    elif not api_key and env_var:
        api_key = os.getenv(env_var)
    return OpenAIProvider(
        api_key=api_key,
        base_url=base_url or default_url,
        name=key,
    )
