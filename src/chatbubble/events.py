"""Events yielded by a model provider while a turn streams."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatbubble.message import ToolCall, ToolResult


class ChunkType(Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    META = "meta"


@dataclass
class ProviderEvent:
    """One unit emitted by the provider.

    Only the payload matching ``kind`` is meaningful: ``text`` for text
    and thinking fragments, ``tool_call`` / ``tool_result`` for tool
    events, ``meta`` for step boundaries (finish reason, usage).
    """

    kind: ChunkType
    text: str = ""
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None
    meta: dict[str, Any] = field(default_factory=dict)


def text_chunk(text: str) -> ProviderEvent:
    return ProviderEvent(kind=ChunkType.TEXT, text=text)


def thinking_chunk(text: str) -> ProviderEvent:
    return ProviderEvent(kind=ChunkType.THINKING, text=text)


def tool_call_chunk(call: ToolCall) -> ProviderEvent:
    return ProviderEvent(kind=ChunkType.TOOL_CALL, tool_call=call)


def tool_result_chunk(result: ToolResult) -> ProviderEvent:
    return ProviderEvent(kind=ChunkType.TOOL_RESULT, tool_result=result)


def meta_chunk(**meta: Any) -> ProviderEvent:
    return ProviderEvent(kind=ChunkType.META, meta=meta)
