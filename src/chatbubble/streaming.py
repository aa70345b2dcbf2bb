"""Streaming primitives for a chat turn.

The :class:`StreamAccumulator` folds provider events into one growing
:class:`StreamData` buffer.  The :class:`ToolCallAccumulator` is used on
the provider side to reassemble tool calls whose arguments arrive in
fragments across multiple deltas.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from chatbubble.events import ChunkType, ProviderEvent
from chatbubble.message import MessageParts, ToolCall, ToolResult


@dataclass
class StreamData:
    """The in-flight buffer of one turn."""

    text: str = ""
    thinking: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.text or self.thinking or self.tool_calls or self.tool_results)

    def to_parts(self) -> MessageParts:
        return MessageParts(
            text=self.text,
            thinking=self.thinking,
            tool_calls=list(self.tool_calls),
            tool_results=list(self.tool_results),
        )

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "thinking": self.thinking,
            "toolCalls": [c.model_dump(mode="json") for c in self.tool_calls],
            "toolResults": [
                r.model_dump(mode="json", by_alias=True) for r in self.tool_results
            ],
        }


@dataclass
class StreamSnapshot:
    """A copy of the buffer taken right after one event was applied."""

    data: StreamData
    current_chunk_type: ChunkType

    def to_payload(self) -> dict:
        """Flat structure pushed to the page; text fields replace, not append."""
        return {**self.data.to_dict(), "currentChunkType": self.current_chunk_type.value}


class StreamAccumulator:
    """Folds provider events, in arrival order, into a :class:`StreamData`.

    Fragments are concatenated and tool calls/results appended without
    deduplication: the same tool may legitimately be called twice in one
    turn.  A fresh accumulator is created for every turn.
    """

    def __init__(self) -> None:
        self.data = StreamData()

    def apply(self, event: ProviderEvent) -> bool:
        """Apply *event*; return whether a snapshot should be published."""
        if event.kind is ChunkType.TEXT:
            self.data.text += event.text
        elif event.kind is ChunkType.THINKING:
            self.data.thinking += event.text
        elif event.kind is ChunkType.TOOL_CALL:
            if event.tool_call is not None:
                self.data.tool_calls.append(event.tool_call)
        elif event.kind is ChunkType.TOOL_RESULT:
            if event.tool_result is not None:
                self.data.tool_results.append(event.tool_result)
        return event.kind is not ChunkType.META

    def snapshot(self, kind: ChunkType) -> StreamSnapshot:
        return StreamSnapshot(data=copy.deepcopy(self.data), current_chunk_type=kind)


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class PendingToolCall:
    """A tool call being reassembled; ``arguments`` is still raw JSON."""

    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments."""

    def __init__(self) -> None:
        self._pending: dict[int, PendingToolCall] = {}

    def feed(self, fragment: ToolCallFragment) -> None:
        if fragment.index not in self._pending:
            self._pending[fragment.index] = PendingToolCall()
        tc = self._pending[fragment.index]
        if fragment.call_id is not None:
            tc.id = fragment.call_id
        if fragment.name is not None:
            tc.name = fragment.name
        if fragment.arguments_delta is not None:
            tc.arguments += fragment.arguments_delta

    def finalize(self) -> list[PendingToolCall]:
        """Return completed tool calls in index order."""
        return [self._pending[i] for i in sorted(self._pending)]
