"""Presentation adapters: Server-Sent Events and plain-text transcripts."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from chatbubble.message import Message, MessageRole
from chatbubble.streaming import StreamSnapshot

STREAM_EVENT = "streamed-message"


def format_sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


async def sse_generator(
    snapshots: AsyncIterator[StreamSnapshot],
) -> AsyncIterator[str]:
    """Convert a snapshot stream into SSE-formatted strings.

    Each payload carries the whole buffer, so the page replaces its
    text and thinking rather than appending to them.
    """
    async for snapshot in snapshots:
        yield format_sse(STREAM_EVENT, json.dumps(snapshot.to_payload()))
    yield format_sse("done", "{}")


def render_message(message: Message) -> str:
    parts = message.parts
    if message.role is MessageRole.TOOL_RESULT:
        names = ", ".join(r.tool_name for r in parts.tool_results or [])
        return f"[{message.timestamp}] tools returned: {names}"

    label = "You" if message.role is MessageRole.USER else "Assistant"
    lines = [f"[{message.timestamp}] {label}:"]
    if parts.thinking:
        lines.append(f"  (thinking) {parts.thinking}")
    if parts.tool_calls:
        lines.append("  (tools) " + ", ".join(c.name for c in parts.tool_calls))
    if parts.text:
        lines.extend(f"  {line}" for line in parts.text.splitlines())
    return "\n".join(lines)


def render_transcript(messages: list[Message]) -> str:
    """Plain-text rendering for terminals and logs."""
    return "\n".join(render_message(m) for m in messages)
