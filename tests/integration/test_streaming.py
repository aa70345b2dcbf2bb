"""End-to-end streaming: provider events through the session to SSE frames."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import yaml

from chatbubble.events import text_chunk, tool_call_chunk
from chatbubble.message import MessageRole, ToolCall
from chatbubble.provider import OpenAIProvider
from chatbubble.search import InMemorySearchBackend, SearchIndex, default_tools
from chatbubble.sse import sse_generator


class FakeStream:
    def __init__(self, chunks):
        self.chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk


def _chunk(content=None, tool_calls=None, finish_reason=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)],
        usage=None,
        model="gpt-4-mini",
    )


def _search_fragment(query):
    return SimpleNamespace(
        index=0,
        id="call_search",
        function=SimpleNamespace(name="search", arguments=json.dumps({"query": query})),
    )


def _frames_payloads(frames):
    return [
        json.loads(frame.split("data: ", 1)[1])
        for frame in frames
        if frame.startswith("event: streamed-message")
    ]


@pytest.mark.asyncio
async def test_session_snapshots_as_sse(chat, provider):
    provider.turns.append([
        text_chunk("Hello! "),
        tool_call_chunk(ToolCall(id="c1", name="search", arguments={})),
        text_chunk("there"),
    ])
    chat.submit("Hi")

    frames = [frame async for frame in sse_generator(chat.iter())]

    payloads = _frames_payloads(frames)
    assert [p["text"] for p in payloads] == ["Hello! ", "Hello! ", "Hello! there"]
    assert [p["currentChunkType"] for p in payloads] == ["text", "tool_call", "text"]
    assert payloads[1]["toolCalls"] == [{"id": "c1", "name": "search", "arguments": {}}]
    assert frames[-1] == "event: done\ndata: {}\n\n"
    assert chat.messages[-1].parts.text == "Hello! there"


@pytest.mark.asyncio
async def test_search_turn_through_openai_provider(make_session, settings, monkeypatch):
    backend = InMemorySearchBackend([SearchIndex(name="default", documents=[
        {"id": 1, "title": "Opening hours", "content": "We open at 9am."},
    ])])
    settings.tools = default_tools(backend)

    provider = OpenAIProvider(api_key="test-key")
    mock_create = AsyncMock(side_effect=[
        FakeStream([_chunk(tool_calls=[_search_fragment("opening")], finish_reason="tool_calls")]),
        FakeStream([_chunk("We open "), _chunk("at 9am.", finish_reason="stop")]),
    ])
    monkeypatch.setattr(provider.client.chat.completions, "create", mock_create)

    chat = make_session(provider_override=provider)
    chat.submit("When do you open?")
    snapshots = []

    new = await chat.run(on_snapshot=snapshots.append)

    assert [m.role for m in new] == [MessageRole.TOOL_RESULT, MessageRole.ASSISTANT]
    result = new[0].parts.tool_results[0]
    assert result.tool_name == "search"
    assert yaml.safe_load(result.result)[0]["title"] == "Opening hours"
    assert new[1].parts.text == "We open at 9am."
    assert new[1].parts.tool_calls[0].arguments == {"query": "opening"}
    assert snapshots[-1].data.text == "We open at 9am."

    tools_sent = mock_create.call_args_list[0].kwargs["tools"]
    assert [t["function"]["name"] for t in tools_sent] == ["retrieve_indexes", "search"]
    assert mock_create.call_args_list[0].kwargs["messages"][0]["role"] == "system"
