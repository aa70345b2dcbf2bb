import asyncio
from datetime import datetime

import pytest

from chatbubble.chat import ChatSession
from chatbubble.config import ChatSettings
from chatbubble.events import ProviderEvent
from chatbubble.provider import ModelProvider, ProviderRequest
from chatbubble.ratelimit import InMemoryRateLimiter
from chatbubble.registry import ToolContainer, ToolRegistry
from chatbubble.session import InMemorySessionStore
from chatbubble.tools import Tool, tool


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------

class ScriptedProvider(ModelProvider):
    """Provider that replays pre-queued event lists. No network calls.

    Each call to ``stream`` pops the next list from ``turns`` and
    records the request it was given.
    """

    name = "scripted"

    def __init__(self):
        self.turns: list[list[ProviderEvent]] = []
        self.requests: list[ProviderRequest] = []

    async def stream(self, request):
        self.requests.append(request)
        events = self.turns.pop(0) if self.turns else []
        for event in events:
            yield event


class FailingProvider(ModelProvider):
    """Yields the given events, then raises."""

    name = "failing"

    def __init__(self, events, exc):
        self.events = events
        self.exc = exc

    async def stream(self, request):
        for event in self.events:
            yield event
        raise self.exc


class BlockingProvider(ModelProvider):
    """Yields ``before``, then waits on ``release`` before yielding ``after``.

    ``paused`` is set once the stream is parked, so a test can act while
    the turn is still in flight.
    """

    name = "blocking"

    def __init__(self, before, after):
        self.before = before
        self.after = after
        self.paused = asyncio.Event()
        self.release = asyncio.Event()

    async def stream(self, request):
        for event in self.before:
            yield event
        self.paused.set()
        await self.release.wait()
        for event in self.after:
            yield event


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------

class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


FIXED_TIME = datetime(2024, 5, 17, 15, 7)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@tool
def echo(text: str):
    """Echo the text back."""
    return text


def make_tool(name: str, description: str = "", result: str = "ok") -> Tool:
    return Tool(func=lambda: result, name=name, description=description or f"{name} tool")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return ChatSettings(
        provider="openai",
        model="gpt-4-mini",
        system_prompt="You are a helpful assistant.",
        max_steps=5,
        max_message_length=1000,
    )


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(clock):
    return InMemoryRateLimiter(clock=clock)


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def container():
    return ToolContainer()


@pytest.fixture
def registry(settings, container):
    return ToolRegistry(settings, container=container)


@pytest.fixture
def make_session(settings, provider, registry, store, rate_limiter):
    """Factory fixture building chat sessions over the shared fixtures.

    Pass ``session_id=`` to build several sessions, or
    ``provider_override=`` to swap out the scripted provider.
    """
    def _make(session_id="sess-1", provider_override=None):
        return ChatSession(
            session_id=session_id,
            settings=settings,
            provider=provider_override or provider,
            registry=registry,
            store=store,
            rate_limiter=rate_limiter,
            clock=lambda: FIXED_TIME,
        )
    return _make


@pytest.fixture
def chat(make_session):
    return make_session()
