from chatbubble.chat import ChatSession, FieldError, to_provider_history
from chatbubble.config import ChatSettings, ConsentSettings, RateLimitSettings, UISettings
from chatbubble.consent import ConsentGate, ConsentState
from chatbubble.errors import (
    ChatBubbleError,
    InvalidToolDescriptor,
    InvalidToolResult,
    UnknownMessageRole,
    UnknownToolReference,
)
from chatbubble.events import ChunkType, ProviderEvent
from chatbubble.instrumentation import instrument, uninstrument
from chatbubble.message import Message, MessageParts, MessageRole, ToolCall, ToolResult
from chatbubble.provider import ModelProvider, OpenAIProvider, ProviderRequest, create_provider
from chatbubble.ratelimit import Admission, InMemoryRateLimiter, RateLimiter
from chatbubble.registry import ToolContainer, ToolFactory, ToolReference, ToolRegistry
from chatbubble.session import InMemorySessionStore, SessionState, SessionStore
from chatbubble.streaming import StreamAccumulator, StreamData, StreamSnapshot
from chatbubble.tools import Tool, tool

__all__ = [
    "Admission",
    "ChatBubbleError",
    "ChatSession",
    "ChatSettings",
    "ChunkType",
    "ConsentGate",
    "ConsentSettings",
    "ConsentState",
    "FieldError",
    "InMemoryRateLimiter",
    "InMemorySessionStore",
    "InvalidToolDescriptor",
    "InvalidToolResult",
    "Message",
    "MessageParts",
    "MessageRole",
    "ModelProvider",
    "OpenAIProvider",
    "ProviderEvent",
    "ProviderRequest",
    "RateLimitSettings",
    "RateLimiter",
    "SessionState",
    "SessionStore",
    "StreamAccumulator",
    "StreamData",
    "StreamSnapshot",
    "Tool",
    "ToolCall",
    "ToolContainer",
    "ToolFactory",
    "ToolReference",
    "ToolRegistry",
    "ToolResult",
    "UISettings",
    "UnknownMessageRole",
    "UnknownToolReference",
    "create_provider",
    "instrument",
    "tool",
    "to_provider_history",
    "uninstrument",
]
