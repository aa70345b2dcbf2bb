import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


def new_message_id() -> str:
    return uuid.uuid4().hex


def format_timestamp(at: datetime | None = None) -> str:
    """Render a capture time the way the widget shows it, e.g. ``3:07 PM``."""
    at = at or datetime.now()
    return f"{at:%I:%M %p}".lstrip("0")


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: dict[str, Any] = Field(default_factory=dict)
    result: str = ""


class MessageParts(BaseModel):
    """Role-dependent payload of a transcript entry.

    Users carry ``text``; assistants carry any of the four parts;
    tool-result entries carry ``tool_results`` only.  Unset parts are
    dropped on serialization.
    """

    model_config = ConfigDict(populate_by_name=True)

    text: str | None = None
    thinking: str | None = None
    tool_calls: list[ToolCall] | None = Field(default=None, alias="toolCalls")
    tool_results: list[ToolResult] | None = Field(default=None, alias="toolResults")


class Message(BaseModel):
    """One transcript entry.

    ``role`` accepts unknown strings so that a transcript restored from
    an external store can still be loaded; replaying such an entry to
    the provider fails with :class:`~chatbubble.errors.UnknownMessageRole`.
    """

    id: str = Field(default_factory=new_message_id)
    role: MessageRole | str
    parts: MessageParts = Field(default_factory=MessageParts)
    timestamp: str = Field(default_factory=format_timestamp, frozen=True)

    @field_validator("role", mode="before")
    @classmethod
    def coerce_role(cls, value):
        if isinstance(value, str):
            try:
                return MessageRole(value)
            except ValueError:
                return value
        return value

    @field_serializer("role")
    def serialize_role(self, role: MessageRole | str, _info) -> str:
        return role.value if isinstance(role, MessageRole) else role

    @property
    def role_name(self) -> str:
        return self.role.value if isinstance(self.role, MessageRole) else self.role

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def user(cls, text: str, at: datetime | None = None) -> "Message":
        return cls(
            role=MessageRole.USER,
            parts=MessageParts(text=text),
            timestamp=format_timestamp(at),
        )

    @classmethod
    def assistant(
        cls, parts: MessageParts, at: datetime | None = None
    ) -> "Message":
        return cls(
            role=MessageRole.ASSISTANT,
            parts=parts,
            timestamp=format_timestamp(at),
        )

    @classmethod
    def assistant_text(cls, text: str, at: datetime | None = None) -> "Message":
        return cls.assistant(MessageParts(text=text), at=at)

    @classmethod
    def tool_result(
        cls, results: list[ToolResult], at: datetime | None = None
    ) -> "Message":
        return cls(
            role=MessageRole.TOOL_RESULT,
            parts=MessageParts(tool_results=list(results)),
            timestamp=format_timestamp(at),
        )
