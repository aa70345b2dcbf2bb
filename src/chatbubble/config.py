"""Settings for the chat widget.

Every value has a default; :meth:`ChatSettings.from_env` overlays the
``AGENTIC_CHAT_*`` environment variables.  Settings objects are plain
mutable models: the tool registry reads ``tools`` on every call, so
changing it takes effect on the next turn.
"""

import os
from typing import Any, Mapping

from pydantic import BaseModel, Field


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant answering messages about this website. "
    "You have access to the site's search index via tools. Whatever is "
    "asked, search the index first and then answer the question. If you "
    "cannot find an answer, say so. Refuse to answer questions that are "
    "not related to this website or its content."
)


class RateLimitSettings(BaseModel):
    enabled: bool = True
    max_messages: int = Field(default=30, ge=1)
    decay_minutes: float = Field(default=1, gt=0)

    @property
    def decay_seconds(self) -> int:
        return int(self.decay_minutes * 60)


class ConsentSettings(BaseModel):
    enabled: bool = False
    consent_text: str = (
        "This chat is powered by an AI service. Your messages are sent to "
        "a third-party provider to generate answers."
    )
    consent_button_text: str = "I Consent"
    decline_button_text: str = "No Thanks"
    declined_message: str = (
        "You declined the use of the AI assistant. You can change your "
        "mind at any time."
    )


class UISettings(BaseModel):
    position: str = "bottom-left"
    title: str = "Assistant"
    placeholder: str = "Type your message..."
    thinking_button_text: str = "🧠"


class ChatSettings(BaseModel):
    """Top-level widget configuration.

    Args:
        provider: Provider name, one of ``openai``, ``anthropic``,
            ``google``/``gemini``, ``ollama`` or ``openrouter``.
        model: Model identifier passed to the provider.
        system_prompt: Injected at request time, never stored in the
            transcript.
        max_steps: Step bound handed to the provider.
        max_message_length: Upper bound on a submitted message.
        tools: Statically configured tool descriptors (references,
            factories or tool instances).
    """

    provider: str = "openai"
    model: str = "gpt-4.1-mini"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_steps: int = Field(default=5, ge=1)
    max_message_length: int = Field(default=1000, ge=1)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    consent: ConsentSettings = Field(default_factory=ConsentSettings)
    ui: UISettings = Field(default_factory=UISettings)
    tools: list[Any] = Field(default_factory=list)

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ChatSettings":
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        rate_limit: dict[str, Any] = {}
        consent: dict[str, Any] = {}

        for var, key in (
            ("AGENTIC_CHAT_PROVIDER", "provider"),
            ("AGENTIC_CHAT_MODEL", "model"),
            ("AGENTIC_CHAT_SYSTEM_PROMPT", "system_prompt"),
            ("AGENTIC_CHAT_MAX_STEPS", "max_steps"),
            ("AGENTIC_CHAT_MAX_MESSAGE_LENGTH", "max_message_length"),
        ):
            if env.get(var):
                data[key] = env[var]

        for var, key in (
            ("AGENTIC_CHAT_RATE_LIMIT_ENABLED", "enabled"),
            ("AGENTIC_CHAT_RATE_LIMIT_MAX", "max_messages"),
            ("AGENTIC_CHAT_RATE_LIMIT_DECAY_MINUTES", "decay_minutes"),
        ):
            if env.get(var):
                rate_limit[key] = env[var]

        if env.get("AGENTIC_CHAT_CONSENT_ENABLED"):
            consent["enabled"] = env["AGENTIC_CHAT_CONSENT_ENABLED"]
        if env.get("AGENTIC_CHAT_CONSENT_TEXT"):
            consent["consent_text"] = env["AGENTIC_CHAT_CONSENT_TEXT"]

        if env.get("AGENTIC_CHAT_TOOLS"):
            data["tools"] = [
                ref.strip()
                for ref in env["AGENTIC_CHAT_TOOLS"].split(",")
                if ref.strip()
            ]

        return cls.model_validate({
            **data,
            "rate_limit": rate_limit,
            "consent": consent,
        })
