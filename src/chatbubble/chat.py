import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from chatbubble.config import ChatSettings
from chatbubble.consent import ConsentGate
from chatbubble.errors import ChatBubbleError, UnknownMessageRole
from chatbubble.instrumentation import record_error, record_rate_limited, record_turn, turn_span
from chatbubble.message import Message, MessageRole
from chatbubble.provider import (
    AssistantTurn,
    HistoryTurn,
    ModelProvider,
    ProviderRequest,
    ToolResultTurn,
    UserTurn,
)
from chatbubble.ratelimit import RateLimiter, rate_limit_key, rate_limit_message
from chatbubble.registry import ToolRegistry
from chatbubble.session import SessionStore
from chatbubble.streaming import StreamAccumulator, StreamData, StreamSnapshot

logger = logging.getLogger(__name__)

MESSAGE_FIELD = "message"


@dataclass
class FieldError:
    """A validation failure attached to an input field."""

    field: str
    rule: str
    message: str


def to_provider_history(messages: list[Message]) -> list[HistoryTurn]:
    """Translate transcript entries into provider history turns.

    Raises:
        UnknownMessageRole: if an entry's role cannot be replayed.
            Dropping it instead would silently change what the model
            sees of the conversation.
    """
    history: list[HistoryTurn] = []
    for message in messages:
        parts = message.parts
        if message.role is MessageRole.USER:
            history.append(UserTurn(text=parts.text or ""))
        elif message.role is MessageRole.ASSISTANT:
            history.append(AssistantTurn(
                text=parts.text or "",
                tool_calls=list(parts.tool_calls or []),
            ))
        elif message.role is MessageRole.TOOL_RESULT:
            history.append(ToolResultTurn(results=list(parts.tool_results or [])))
        else:
            raise UnknownMessageRole(message.role_name)
    return history


class ChatSession:
    """Drives the chat loop for one visitor session.

    The session owns the transcript and the pending input.  A turn is
    ``submit()`` followed by ``run()``: the user entry is appended on
    submit, the provider stream is consumed on run, and the accumulated
    buffer is committed back to the transcript when the stream ends.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point
    and yields one :class:`StreamSnapshot` per non-meta provider event.

    Args:
        session_id: Identity used for storage and rate-limit keys.
        settings: Widget configuration.
        provider: Source of provider events.
        registry: Tool registry shared across sessions.
        store: Loads and saves the session state.
        rate_limiter: Shared rate-limiter storage.
        clock: Returns the current time for entry timestamps.
    """

    def __init__(
        self,
        session_id: str,
        settings: ChatSettings,
        provider: ModelProvider,
        registry: ToolRegistry,
        store: SessionStore,
        rate_limiter: RateLimiter,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_id = session_id
        self.settings = settings
        self.provider = provider
        self.registry = registry
        self.store = store
        self.rate_limiter = rate_limiter
        self.consent = ConsentGate(settings.consent)
        self.state = store.load(session_id)
        self.errors: dict[str, list[FieldError]] = {}
        self._clock = clock or datetime.now
        self._turn_lock = asyncio.Lock()

    @property
    def messages(self) -> list[Message]:
        return self.state.transcript

    @property
    def pending_input(self) -> str:
        return self.state.pending_input

    @pending_input.setter
    def pending_input(self, value: str) -> None:
        self.state.pending_input = value
        self.store.save(self.state)

    @property
    def is_streaming(self) -> bool:
        return self._turn_lock.locked()

    @property
    def rate_limit_key(self) -> str:
        return rate_limit_key(self.session_id)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, text: str | None = None) -> bool:
        """Accept a user message.

        Returns ``True`` when the user entry was appended and the loop
        should run.  Validation and rate-limit failures are recorded in
        :attr:`errors` under ``"message"``; a missing consent is a
        silent no-op, as is a submission while a turn is still
        streaming; the text stays in :attr:`pending_input` either way.
        """
        self.errors = {}
        if text is not None:
            self.state.pending_input = text
        text = self.state.pending_input

        if self.is_streaming:
            logger.debug(f"Turn in progress for session {self.session_id}, submission held")
            return False

        if not text.strip():
            self._add_error("required", "The message field is required.")
            return False
        limit = self.settings.max_message_length
        if len(text) > limit:
            self._add_error(
                "max",
                f"The message field must not be greater than {limit} characters.",
            )
            return False

        if self.consent.blocks(self.state):
            logger.debug(f"Consent missing for session {self.session_id}")
            return False

        if self.settings.rate_limit.enabled:
            admission = self.rate_limiter.check(
                self.rate_limit_key, self.settings.rate_limit.max_messages,
            )
            if not admission.allowed:
                logger.warning(
                    f"Rate limit hit on submit for session {self.session_id}"
                )
                self._add_error("rate_limit", rate_limit_message(admission.retry_after))
                return False

        self.state.transcript.append(Message.user(text, at=self._clock()))
        self.state.pending_input = ""
        self.store.save(self.state)
        return True

    def _add_error(self, rule: str, message: str) -> None:
        self.errors.setdefault(MESSAGE_FIELD, []).append(
            FieldError(field=MESSAGE_FIELD, rule=rule, message=message)
        )

    # ------------------------------------------------------------------
    # Loop execution
    # ------------------------------------------------------------------

    async def run(
        self, on_snapshot: Callable[[StreamSnapshot], None] | None = None,
    ) -> list[Message]:
        """Run one turn; return the entries it committed."""
        before = len(self.state.transcript)
        async for snapshot in self.iter():
            if on_snapshot is not None:
                on_snapshot(snapshot)
        return list(self.state.transcript[before:])

    async def iter(self) -> AsyncIterator[StreamSnapshot]:
        """Run one turn, yielding a snapshot after every renderable event.

        A provider stream that raises ends the turn early and the partial
        buffer is still committed.  Package errors (an unreplayable
        transcript, a bad tool descriptor) propagate uncommitted, as does
        cancellation.
        """
        async with self._turn_lock:
            if not self.state.transcript:
                return
            if self.consent.blocks(self.state):
                return

            async with turn_span(
                self.session_id, self.settings.model, self.provider.name,
            ) as span:
                if self.settings.rate_limit.enabled:
                    admission = self.rate_limiter.admit(
                        self.rate_limit_key,
                        self.settings.rate_limit.max_messages,
                        self.settings.rate_limit.decay_seconds,
                    )
                    if not admission.allowed:
                        logger.warning(
                            f"Rate limit hit on run for session {self.session_id}"
                        )
                        record_rate_limited(span, admission.retry_after)
                        self._commit([Message.assistant_text(
                            f"⚠️ {rate_limit_message(admission.retry_after)}",
                            at=self._clock(),
                        )])
                        return

                try:
                    request = ProviderRequest(
                        model=self.settings.model,
                        system_prompt=self.settings.system_prompt,
                        history=to_provider_history(self.state.transcript),
                        tools=self.registry.get_all_tools(),
                        max_steps=self.settings.max_steps,
                    )
                except ChatBubbleError as e:
                    record_error(span, e)
                    raise

                logger.info(
                    f"Turn started for session {self.session_id} "
                    f"({len(request.history)} entries, {len(request.tools)} tools)"
                )
                accumulator = StreamAccumulator()
                published = 0
                interrupted = False
                try:
                    async for event in self.provider.stream(request):
                        if accumulator.apply(event):
                            published += 1
                            yield accumulator.snapshot(event.kind)
                except ChatBubbleError as e:
                    record_error(span, e)
                    raise
                except Exception as e:
                    # A failed stream ends the turn early; what arrived is kept.
                    logger.error(
                        f"Provider {self.provider.name} failed during turn "
                        f"for session {self.session_id}: {e}"
                    )
                    record_error(span, e)
                    interrupted = True

                entries = self._finalize(accumulator.data)
                record_turn(span, accumulator.data, published, len(entries), interrupted)

    def _finalize(self, data: StreamData) -> list[Message]:
        if data.is_empty():
            logger.warning(f"Turn for session {self.session_id} produced no output")
        entries = []
        now = self._clock()
        if data.tool_results:
            entries.append(Message.tool_result(data.tool_results, at=now))
        entries.append(Message.assistant(data.to_parts(), at=now))
        self._commit(entries)
        logger.info(
            f"Turn finished for session {self.session_id}: "
            f"{len(data.text)} chars, {len(data.tool_calls)} tool calls"
        )
        return entries

    def _commit(self, entries: list[Message]) -> None:
        self.state.transcript.extend(entries)
        self.store.save(self.state)

    # ------------------------------------------------------------------
    # Session actions
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear transcript and pending input; consent is left untouched."""
        self.state.transcript = []
        self.state.pending_input = ""
        self.errors = {}
        self.store.save(self.state)

    def grant_consent(self) -> None:
        self.consent.grant(self.state)
        self.store.save(self.state)

    def decline_consent(self) -> None:
        self.consent.decline(self.state)
        self.store.save(self.state)

    def gate_states(self) -> dict:
        settings = self.settings.consent
        states = {
            "consent_required": self.consent.is_required(),
            "has_consent": self.consent.has_consent(self.state),
            "has_declined": self.consent.has_declined(self.state),
            "consent_text": settings.consent_text,
            "consent_button_text": settings.consent_button_text,
            "decline_button_text": settings.decline_button_text,
            "declined_message": settings.declined_message,
            "streaming": self.is_streaming,
            "rate_limited": False,
            "retry_after": 0,
        }
        if self.settings.rate_limit.enabled:
            admission = self.rate_limiter.check(
                self.rate_limit_key, self.settings.rate_limit.max_messages,
            )
            states["rate_limited"] = not admission.allowed
            states["retry_after"] = admission.retry_after
        return states
