import threading
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from chatbubble.consent import ConsentState
from chatbubble.message import Message


class SessionState(BaseModel):
    """Everything a chat session persists between requests."""

    session_id: str
    transcript: list[Message] = Field(default_factory=list)
    pending_input: str = ""
    consent: ConsentState = ConsentState.UNSET


class SessionStore(ABC):
    """Loads a session's state at turn start and saves it at turn end."""

    @abstractmethod
    def load(self, session_id: str) -> SessionState:
        """Return the stored state, or a fresh one when none exists."""

    @abstractmethod
    def save(self, state: SessionState) -> None:
        ...


class InMemorySessionStore(SessionStore):
    """Keeps serialized states in a dict.

    States are stored as JSON-ready payloads and re-validated on load,
    so no two callers ever share a mutable instance.
    """

    def __init__(self) -> None:
        self._states: dict[str, dict] = {}
        self._lock = threading.Lock()

    def load(self, session_id: str) -> SessionState:
        with self._lock:
            payload = self._states.get(session_id)
        if payload is None:
            return SessionState(session_id=session_id)
        return SessionState.model_validate(payload)

    def save(self, state: SessionState) -> None:
        payload = state.model_dump(mode="json", by_alias=True)
        with self._lock:
            self._states[state.session_id] = payload

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)
