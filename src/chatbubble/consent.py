from enum import Enum
from typing import TYPE_CHECKING

from chatbubble.config import ConsentSettings

if TYPE_CHECKING:
    from chatbubble.session import SessionState


class ConsentState(Enum):
    UNSET = "unset"
    GRANTED = "granted"
    DECLINED = "declined"


class ConsentGate:
    """Optional gate requiring recorded consent before a turn may run.

    Declining is its own persistent state, not the absence of consent:
    a visitor who declined keeps a disabled input until they grant
    consent explicitly.
    """

    def __init__(self, settings: ConsentSettings):
        self.settings = settings

    def is_required(self) -> bool:
        return self.settings.enabled

    def has_consent(self, state: "SessionState") -> bool:
        return state.consent is ConsentState.GRANTED

    def has_declined(self, state: "SessionState") -> bool:
        return state.consent is ConsentState.DECLINED

    def blocks(self, state: "SessionState") -> bool:
        return self.is_required() and not self.has_consent(state)

    def grant(self, state: "SessionState") -> None:
        state.consent = ConsentState.GRANTED

    def decline(self, state: "SessionState") -> None:
        state.consent = ConsentState.DECLINED
