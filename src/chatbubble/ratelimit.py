"""Per-session sliding-window admission control."""

import math
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable


KEY_PREFIX = "agentic-chat-bubble"


def rate_limit_key(session_id: str) -> str:
    return f"{KEY_PREFIX}:{session_id}"


def rate_limit_message(seconds: int) -> str:
    return (
        f"Rate limit exceeded. Please wait {seconds} seconds "
        "before sending another message."
    )


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after: int = 0

    @classmethod
    def admitted(cls) -> "Admission":
        return cls(allowed=True)

    @classmethod
    def denied(cls, retry_after: int) -> "Admission":
        return cls(allowed=False, retry_after=retry_after)


class RateLimiter(ABC):
    """Rate-limiter storage shared by every session of a process."""

    @abstractmethod
    def check(self, key: str, max_attempts: int) -> Admission:
        """Inspect *key* without recording a hit."""

    @abstractmethod
    def admit(self, key: str, max_attempts: int, decay_seconds: int) -> Admission:
        """Check and, when allowed, record one hit as a single decision."""

    @abstractmethod
    def clear(self, key: str) -> None:
        ...


class InMemoryRateLimiter(RateLimiter):
    """Sliding window of hit times per key, guarded by one lock.

    Each hit carries its own expiry (``hit time + decay``); a key is
    saturated while ``max_attempts`` unexpired hits remain, and the
    wait reported on denial is the time until the oldest one expires.

    Args:
        clock: Monotonic time source in seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def check(self, key: str, max_attempts: int) -> Admission:
        with self._lock:
            return self._decide(key, max_attempts, self._clock())

    def admit(self, key: str, max_attempts: int, decay_seconds: int) -> Admission:
        with self._lock:
            now = self._clock()
            decision = self._decide(key, max_attempts, now)
            if decision.allowed:
                self._hits.setdefault(key, deque()).append(now + decay_seconds)
            return decision

    def hits(self, key: str) -> int:
        with self._lock:
            self._expire(key, self._clock())
            return len(self._hits.get(key, ()))

    def clear(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def _decide(self, key: str, max_attempts: int, now: float) -> Admission:
        self._expire(key, now)
        expiries = self._hits.get(key)
        if expiries and len(expiries) >= max_attempts:
            return Admission.denied(max(1, math.ceil(expiries[0] - now)))
        return Admission.admitted()

    def _expire(self, key: str, now: float) -> None:
        expiries = self._hits.get(key)
        if expiries is None:
            return
        while expiries and expiries[0] <= now:
            expiries.popleft()
        if not expiries:
            del self._hits[key]
