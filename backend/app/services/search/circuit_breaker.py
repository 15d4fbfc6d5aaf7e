# backend/app/services/search/circuit_breaker.py
"""
Circuit breaker for external calls (search providers, OpenAI).

Breakers are plain objects owned by whoever makes the calls; there are no
module-level instances. After ``failure_threshold`` consecutive failures the
circuit opens and rejects calls until ``cooldown_seconds`` have elapsed, then
lets exactly one trial call through (half-open). A successful trial closes
the circuit, a failed one re-opens it for another cooldown.
"""
from dataclasses import dataclass, field
from enum import Enum
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    cooldown_seconds: float = 120.0


@dataclass
class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Usage:
        breaker = CircuitBreaker(name="eventbrite")

        if not breaker.allow_request():
            return CIRCUIT_OPEN
        try:
            data = await fetch()
            breaker.record_success()
        except httpx.HTTPError:
            breaker.record_failure()

    or, for a single awaitable, ``await breaker.call(fetch)`` which raises
    CircuitOpenError when the call is refused.
    """

    name: str
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    clock: Callable[[], float] = time.monotonic
    on_state_change: Optional[Callable[[str, CircuitState], None]] = None

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def _transition(self, new_state: CircuitState) -> None:
        # Caller holds the lock
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self.clock()
        if self.on_state_change is not None:
            self.on_state_change(self.name, new_state)
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(f"Circuit {self.name}: {old_state.name} -> {new_state.name}")

    def allow_request(self) -> bool:
        """Whether a call may be attempted now (claims the half-open trial slot)."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                elapsed = self.clock() - (self._opened_at or 0.0)
                if elapsed < self.config.cooldown_seconds:
                    return False
                self._transition(CircuitState.HALF_OPEN)

            # Half-open: one trial at a time
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._trial_in_flight = False
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._trial_in_flight = False
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit refuses the call
        """
        if not self.allow_request():
            raise CircuitOpenError(f"Circuit {self.name} is OPEN")

        try:
            result = await func(*args, **kwargs)
        except BaseException:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._trial_in_flight = False
            self._opened_at = None
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            remaining = 0.0
            if self._state == CircuitState.OPEN and self._opened_at is not None:
                remaining = max(
                    0.0, self.config.cooldown_seconds - (self.clock() - self._opened_at)
                )
            return {
                "state": self._state.value,
                "consecutive_failures": self._failure_count,
                "cooldown_remaining_s": round(remaining, 1),
            }


class CircuitOpenError(Exception):
    """Raised when attempting to call through an open circuit."""

    pass
