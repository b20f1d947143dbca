# geotarget/services/search/circuit_breaker.py
"""
Circuit breaker for the engine's outbound dependencies.

Guards the reverse geocoder and the unified search endpoints so that, while
one of them is down, the bootstrapper and the suggestion boxes fall back at
once instead of waiting out a timeout per call. Only outages count: a caller
supplies `is_failure` to say which exceptions are outages, and answers such
as a 404 pass through without moving the breaker.

All state lives on one event loop, so there is no locking.
"""
from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ...core.exceptions import ExternalServiceException
from ...monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial call allowed


def is_outage(exc: BaseException) -> bool:
    """Default failure predicate: 4xx answers other than 429 are not outages."""
    if isinstance(exc, ExternalServiceException) and exc.status_code is not None:
        return exc.status_code == 429 or not 400 <= exc.status_code < 500
    return True


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5  # Consecutive outages before opening
    timeout_seconds: float = 60.0  # Time open before a trial call
    is_failure: Callable[[BaseException], bool] = is_outage


@dataclass
class CircuitBreaker:
    """
    Usage:
        breaker = CircuitBreaker(name="nominatim_reverse")

        try:
            address = await breaker.call(provider.reverse, lat, lng)
        except CircuitOpenError:
            ...  # apply the default location
    """

    name: str
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False)

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self.retry_after == 0:
            self._set_state(CircuitState.HALF_OPEN)
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def retry_after(self) -> float:
        """Seconds until an open circuit allows a trial call (0 when not open)."""
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.config.timeout_seconds - elapsed)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run `func` through the breaker.

        Raises:
            CircuitOpenError: the circuit is open, or a half-open trial is
                already running.
        """
        state = self.state
        if state is CircuitState.OPEN or (state is CircuitState.HALF_OPEN and self._trial_in_flight):
            raise CircuitOpenError(self.name, self.retry_after)

        trial = state is CircuitState.HALF_OPEN
        self._trial_in_flight = trial
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            if self.config.is_failure(exc):
                self._record_failure(exc)
            elif trial:
                # The service answered; it is up even if the answer was an error.
                self._close()
            raise
        finally:
            if trial:
                self._trial_in_flight = False
        if self._state is not CircuitState.CLOSED or self._failure_count:
            self._close()
        return result

    def reset(self) -> None:
        self._close()
        logger.info("Circuit %s: manually reset to CLOSED", self.name)

    def _record_failure(self, exc: Exception) -> None:
        if self._state is CircuitState.HALF_OPEN:
            logger.warning("Circuit %s: trial call failed (%s); reopening", self.name, exc)
            self._open()
            return
        self._failure_count += 1
        if self._failure_count >= self.config.failure_threshold:
            logger.warning(
                "Circuit %s: opening after %d consecutive failures (last: %s)",
                self.name,
                self._failure_count,
                exc,
            )
            self._open()

    def _open(self) -> None:
        self._opened_at = time.monotonic()
        self._set_state(CircuitState.OPEN)

    def _close(self) -> None:
        self._failure_count = 0
        self._opened_at = None
        self._set_state(CircuitState.CLOSED)

    def _set_state(self, state: CircuitState) -> None:
        if state is not self._state:
            logger.info("Circuit %s: %s -> %s", self.name, self._state.value, state.value)
            self._state = state
        prometheus_metrics.set_circuit_state(self.name, state.value)


class CircuitOpenError(Exception):
    """Raised when a call is refused by an open circuit."""

    def __init__(self, name: str, retry_after: float = 0.0) -> None:
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit {name} is OPEN (retry in {retry_after:.0f}s)")
