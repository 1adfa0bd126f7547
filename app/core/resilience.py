"""
Circuit breakers for outbound storefront calls.

One breaker guards one logical operation ("product.get", "collection.create",
...). Breakers live in a BreakerRegistry owned by whoever builds the services
(the FastAPI lifespan or the worker startup); there is no module-level registry.

States:
- CLOSED: calls pass through; failures inside the rolling window are counted.
- OPEN: calls fail fast with BreakerOpenError without invoking the function.
- HALF-OPEN: after the reset timeout a single probe call is let through.
  Success closes the circuit, failure re-opens it. Other callers arriving
  while the probe is in flight are rejected.

Usage:
    registry = BreakerRegistry(BreakerConfig.from_settings(settings))
    product = await registry.get("product.get").fire(client.get_product, gid)

A fire counts as one trial no matter how many retries the wrapped function
performs internally.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple, Type, TypeVar

from app.core.enums import CircuitState
from app.core.exceptions import BreakerOpenError
from app.core.metrics import BREAKER_REJECTIONS, BREAKER_STATE, BREAKER_TRANSITIONS

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass
class BreakerConfig:
    failure_threshold: int = 5  # Failures inside the window that open the circuit
    window_seconds: float = 60.0  # Rolling failure window
    reset_timeout: float = 30.0  # Seconds open before a probe is allowed
    call_timeout: Optional[float] = None  # Optional per-fire deadline, counted as a failure

    @classmethod
    def from_settings(cls, settings) -> "BreakerConfig":
        return cls(
            failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
            window_seconds=settings.BREAKER_WINDOW_SECONDS,
            reset_timeout=settings.BREAKER_RESET_TIMEOUT_SECONDS,
            call_timeout=settings.BREAKER_CALL_TIMEOUT_SECONDS,
        )


class CircuitBreaker:
    """Per-operation circuit breaker with a rolling failure window."""

    def __init__(
        self,
        name: str,
        config: Optional[BreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
    ):
        self.name = name
        self.config = config or BreakerConfig()
        self._clock = clock
        self._ignored_exceptions = ignored_exceptions

        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._opened_at = 0.0
        self._probe_in_flight = False
        self.last_transition_at = clock()

        BREAKER_STATE.labels(breaker=name).set(_STATE_GAUGE_VALUES[CircuitState.CLOSED])

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._cooldown_remaining() <= 0:
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def failure_count(self) -> int:
        self._prune(self._clock())
        return len(self._failures)

    def _cooldown_remaining(self) -> float:
        return max(0.0, self.config.reset_timeout - (self._clock() - self._opened_at))

    def _prune(self, now: float) -> None:
        horizon = now - self.config.window_seconds
        while self._failures and self._failures[0] <= horizon:
            self._failures.popleft()

    def to_dict(self) -> Dict[str, Any]:
        state = self.state
        return {
            "state": state.value,
            "failures": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "window_seconds": self.config.window_seconds,
            "reset_timeout": self.config.reset_timeout,
            "cooldown_remaining": self._cooldown_remaining() if state == CircuitState.OPEN else 0.0,
            "seconds_since_transition": round(self._clock() - self.last_transition_at, 3),
        }

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------
    async def fire(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        state = self.state
        if state == CircuitState.OPEN:
            self._reject()
        probe = False
        if state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                self._reject()
            self._probe_in_flight = True
            probe = True

        try:
            if self.config.call_timeout:
                result = await asyncio.wait_for(fn(*args, **kwargs), timeout=self.config.call_timeout)
            else:
                result = await fn(*args, **kwargs)
        except self._ignored_exceptions:
            if probe:
                self._transition(CircuitState.CLOSED)
            raise
        except Exception:
            self._record_failure(probe)
            raise
        finally:
            if probe:
                self._probe_in_flight = False

        self._record_success(probe)
        return result

    def _reject(self) -> None:
        BREAKER_REJECTIONS.labels(breaker=self.name).inc()
        raise BreakerOpenError(self.name, retry_after=self._cooldown_remaining())

    def _record_failure(self, probe: bool) -> None:
        if probe:
            logger.warning(f"Circuit breaker '{self.name}' probe failed")
            self._trip()
            return
        if self._state != CircuitState.CLOSED:
            # Late failure from a call started before the circuit opened
            return

        now = self._clock()
        self._failures.append(now)
        self._prune(now)
        if len(self._failures) >= self.config.failure_threshold:
            logger.warning(
                f"Circuit breaker '{self.name}' OPEN after {len(self._failures)} failures "
                f"in {self.config.window_seconds:.0f}s"
            )
            self._trip()

    def _record_success(self, probe: bool) -> None:
        if probe:
            self._transition(CircuitState.CLOSED)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _trip(self) -> None:
        self._opened_at = self._clock()
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        previous = self._state
        self._state = new_state
        self.last_transition_at = self._clock()
        if new_state == CircuitState.CLOSED:
            self._failures.clear()

        BREAKER_STATE.labels(breaker=self.name).set(_STATE_GAUGE_VALUES[new_state])
        BREAKER_TRANSITIONS.labels(breaker=self.name, state=new_state.value).inc()
        if new_state == CircuitState.OPEN:
            logger.warning(f"Circuit breaker '{self.name}': {previous.value} -> open")
        else:
            logger.info(f"Circuit breaker '{self.name}': {previous.value} -> {new_state.value}")

    def open(self) -> None:
        """Force the circuit open (manual load shedding)."""
        self._trip()

    def close(self) -> None:
        """Force the circuit closed and forget recorded failures."""
        self._transition(CircuitState.CLOSED)
        self._failures.clear()
        self._probe_in_flight = False

    reset = close


class BreakerRegistry:
    """Owns one CircuitBreaker per operation name for the process lifetime."""

    def __init__(
        self,
        config: Optional[BreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
    ):
        self.config = config or BreakerConfig()
        self._clock = clock
        self._ignored_exceptions = ignored_exceptions
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                self.config,
                clock=self._clock,
                ignored_exceptions=self._ignored_exceptions,
            )
            self._breakers[name] = breaker
            logger.debug(f"Created circuit breaker: {name}")
        return breaker

    def names(self) -> list:
        return sorted(self._breakers)

    def status(self) -> Dict[str, Any]:
        breakers = {name: self._breakers[name].to_dict() for name in self.names()}
        open_circuits = [name for name, data in breakers.items() if data["state"] == CircuitState.OPEN.value]
        return {
            "health": "degraded" if open_circuits else "healthy",
            "open_circuits": open_circuits,
            "breakers": breakers,
        }

    def reset(self, name: Optional[str] = None) -> int:
        targets = [self._breakers[name]] if name in self._breakers else []
        if name is None:
            targets = list(self._breakers.values())
        for breaker in targets:
            breaker.reset()
        logger.info(f"Reset {len(targets)} circuit breaker(s)")
        return len(targets)

    def shutdown(self) -> None:
        self._breakers.clear()
