"""
Circuit Breaker

Guards one downstream dependency. While CLOSED every call passes and its
outcome is recorded in a bucketed rolling window; when the failure ratio in
the window reaches the threshold with enough volume, the breaker OPENs and
rejects calls without attempting them. After ``reset_timeout`` it becomes
HALF_OPEN and lets exactly one probe through: a successful probe closes the
breaker with an empty window, a failed one reopens it and restarts the timer.

State lives behind a ``threading.Lock`` that is never held across an await,
so taking permission to call is a single atomic check-and-set.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .. import metrics
from ..config import CircuitBreakerConfigSection
from ..errors import CircuitOpenError, DependencyTimeout, ValidationError
from .rolling_window import RollingWindow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitPhase(Enum):
    """Circuit breaker phases."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # One probe allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""

    failure_rate_threshold: float = 0.5
    minimum_requests: int = 5
    window_duration: float = 10.0
    bucket_count: int = 10
    reset_timeout: float = 30.0
    call_timeout: float = 5.0
    history_size: int = 50

    def validate(self) -> None:
        if not 0 < self.failure_rate_threshold <= 1:
            raise ValidationError("Failure rate threshold must be between 0 and 1")
        if self.minimum_requests < 1:
            raise ValidationError("Minimum request volume must be at least 1")
        if self.window_duration <= 0 or self.bucket_count < 1:
            raise ValidationError("Rolling window must have a positive duration and buckets")
        if self.reset_timeout <= 0:
            raise ValidationError("Reset timeout must be positive")
        if self.call_timeout <= 0:
            raise ValidationError("Call timeout must be positive")

    @classmethod
    def from_section(cls, section: CircuitBreakerConfigSection) -> CircuitBreakerConfig:
        return cls(
            failure_rate_threshold=section.failure_rate_threshold,
            minimum_requests=section.minimum_requests,
            window_duration=section.window_duration,
            bucket_count=section.bucket_count,
            reset_timeout=section.reset_timeout,
            call_timeout=section.call_timeout,
        )


@dataclass(frozen=True)
class CircuitTransition:
    """One phase change of a breaker."""

    name: str
    from_phase: CircuitPhase
    to_phase: CircuitPhase
    at: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "from": self.from_phase.value,
            "to": self.to_phase.value,
            "at": self.at,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker."""

    name: str
    phase: CircuitPhase
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "phase": self.phase.value, "stats": self.stats}


TransitionListener = Callable[[CircuitTransition], None]


class CircuitBreaker:
    """Rolling-window circuit breaker for async operations."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.config.validate()
        self._clock = clock

        self._lock = threading.Lock()
        self._phase = CircuitPhase.CLOSED
        self._window = RollingWindow(self.config.window_duration, self.config.bucket_count)
        self._opened_at: float | None = None
        self._probe_in_flight = False

        self._listeners: list[TransitionListener] = []
        self._history: deque[CircuitTransition] = deque(maxlen=self.config.history_size)

        self._stats = {
            "calls": 0,
            "successes": 0,
            "failures": 0,
            "timeouts": 0,
            "rejections": 0,
        }
        metrics.circuit_phase.labels(self.name).set(metrics.PHASE_VALUES[self._phase.value])

    @property
    def phase(self) -> CircuitPhase:
        return self.get_state().phase

    @property
    def history(self) -> list[CircuitTransition]:
        with self._lock:
            return list(self._history)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under the breaker.

        Raises:
            CircuitOpenError: the call was rejected and never attempted.
            DependencyTimeout: the operation exceeded ``call_timeout`` or
                reported its own timeout.
            Exception: whatever the operation raised, unchanged.
        """
        is_probe = self._acquire_permission()

        try:
            result = await asyncio.wait_for(operation(), timeout=self.config.call_timeout)
        except asyncio.TimeoutError:
            self._on_failure(is_probe, timed_out=True)
            raise DependencyTimeout(self.name, self.config.call_timeout) from None
        except DependencyTimeout:
            self._on_failure(is_probe, timed_out=True)
            raise
        except asyncio.CancelledError:
            self._on_cancelled(is_probe)
            raise
        except Exception:
            self._on_failure(is_probe)
            raise

        self._on_success(is_probe)
        return result

    def check(self) -> None:
        """Fail fast if a call would be rejected right now, without claiming a slot."""
        transitions: list[CircuitTransition] = []
        try:
            with self._lock:
                self._maybe_half_open(self._clock(), transitions)
                error = self._rejection()
                if error is not None:
                    self._stats["rejections"] += 1
        finally:
            self._publish(transitions)

        if error is not None:
            metrics.circuit_rejections_total.labels(self.name).inc()
            raise error

    def get_state(self) -> CircuitSnapshot:
        transitions: list[CircuitTransition] = []
        try:
            with self._lock:
                now = self._clock()
                self._maybe_half_open(now, transitions)
                snapshot = CircuitSnapshot(self.name, self._phase, self._build_stats(now))
        finally:
            self._publish(transitions)
        return snapshot

    def reset(self) -> None:
        """Force the breaker CLOSED with an empty window."""
        transitions: list[CircuitTransition] = []
        with self._lock:
            self._window.reset()
            self._probe_in_flight = False
            self._opened_at = None
            if self._phase != CircuitPhase.CLOSED:
                self._transition(CircuitPhase.CLOSED, "manual reset", transitions)

        self._publish(transitions)
        logger.info("Circuit breaker %s reset", self.name)

    def add_listener(self, listener: TransitionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _acquire_permission(self) -> bool:
        """Admit or reject one call; returns True when the call is the probe."""
        transitions: list[CircuitTransition] = []
        try:
            with self._lock:
                self._maybe_half_open(self._clock(), transitions)
                error = self._rejection()
                if error is not None:
                    self._stats["rejections"] += 1
                else:
                    self._stats["calls"] += 1
                    is_probe = self._phase == CircuitPhase.HALF_OPEN
                    if is_probe:
                        self._probe_in_flight = True
        finally:
            self._publish(transitions)

        if error is not None:
            metrics.circuit_rejections_total.labels(self.name).inc()
            logger.debug("Circuit breaker %s rejected call: %s", self.name, error)
            raise error
        return is_probe

    def _rejection(self) -> CircuitOpenError | None:
        if self._phase == CircuitPhase.OPEN:
            return CircuitOpenError(self.name, self._phase.value, self._retry_after(self._clock()))
        if self._phase == CircuitPhase.HALF_OPEN and self._probe_in_flight:
            return CircuitOpenError(self.name, self._phase.value)
        return None

    def _on_success(self, is_probe: bool) -> None:
        transitions: list[CircuitTransition] = []
        with self._lock:
            self._stats["successes"] += 1
            if is_probe and self._owns_probe():
                self._probe_in_flight = False
                self._window.reset()
                self._opened_at = None
                self._transition(CircuitPhase.CLOSED, "probe succeeded", transitions)
            elif self._phase == CircuitPhase.CLOSED:
                now = self._clock()
                self._window.record(True, now)
                self._evaluate(now, transitions)

        metrics.circuit_calls_total.labels(self.name, "success").inc()
        self._publish(transitions)

    def _on_failure(self, is_probe: bool, timed_out: bool = False) -> None:
        transitions: list[CircuitTransition] = []
        with self._lock:
            now = self._clock()
            self._stats["failures"] += 1
            if timed_out:
                self._stats["timeouts"] += 1

            if is_probe and self._owns_probe():
                self._probe_in_flight = False
                self._opened_at = now
                self._transition(CircuitPhase.OPEN, "probe failed", transitions)
            elif self._phase == CircuitPhase.CLOSED:
                self._window.record(False, now)
                self._evaluate(now, transitions)

        metrics.circuit_calls_total.labels(self.name, "timeout" if timed_out else "failure").inc()
        self._publish(transitions)

    def _on_cancelled(self, is_probe: bool) -> None:
        with self._lock:
            if is_probe and self._owns_probe():
                self._probe_in_flight = False
        logger.debug("Call through circuit breaker %s was cancelled", self.name)

    def _owns_probe(self) -> bool:
        # False when a reset or another transition superseded the probe.
        return self._phase == CircuitPhase.HALF_OPEN and self._probe_in_flight

    def _evaluate(self, now: float, transitions: list[CircuitTransition]) -> None:
        totals = self._window.totals(now)
        if totals.total < self.config.minimum_requests:
            return
        if totals.failure_ratio >= self.config.failure_rate_threshold:
            self._opened_at = now
            self._transition(
                CircuitPhase.OPEN,
                f"failure ratio {totals.failure_ratio:.2f} over {totals.total} calls",
                transitions,
            )

    def _maybe_half_open(self, now: float, transitions: list[CircuitTransition]) -> None:
        if self._phase != CircuitPhase.OPEN or self._opened_at is None:
            return
        if now - self._opened_at >= self.config.reset_timeout:
            self._probe_in_flight = False
            self._transition(CircuitPhase.HALF_OPEN, "reset timeout elapsed", transitions)

    def _retry_after(self, now: float) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.config.reset_timeout - (now - self._opened_at))

    def _transition(
        self, to_phase: CircuitPhase, reason: str, transitions: list[CircuitTransition]
    ) -> None:
        """Change phase; must be called with the lock held."""
        transition = CircuitTransition(self.name, self._phase, to_phase, self._clock(), reason)
        self._phase = to_phase
        self._history.append(transition)
        transitions.append(transition)

        metrics.circuit_transitions_total.labels(self.name, to_phase.value).inc()
        metrics.circuit_phase.labels(self.name).set(metrics.PHASE_VALUES[to_phase.value])

    def _publish(self, transitions: list[CircuitTransition]) -> None:
        """Log and deliver transitions; called without the lock held."""
        if not transitions:
            return

        with self._lock:
            listeners = list(self._listeners)

        for transition in transitions:
            log = logger.warning if transition.to_phase == CircuitPhase.OPEN else logger.info
            log(
                "Circuit breaker %s state changed: %s -> %s (%s)",
                self.name,
                transition.from_phase.value,
                transition.to_phase.value,
                transition.reason,
            )
            for listener in listeners:
                try:
                    listener(transition)
                except Exception as e:
                    logger.error("Circuit breaker %s listener failed: %s", self.name, e)

    def _build_stats(self, now: float) -> dict[str, Any]:
        totals = self._window.totals(now)
        return {
            **self._stats,
            "window_successes": totals.successes,
            "window_failures": totals.failures,
            "window_total": totals.total,
            "failure_ratio": totals.failure_ratio,
            "probe_in_flight": self._probe_in_flight,
            "retry_after": self._retry_after(now) if self._phase == CircuitPhase.OPEN else 0.0,
        }


def is_circuit_open_error(error: BaseException) -> bool:
    """Check whether an error is a fail-fast rejection by a circuit breaker."""
    return isinstance(error, CircuitOpenError)
