"""
Per-service circuit breaker for the Etherscan and JSON-RPC adapters.

A breaker sits in front of one external service.  After
``failure_threshold`` consecutive failures it opens and every request
fast-fails for ``recovery_timeout`` seconds; the next request after that
is a probe (HALF_OPEN).  ``success_threshold`` good probes close it
again, one bad probe re-opens it.

Adapters call ``guard``, which turns both a tripped circuit and a failed
call into ``None``::

    body = await breaker.guard(lambda: fetch(params), label="tokentx")
    if body is None:
        ...  # degraded path

State changes happen between awaits only, so no lock is needed on a
single event loop.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """The service's circuit is open; the request was not sent."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} circuit is open")
        self.circuit_name = name


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0

    @property
    def failure_rate(self) -> float:
        return self.failed_calls / self.total_calls if self.total_calls else 0.0


class CircuitBreaker:
    """Consecutive-failure breaker for one external service.

    Parameters
    ----------
    name:
        Service key, as reported by ``DataSources.health()``.
    failure_threshold:
        Consecutive failures that open the circuit.
    recovery_timeout:
        Seconds the circuit stays open before a probe is let through.
    success_threshold:
        Consecutive probe successes that close the circuit.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        success_threshold: int = 2,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.stats = CircuitBreakerStats()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_successes = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        return self._state

    def allow_request(self) -> bool:
        """False while open; moves an expired open circuit to HALF_OPEN."""
        if self._state != CircuitState.OPEN:
            return True
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            self._set_state(CircuitState.HALF_OPEN)
            return True
        return False

    def record_success(self) -> None:
        self._consecutive_failures = 0
        if self._state == CircuitState.HALF_OPEN:
            self._probe_successes += 1
            if self._probe_successes >= self.success_threshold:
                self._set_state(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self.stats.failed_calls += 1
        self._consecutive_failures += 1
        if (
            self._state == CircuitState.HALF_OPEN
            or self._consecutive_failures >= self.failure_threshold
        ):
            self._opened_at = time.monotonic()
            self._set_state(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await *func* through the breaker.

        Raises ``CircuitOpenError`` without calling *func* when open;
        otherwise re-raises whatever *func* raised.
        """
        if not self.allow_request():
            self.stats.rejected_calls += 1
            raise CircuitOpenError(self.name)

        self.stats.total_calls += 1
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    async def guard(
        self, func: Callable[[], Awaitable[Any]], *, label: str = ""
    ) -> Optional[Any]:
        """``call`` that returns ``None`` instead of raising."""
        try:
            return await self.call(func)
        except CircuitOpenError:
            logger.warning("%s circuit open, skipping %s", self.name, label)
        except Exception as exc:
            logger.warning("%s %s failed: %s", self.name, label, exc)
        return None

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.warning(
            "Circuit %s: %s -> %s after %d consecutive failures",
            self.name, self._state.value, new_state.value, self._consecutive_failures,
        )
        self._state = new_state
        self._probe_successes = 0

    def status(self) -> dict[str, Any]:
        """Serialisable status for the health endpoint."""
        return {
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "total_calls": self.stats.total_calls,
            "failed_calls": self.stats.failed_calls,
            "rejected_calls": self.stats.rejected_calls,
            "failure_rate": round(self.stats.failure_rate, 3),
        }
