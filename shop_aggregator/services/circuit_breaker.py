# shop_aggregator/services/circuit_breaker.py

"""Per-service circuit breaker for the gated adapters.

``threshold`` consecutive terminal failures open the circuit; while
open, calls fail fast without touching the quota ledger or upstream.
After ``cooldown`` seconds the breaker goes half-open and lets trial
calls through: ``half_open_successes`` successes close it again, any
failure re-opens it and restarts the cooldown.
"""

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

from shop_aggregator.config.settings import Settings

logger = logging.getLogger("shop_aggregator.circuit")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure breaker guarding one upstream service."""

    def __init__(
        self,
        service_id: str,
        threshold: int = Settings.CIRCUIT_BREAKER_THRESHOLD,
        cooldown: float = Settings.CIRCUIT_BREAKER_COOLDOWN,
        half_open_successes: int = (
            Settings.CIRCUIT_BREAKER_HALF_OPEN_SUCCESSES
        ),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.service_id = service_id
        self.threshold = threshold
        self.cooldown = cooldown
        self.half_open_successes = half_open_successes
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_count = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def allow_request(self) -> bool:
        """True unless the circuit is open and still cooling down."""
        with self._lock:
            self._maybe_half_open()
            return self._state is not CircuitState.OPEN

    def retry_after(self) -> float:
        """Seconds until an open circuit goes half-open (0 otherwise)."""
        with self._lock:
            if self._state is not CircuitState.OPEN:
                return 0.0
            elapsed = self._clock() - self._opened_at
            return max(0.0, self.cooldown - elapsed)

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_count += 1
                if self._half_open_count < self.half_open_successes:
                    return
                logger.info(
                    "[%s] Circuit breaker closed after %d trial "
                    "success(es)",
                    self.service_id,
                    self._half_open_count,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._half_open_count = 0

    def record_failure(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._open("trial call failed")
                return
            self._consecutive_failures += 1
            if (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self.threshold
            ):
                self._open(
                    f"{self._consecutive_failures} consecutive failures"
                )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._half_open_count = 0
            self._opened_at = 0.0

    # ── Internals (caller holds the lock) ────────────────

    def _open(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_count = 0
        logger.error(
            "[%s] Circuit breaker opened (%s); cooling down %.0fs",
            self.service_id,
            reason,
            self.cooldown,
        )

    def _maybe_half_open(self) -> None:
        if self._state is not CircuitState.OPEN:
            return
        elapsed = self._clock() - self._opened_at
        if elapsed >= self.cooldown:
            self._state = CircuitState.HALF_OPEN
            self._half_open_count = 0
            logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.service_id,
                elapsed,
            )
