"""
Circuit breaker for the camera and TriMet upstreams.

After a run of consecutive failures the breaker opens and fetches fail fast
with CircuitOpenError instead of waiting on a dead host. Once the reset
timeout has passed, one trial request is let through; its outcome closes
the breaker again or re-opens it.

Usage:
    with camera_breaker.guard():
        response = requests.get(url, timeout=10)
        response.raise_for_status()
"""

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Optional

from trainstatus.config import BREAKER_FAILURE_THRESHOLD, BREAKER_RESET_TIMEOUT
from trainstatus.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    Fetches run on worker threads (asyncio.to_thread), so state changes are
    guarded by a lock.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = BREAKER_FAILURE_THRESHOLD,
        reset_timeout: float = BREAKER_RESET_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

    def _current_state(self) -> CircuitState:
        # Caller holds the lock
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit '{self.name}' half-open, allowing a trial request")
        return self._state

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failures

    def time_until_retry(self) -> float:
        with self._lock:
            if self._current_state() != CircuitState.OPEN:
                return 0.0
            return max(0.0, self.reset_timeout - (self._clock() - self._opened_at))

    def allow(self) -> bool:
        """Whether a request may go out right now."""
        with self._lock:
            return self._current_state() != CircuitState.OPEN

    def succeeded(self) -> None:
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"Circuit '{self.name}' closed after successful trial request")
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None

    def failed(self) -> None:
        with self._lock:
            self._failures += 1
            state = self._current_state()
            if state == CircuitState.HALF_OPEN or (
                state == CircuitState.CLOSED and self._failures >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning(
                    f"Circuit '{self.name}' open after {self._failures} consecutive failures"
                )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None

    @contextmanager
    def guard(self):
        """
        Run a request under the breaker.

        Raises:
            CircuitOpenError: If the breaker is open; the block doesn't run
        """
        if not self.allow():
            wait = self.time_until_retry()
            raise CircuitOpenError(
                f"{self.name} unavailable, retrying in {wait:.0f}s", time_until_retry=wait
            )
        try:
            yield
        except Exception:
            self.failed()
            raise
        self.succeeded()

    def get_status(self) -> dict:
        """Breaker state for the health endpoint."""
        with self._lock:
            state = self._current_state()
            failures = self._failures
        return {
            'name': self.name,
            'state': state.value,
            'failure_count': failures,
            'failure_threshold': self.failure_threshold,
            'time_until_retry': round(self.time_until_retry(), 1),
        }


camera_breaker = CircuitBreaker(name="camera")
transit_breaker = CircuitBreaker(name="trimet")
