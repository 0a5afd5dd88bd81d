"""
Resilience - Circuit Breaker.

============================================================
PURPOSE
============================================================
Stops calling a dependency that keeps failing.

One breaker instance serves many dependencies; each is
identified by a key (e.g. "price:birdeye", "oracle").

============================================================
STATE MACHINE
============================================================
CLOSED     failures < threshold, calls pass through
OPEN       failures >= threshold and cool-down not elapsed,
           calls rejected with CircuitOpenError
HALF_OPEN  cool-down elapsed; exactly one probe call allowed.
           success -> CLOSED, failure -> OPEN

Any success resets the failure count for the key.

============================================================
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from core.clock import ClockProtocol, SystemClock
from core.exceptions import CircuitOpenError


logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================
# CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Breaker thresholds, shared by every key."""

    failure_threshold: int = 5
    """Consecutive failures that open the circuit."""

    reset_timeout_seconds: float = 60.0
    """Cool-down before a probe is allowed."""

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must be non-negative")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class _CircuitRecord:
    failure_count: int = 0
    last_failure_at: float = 0.0
    probe_in_flight: bool = False


# ============================================================
# CIRCUIT BREAKER
# ============================================================

class CircuitBreaker:
    """
    Keyed circuit breaker.

    Usage:
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=5))
        quote = await breaker.execute("price:jupiter", lambda: provider.get_current_price(mint))
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or CircuitBreakerConfig()
        self._clock = clock or SystemClock()
        self._records: Dict[str, _CircuitRecord] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    # --------------------------------------------------------
    # State queries
    # --------------------------------------------------------

    def state(self, key: str) -> CircuitState:
        with self._lock:
            return self._state_locked(key)

    def is_open(self, key: str) -> bool:
        """True while calls for key would be rejected."""
        with self._lock:
            state = self._state_locked(key)
            if state == CircuitState.HALF_OPEN:
                return self._records[key].probe_in_flight
            return state == CircuitState.OPEN

    def failure_count(self, key: str) -> int:
        with self._lock:
            record = self._records.get(key)
            return record.failure_count if record else 0

    def retry_after(self, key: str) -> float:
        """Seconds until the key becomes probe-eligible (0 if not open)."""
        with self._lock:
            record = self._records.get(key)
            if record is None or record.failure_count < self._config.failure_threshold:
                return 0.0
            elapsed = self._clock.monotonic() - record.last_failure_at
            return max(0.0, self._config.reset_timeout_seconds - elapsed)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                key: {
                    "state": self._state_locked(key).value,
                    "failure_count": record.failure_count,
                }
                for key, record in self._records.items()
            }

    # --------------------------------------------------------
    # Execution
    # --------------------------------------------------------

    async def execute(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run operation under the breaker for key.

        Raises:
            CircuitOpenError: circuit open; operation not called
            Exception: whatever the operation raised (recorded as a failure)
        """
        is_probe = self._acquire(key)
        try:
            result = await operation()
        except Exception:
            self.record_failure(key)
            raise
        except BaseException:
            # Cancellation is not a dependency failure.
            if is_probe:
                self._release_probe(key)
            raise
        self.record_success(key)
        return result

    def record_success(self, key: str) -> None:
        with self._lock:
            record = self._records.pop(key, None)
        if record is not None and record.failure_count >= self._config.failure_threshold:
            logger.info(f"Circuit closed for {key}")

    def record_failure(self, key: str) -> None:
        with self._lock:
            record = self._records.setdefault(key, _CircuitRecord())
            record.failure_count += 1
            record.last_failure_at = self._clock.monotonic()
            record.probe_in_flight = False
            count = record.failure_count
        if count == self._config.failure_threshold:
            logger.warning(f"Circuit opened for {key} after {count} failures")
        elif count > self._config.failure_threshold:
            logger.warning(f"Circuit re-opened for {key} (probe failed)")
        else:
            logger.debug(f"Failure recorded for {key}, count={count}")

    def reset(self, key: Optional[str] = None) -> None:
        """Forget failures for key, or for every key when key is None."""
        with self._lock:
            if key is None:
                self._records.clear()
            else:
                self._records.pop(key, None)

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _state_locked(self, key: str) -> CircuitState:
        record = self._records.get(key)
        if record is None or record.failure_count < self._config.failure_threshold:
            return CircuitState.CLOSED
        elapsed = self._clock.monotonic() - record.last_failure_at
        if elapsed < self._config.reset_timeout_seconds:
            return CircuitState.OPEN
        return CircuitState.HALF_OPEN

    def _acquire(self, key: str) -> bool:
        """Admit a call or raise CircuitOpenError. Returns True for a probe."""
        with self._lock:
            state = self._state_locked(key)
            if state == CircuitState.CLOSED:
                return False
            record = self._records[key]
            if state == CircuitState.HALF_OPEN and not record.probe_in_flight:
                record.probe_in_flight = True
                logger.info(f"Circuit half-open for {key}, sending probe")
                return True
            elapsed = self._clock.monotonic() - record.last_failure_at
            retry_after = max(0.0, self._config.reset_timeout_seconds - elapsed)
        logger.debug(f"Circuit open for {key}, rejecting call")
        raise CircuitOpenError(key, retry_after_seconds=retry_after)

    def _release_probe(self, key: str) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.probe_in_flight = False
