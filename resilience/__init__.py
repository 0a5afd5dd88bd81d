"""
Resilience primitives shared by every external dependency.

- TTLCache: lazily expiring keyed cache
- CircuitBreaker: keyed CLOSED/OPEN/HALF_OPEN breaker
- RetryPolicy / retry_async / RetryQueue: exponential backoff
"""

from resilience.cache import CacheEntry, TTLCache
from resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from resilience.retry import DeadLetter, RetryPolicy, RetryQueue, retry_async


__all__ = [
    "CacheEntry",
    "TTLCache",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "DeadLetter",
    "RetryPolicy",
    "RetryQueue",
    "retry_async",
]
