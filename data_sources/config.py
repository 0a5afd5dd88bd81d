"""
Data Sources - Configuration.

============================================================
PURPOSE
============================================================
Settings for the price aggregator: cache lifetime, per-call
timeout, per-provider retry budget and provider priority.

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from resilience.retry import RetryPolicy


DEFAULT_PROVIDER_PRIORITY: Tuple[str, ...] = ("birdeye", "jupiter", "pyth")


@dataclass(frozen=True)
class AggregatorConfig:
    """Configuration for PriceAggregator."""

    cache_ttl_seconds: float = 60.0
    """Quote cache lifetime per asset."""

    request_timeout_seconds: float = 10.0
    """Upper bound for a single provider call."""

    provider_retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            max_attempts=2,
            base_delay_seconds=0.2,
            max_delay_seconds=1.0,
        )
    )
    """Retries of transport errors within one provider attempt."""

    provider_priority: Tuple[str, ...] = DEFAULT_PROVIDER_PRIORITY
    """Order in which providers are tried."""

    max_incidents: int = 500

    def validate(self) -> List[str]:
        errors = []
        if self.cache_ttl_seconds <= 0:
            errors.append("cache_ttl_seconds must be positive")
        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")
        if not self.provider_priority:
            errors.append("provider_priority must name at least one provider")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "provider_retry": self.provider_retry.to_dict(),
            "provider_priority": list(self.provider_priority),
            "max_incidents": self.max_incidents,
        }
