"""
Data Source Models - Normalized price and market data structures.

All providers MUST return these types so the aggregator and the
risk scorer never see provider-specific payloads.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class PriceSource(str, Enum):
    """Closed set of price provider tags."""
    BIRDEYE = "birdeye"
    JUPITER = "jupiter"
    PYTH = "pyth"
    SWITCHBOARD = "switchboard"


class SourceStatus(Enum):
    """Health status of a data source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AssetDescriptor:
    """
    Tradable asset under evaluation.

    identifier is the on-chain address (mint) used as the key for
    every provider call, cache slot and breaker key.
    """
    identifier: str
    symbol: str
    name: str = ""
    decimals: int = 0
    total_supply: float = 0.0
    holder_count: int = 0
    social_score: float = 0.0
    issuer: Optional[str] = None
    liquidity_usd: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "holder_count": self.holder_count,
            "social_score": self.social_score,
            "issuer": self.issuer,
            "liquidity_usd": self.liquidity_usd,
        }


@dataclass(frozen=True)
class PriceQuote:
    """
    Single price observation from one provider.

    confidence is in [0, 1]; 0 means the provider gave no usable
    confidence and the quote is rejected by the aggregator.
    """
    price: float
    source: PriceSource
    timestamp: datetime
    confidence: float

    def is_usable(self) -> bool:
        """Finite positive price and positive confidence."""
        return (
            isinstance(self.price, (int, float))
            and math.isfinite(self.price)
            and self.price > 0
            and isinstance(self.confidence, (int, float))
            and math.isfinite(self.confidence)
            and self.confidence > 0
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "source": self.source.value,
            "timestamp": self.timestamp.isoformat(),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class MarketData:
    """Market snapshot for one asset (price_change_24h in percent)."""
    price: float
    volume_24h: float
    liquidity_usd: float
    price_change_24h: float
    last_update: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "volume_24h": self.volume_24h,
            "liquidity_usd": self.liquidity_usd,
            "price_change_24h": self.price_change_24h,
            "last_update": self.last_update.isoformat(),
        }


@dataclass
class SourceHealth:
    """Health status of a price provider."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    uptime_percentage: float = 100.0

    def is_usable(self) -> bool:
        return self.status in (SourceStatus.HEALTHY, SourceStatus.DEGRADED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "uptime_percentage": self.uptime_percentage,
        }


@dataclass
class SourceIncident:
    """Record of a provider failure as seen by the aggregator."""
    source_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    asset_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "asset_id": self.asset_id,
        }
