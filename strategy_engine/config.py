"""
Strategy Engine - Configuration.

============================================================
PURPOSE
============================================================
Gates, sizing bounds and prediction constants for the
Signal Generator.

============================================================
CONFIGURATION PHILOSOPHY
============================================================
- Conservative defaults (fewer, higher-quality signals)
- Slippage is enforced once, here, before any execution
- Immutable configuration

============================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class SignalConfig:
    """
    Configuration for SignalGenerator.

    ============================================================
    GATES
    ============================================================
    confidence_threshold: oracle confidence required to trade
    min_liquidity_usd:    pool liquidity required to trade
    max_slippage_bps:     estimated price impact ceiling

    ============================================================
    SIZING
    ============================================================
    size = clamp(max * conf * (1 - vol) * min(1, depth / 2),
                 min_position_size, max_position_size)

    ============================================================
    """

    confidence_threshold: float = 0.67
    min_liquidity_usd: float = 10_000.0
    max_position_size: float = 1.0
    min_position_size: float = 0.01
    max_slippage_bps: float = 150.0

    # depth at which sizing stops being scaled down
    full_size_depth: float = 2.0

    risk_free_rate: float = 0.02
    min_volatility: float = 1e-9

    oracle_timeout_seconds: float = 5.0
    market_data_timeout_seconds: float = 10.0

    def validate(self) -> List[str]:
        errors = []
        if not 0.0 <= self.confidence_threshold <= 1.0:
            errors.append("confidence_threshold must be in [0, 1]")
        if self.min_liquidity_usd < 0:
            errors.append("min_liquidity_usd must be non-negative")
        if self.max_position_size <= 0:
            errors.append("max_position_size must be positive")
        if not 0 < self.min_position_size <= self.max_position_size:
            errors.append("min_position_size must be in (0, max_position_size]")
        if self.max_slippage_bps <= 0:
            errors.append("max_slippage_bps must be positive")
        if self.full_size_depth <= 0:
            errors.append("full_size_depth must be positive")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "min_liquidity_usd": self.min_liquidity_usd,
            "max_position_size": self.max_position_size,
            "min_position_size": self.min_position_size,
            "max_slippage_bps": self.max_slippage_bps,
            "full_size_depth": self.full_size_depth,
            "risk_free_rate": self.risk_free_rate,
            "min_volatility": self.min_volatility,
            "oracle_timeout_seconds": self.oracle_timeout_seconds,
            "market_data_timeout_seconds": self.market_data_timeout_seconds,
        }
