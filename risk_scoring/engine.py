"""
Risk Scoring Engine - Risk Scorer.

============================================================
PURPOSE
============================================================
Turns market, price-feed and wallet signals for one asset into
a RiskMetrics record with overall_risk in [0, 1].

============================================================
SUB-METRICS
============================================================
volatility             |price_change_24h| / 100, clamped to [0, 1]
liquidity_depth        liquidity_usd / max(volume_24h, 1)
market_cap             price * total_supply
price_feed_reliability base_reliability[source] * confidence
                       (0 when no quote is available)
slippage_estimate      min(1, trade_size / liquidity_depth),
                       1 when depth <= 0
wallet_risk            1 for known bad actors, floor otherwise

overall_risk = clamp(sum(weight_i * normalize(metric_i)), 0, 1)

============================================================
DESIGN PRINCIPLES
============================================================
- Pure for fixed inputs and configuration
- Never raises: degenerate inputs normalise to maximum risk
- Missing quote degrades reliability, never fails the score

============================================================
USAGE
============================================================
    scorer = RiskScorer(bad_actors=StaticBadActorRegistry({"scam..."}))
    metrics = scorer.score(asset, market_data, quote, intended_trade_size=0.5)

============================================================
"""

import logging
import math
from typing import Optional

from data_sources.models import AssetDescriptor, MarketData, PriceQuote

from .bad_actors import BadActorRegistry, StaticBadActorRegistry
from .config import RiskScoringConfig
from .types import RiskMetrics


logger = logging.getLogger(__name__)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _finite(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


class RiskScorer:
    """
    Computes RiskMetrics for a candidate asset.
    """

    def __init__(
        self,
        config: Optional[RiskScoringConfig] = None,
        bad_actors: Optional[BadActorRegistry] = None,
    ):
        self.config = config or RiskScoringConfig()
        self._bad_actors = bad_actors or StaticBadActorRegistry()

    def score(
        self,
        asset: AssetDescriptor,
        market_data: MarketData,
        quote: Optional[PriceQuote],
        intended_trade_size: Optional[float] = None,
    ) -> RiskMetrics:
        """Compute all sub-metrics and the weighted overall risk."""
        trade_size = intended_trade_size if intended_trade_size is not None else self.config.default_trade_size

        volatility = self.volatility(market_data.price_change_24h)
        depth = self.liquidity_depth(market_data.liquidity_usd, market_data.volume_24h)
        price = quote.price if quote is not None else market_data.price
        market_cap = price * asset.total_supply if _finite(price) and _finite(asset.total_supply) else float("nan")
        reliability = self.price_feed_reliability(quote)
        slippage = self.slippage_estimate(trade_size, depth)
        wallet_risk = self.wallet_risk(asset)

        overall = self._weighted_overall(
            volatility=volatility,
            depth=depth,
            market_cap=market_cap,
            reliability=reliability,
            slippage=slippage,
            wallet_risk=wallet_risk,
        )

        metrics = RiskMetrics(
            volatility=volatility,
            liquidity_depth=depth,
            market_cap=market_cap,
            price_feed_reliability=reliability,
            slippage_estimate=slippage,
            wallet_risk=wallet_risk,
            overall_risk=overall,
        )
        logger.debug(f"Risk for {asset.symbol}: overall={overall:.3f} level={metrics.level.value}")
        return metrics

    # --------------------------------------------------------
    # Sub-metrics
    # --------------------------------------------------------

    @staticmethod
    def volatility(price_change_24h_pct: float) -> float:
        if not _finite(price_change_24h_pct):
            return 1.0
        return _clamp(abs(price_change_24h_pct) / 100.0)

    @staticmethod
    def liquidity_depth(liquidity_usd: float, volume_24h: float) -> float:
        if not _finite(liquidity_usd):
            return float("nan")
        volume = volume_24h if _finite(volume_24h) else 0.0
        return liquidity_usd / max(volume, 1.0)

    def price_feed_reliability(self, quote: Optional[PriceQuote]) -> float:
        if quote is None or not _finite(quote.confidence):
            return 0.0
        base = self.config.reliability_for(quote.source.value)
        return _clamp(base * quote.confidence)

    @staticmethod
    def slippage_estimate(trade_size: float, depth: float) -> float:
        if not _finite(depth) or depth <= 0 or not _finite(trade_size):
            return 1.0
        return min(1.0, max(0.0, trade_size) / depth)

    def wallet_risk(self, asset: AssetDescriptor) -> float:
        try:
            flagged = self._bad_actors.contains(asset.identifier) or (
                asset.issuer is not None and self._bad_actors.contains(asset.issuer)
            )
        except Exception as e:
            logger.warning(f"Bad-actor lookup failed for {asset.identifier}, assuming worst: {e}")
            return 1.0
        return 1.0 if flagged else self.config.wallet_risk_floor

    # --------------------------------------------------------
    # Aggregation
    # --------------------------------------------------------

    def _weighted_overall(
        self,
        volatility: float,
        depth: float,
        market_cap: float,
        reliability: float,
        slippage: float,
        wallet_risk: float,
    ) -> float:
        w = self.config.weights
        total = (
            w.volatility * self._normalize_unit(volatility)
            + w.liquidity_depth * self._normalize_depth(depth)
            + w.market_cap * self._normalize_market_cap(market_cap)
            + w.price_feed_reliability * self._normalize_reliability(reliability)
            + w.slippage * self._normalize_unit(slippage)
            + w.wallet * self._normalize_unit(wallet_risk)
        )
        if not math.isfinite(total):
            return 1.0
        return _clamp(total)

    @staticmethod
    def _normalize_unit(value: float) -> float:
        if not _finite(value):
            return 1.0
        return _clamp(value)

    @staticmethod
    def _normalize_depth(depth: float) -> float:
        # Deeper book relative to traded volume -> lower risk.
        if not _finite(depth) or depth <= 0:
            return 1.0
        return 1.0 / (1.0 + depth)

    def _normalize_market_cap(self, market_cap: float) -> float:
        if not _finite(market_cap) or market_cap <= 0:
            return 1.0
        ref = self.config.market_cap_reference_usd
        return 1.0 - min(1.0, math.log10(1.0 + market_cap) / math.log10(1.0 + ref))

    @staticmethod
    def _normalize_reliability(reliability: float) -> float:
        if not _finite(reliability):
            return 1.0
        return 1.0 - _clamp(reliability)
