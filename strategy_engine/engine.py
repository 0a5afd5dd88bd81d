"""
Strategy Engine - Signal Generator.

============================================================
PURPOSE
============================================================
Combines the scoring oracle's confidence with risk metrics
into a sized trade recommendation, or an explicit no-signal.

============================================================
FLOW (per candidate, strictly sequential)
============================================================
1. Market data snapshot      (breaker key "market_data")
2. Price quote               (PriceAggregator)
3. Oracle confidence         (breaker key "oracle")
4. Risk metrics              (RiskScorer)
5. Gates: confidence, liquidity
6. Position size
7. Price-impact gate         (max_slippage_bps)
8. Prediction metrics

============================================================
FAILURE SEMANTICS
============================================================
- Oracle failure / timeout / invalid score
      -> OracleUnavailableError (candidate skipped)
- Market data or price failure -> propagated
- Zero volatility in predictions -> InvalidMetricError
- Gates not met -> None (valid negative outcome)

============================================================
USAGE
============================================================
    generator = SignalGenerator(aggregator, market_data, oracle, scorer, breaker)
    signal = await generator.evaluate(asset)
    if signal is not None:
        await executor.execute_entry(signal)

============================================================
"""

import asyncio
import logging
import math
from typing import Optional

from core.exceptions import (
    CircuitOpenError,
    InvalidMetricError,
    OracleUnavailableError,
    ProviderUnavailableError,
)
from data_sources.aggregator import PriceAggregator
from data_sources.base import MarketDataSource
from data_sources.models import AssetDescriptor, MarketData
from resilience.circuit_breaker import CircuitBreaker
from risk_scoring.engine import RiskScorer
from risk_scoring.types import RiskMetrics

from .config import SignalConfig
from .oracle import FeatureVector, ScoringOracle, build_features
from .types import (
    NoSignalReason,
    PredictionMetrics,
    SignalEvaluation,
    TradeAction,
    TradeSignal,
)


logger = logging.getLogger(__name__)


ORACLE_BREAKER_KEY = "oracle"
MARKET_DATA_BREAKER_KEY = "market_data"


class SignalGenerator:
    """
    Produces TradeSignals for candidate assets.
    """

    def __init__(
        self,
        aggregator: PriceAggregator,
        market_data: MarketDataSource,
        oracle: ScoringOracle,
        risk_scorer: RiskScorer,
        breaker: Optional[CircuitBreaker] = None,
        config: Optional[SignalConfig] = None,
    ):
        self.config = config or SignalConfig()
        self._aggregator = aggregator
        self._market_data = market_data
        self._oracle = oracle
        self._risk = risk_scorer
        self._breaker = breaker or CircuitBreaker()

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    async def evaluate(self, asset: AssetDescriptor) -> Optional[TradeSignal]:
        """Signal for asset, or None when a gate is not met."""
        evaluation = await self.evaluate_detailed(asset)
        return evaluation.signal

    async def evaluate_detailed(self, asset: AssetDescriptor) -> SignalEvaluation:
        """Like evaluate() but also reports why no signal was produced."""
        cfg = self.config

        market = await self._fetch_market_data(asset)
        quote = await self._aggregator.get_price(asset.identifier)
        features = build_features(asset, market, quote)
        confidence = await self._score(features)
        risk = self._risk.score(asset, market, quote, intended_trade_size=cfg.max_position_size)

        if confidence < cfg.confidence_threshold:
            return self._no_signal(
                asset,
                NoSignalReason.LOW_CONFIDENCE,
                confidence,
                risk,
                f"confidence {confidence:.3f} < {cfg.confidence_threshold}",
            )

        if market.liquidity_usd < cfg.min_liquidity_usd:
            return self._no_signal(
                asset,
                NoSignalReason.INSUFFICIENT_LIQUIDITY,
                confidence,
                risk,
                f"liquidity ${market.liquidity_usd:,.0f} < ${cfg.min_liquidity_usd:,.0f}",
            )

        size = self.position_size(confidence, risk)
        impact_bps = self.price_impact_bps(size, quote.price, market.liquidity_usd)
        if impact_bps > cfg.max_slippage_bps:
            return self._no_signal(
                asset,
                NoSignalReason.EXCESSIVE_SLIPPAGE,
                confidence,
                risk,
                f"price impact {impact_bps:.1f}bps > {cfg.max_slippage_bps}bps",
            )

        prediction = self.predict(confidence, risk.volatility)

        signal = TradeSignal(
            asset=asset,
            action=TradeAction.BUY,
            confidence=confidence,
            price=quote.price,
            volume=market.volume_24h,
            suggested_size=size,
            risk_metrics=risk,
            prediction=prediction,
            price_impact_bps=impact_bps,
        )
        logger.info(
            f"Signal {signal.action.value} {asset.symbol}: confidence={confidence:.3f} "
            f"size={size:.4f} risk={risk.overall_risk:.3f} impact={impact_bps:.1f}bps"
        )
        return SignalEvaluation(
            asset=asset,
            signal=signal,
            confidence=confidence,
            risk_metrics=risk,
        )

    # --------------------------------------------------------
    # Calculations
    # --------------------------------------------------------

    def position_size(self, confidence: float, risk: RiskMetrics) -> float:
        cfg = self.config
        depth = risk.liquidity_depth if math.isfinite(risk.liquidity_depth) else 0.0
        depth_factor = min(1.0, max(0.0, depth) / cfg.full_size_depth)
        raw = cfg.max_position_size * confidence * (1.0 - risk.volatility) * depth_factor
        return max(cfg.min_position_size, min(cfg.max_position_size, raw))

    @staticmethod
    def price_impact_bps(size: float, price: float, liquidity_usd: float) -> float:
        """Notional as a share of pool liquidity, in basis points."""
        if liquidity_usd <= 0:
            return math.inf
        return size * price / liquidity_usd * 10_000

    def predict(self, confidence: float, volatility: float) -> PredictionMetrics:
        """
        Raises:
            InvalidMetricError: volatility too small or a non-finite result
        """
        if not math.isfinite(volatility) or volatility < self.config.min_volatility:
            raise InvalidMetricError(
                "Volatility too small for reward-to-risk",
                metric="volatility",
                value=volatility,
            )

        prediction = PredictionMetrics(
            expected_return=confidence * (1.0 - volatility) * 100.0,
            max_drawdown=volatility * 200.0,
            reward_to_risk=(confidence - self.config.risk_free_rate) / volatility,
        )
        for name, value in prediction.to_dict().items():
            if not math.isfinite(value):
                raise InvalidMetricError(f"Non-finite {name}", metric=name, value=value)
        return prediction

    # --------------------------------------------------------
    # Dependencies
    # --------------------------------------------------------

    async def _fetch_market_data(self, asset: AssetDescriptor) -> MarketData:
        timeout = self.config.market_data_timeout_seconds

        async def call() -> MarketData:
            try:
                return await asyncio.wait_for(self._market_data.get_market_data(asset), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise ProviderUnavailableError(
                    f"Market data timed out after {timeout}s",
                    provider=MARKET_DATA_BREAKER_KEY,
                    cause=e,
                ) from e

        return await self._breaker.execute(MARKET_DATA_BREAKER_KEY, call)

    async def _score(self, features: FeatureVector) -> float:
        timeout = self.config.oracle_timeout_seconds

        async def call() -> float:
            try:
                value = await asyncio.wait_for(self._oracle.score(features), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise OracleUnavailableError(f"Scoring oracle timed out after {timeout}s", cause=e) from e
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise OracleUnavailableError(f"Scoring oracle returned non-numeric {value!r}")
            if not math.isfinite(value) or not 0.0 <= value <= 1.0:
                raise OracleUnavailableError(f"Scoring oracle returned out-of-range {value!r}")
            return float(value)

        try:
            return await self._breaker.execute(ORACLE_BREAKER_KEY, call)
        except CircuitOpenError as e:
            raise OracleUnavailableError("Scoring oracle circuit open", cause=e) from e
        except OracleUnavailableError:
            raise
        except Exception as e:
            raise OracleUnavailableError(f"Scoring oracle failed: {e}", cause=e) from e

    def _no_signal(
        self,
        asset: AssetDescriptor,
        reason: NoSignalReason,
        confidence: float,
        risk: RiskMetrics,
        detail: str,
    ) -> SignalEvaluation:
        logger.debug(f"No signal for {asset.symbol}: {reason.value} ({detail})")
        return SignalEvaluation(
            asset=asset,
            no_signal_reason=reason,
            confidence=confidence,
            risk_metrics=risk,
            detail=detail,
        )
