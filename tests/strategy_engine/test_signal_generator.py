"""
Tests for the Signal Generator.

============================================================
PURPOSE
============================================================
- Gates: confidence, liquidity, price impact
- Sizing and prediction formulas
- Oracle failures surface as OracleUnavailableError
- Degenerate volatility is an InvalidMetricError, never a
  silently coerced number

============================================================
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from core.exceptions import (
    AllProvidersFailedError,
    CircuitOpenError,
    InvalidMetricError,
    OracleUnavailableError,
)
from data_sources.base import MarketDataSource
from resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from risk_scoring.engine import RiskScorer
from strategy_engine.config import SignalConfig
from strategy_engine.engine import SignalGenerator
from strategy_engine.oracle import FEATURE_NAMES, HttpScoringOracle, ScoringOracle, build_features
from strategy_engine.types import NoSignalReason, TradeAction
from tests.factories import make_asset, make_market, make_quote, make_risk


# ============================================================
# FIXTURES
# ============================================================

class StubMarketData(MarketDataSource):
    def __init__(self, market):
        self.market = market
        self.calls = 0

    async def get_market_data(self, asset):
        self.calls += 1
        return self.market


class StubOracle(ScoringOracle):
    def __init__(self, value=0.8, error=None, delay=0.0):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    async def score(self, features):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def aggregator():
    aggregator = AsyncMock()
    aggregator.get_price = AsyncMock(return_value=make_quote(price=2.0))
    return aggregator


def _generator(aggregator, oracle=None, market=None, config=None, breaker=None):
    return SignalGenerator(
        aggregator,
        StubMarketData(market or make_market()),
        oracle or StubOracle(),
        RiskScorer(),
        breaker=breaker,
        config=config or SignalConfig(),
    )


# ============================================================
# SIGNALS
# ============================================================

class TestSignals:
    """Tests for producing a sized signal."""

    @pytest.mark.asyncio
    async def test_produces_sized_signal(self, aggregator):
        """Test that a confident, liquid candidate yields a BUY signal."""
        generator = _generator(aggregator)

        signal = await generator.evaluate(make_asset())

        assert signal is not None
        assert signal.action == TradeAction.BUY
        assert signal.confidence == pytest.approx(0.8)
        assert signal.price == 2.0
        # 1.0 * 0.8 * (1 - 0.1) * min(1, 2.0 / 2.0)
        assert signal.suggested_size == pytest.approx(0.72)
        assert signal.price_impact_bps == pytest.approx(0.144)

    @pytest.mark.asyncio
    async def test_prediction_metrics(self, aggregator):
        """Test that expected return, drawdown and reward-to-risk follow the formulas."""
        signal = await _generator(aggregator).evaluate(make_asset())

        assert signal.prediction.expected_return == pytest.approx(72.0)
        assert signal.prediction.max_drawdown == pytest.approx(20.0)
        assert signal.prediction.reward_to_risk == pytest.approx(7.8)

    @pytest.mark.asyncio
    async def test_detailed_evaluation_carries_risk(self, aggregator):
        """Test that evaluate_detailed reports confidence and risk with the signal."""
        evaluation = await _generator(aggregator).evaluate_detailed(make_asset())

        assert evaluation.has_signal
        assert evaluation.no_signal_reason is None
        assert evaluation.risk_metrics is evaluation.signal.risk_metrics

    @pytest.mark.asyncio
    async def test_confidence_at_threshold_passes(self, aggregator):
        """Test that confidence exactly at the threshold is accepted."""
        generator = _generator(aggregator, oracle=StubOracle(0.67))

        assert await generator.evaluate(make_asset()) is not None


# ============================================================
# GATES
# ============================================================

class TestGates:
    """Tests for no-signal outcomes."""

    @pytest.mark.asyncio
    async def test_low_confidence(self, aggregator):
        """Test that confidence below threshold yields no signal."""
        generator = _generator(aggregator, oracle=StubOracle(0.5))

        evaluation = await generator.evaluate_detailed(make_asset())

        assert evaluation.signal is None
        assert evaluation.no_signal_reason == NoSignalReason.LOW_CONFIDENCE
        assert evaluation.confidence == pytest.approx(0.5)
        assert await generator.evaluate(make_asset()) is None

    @pytest.mark.asyncio
    async def test_insufficient_liquidity(self, aggregator):
        """Test that thin pools yield no signal."""
        generator = _generator(aggregator, market=make_market(liquidity_usd=5_000.0))

        evaluation = await generator.evaluate_detailed(make_asset())

        assert evaluation.no_signal_reason == NoSignalReason.INSUFFICIENT_LIQUIDITY

    @pytest.mark.asyncio
    async def test_excessive_price_impact(self, aggregator):
        """Test that a notional too large for the pool yields no signal."""
        aggregator.get_price = AsyncMock(return_value=make_quote(price=100_000.0))
        generator = _generator(aggregator)

        evaluation = await generator.evaluate_detailed(make_asset())

        assert evaluation.no_signal_reason == NoSignalReason.EXCESSIVE_SLIPPAGE
        assert "bps" in evaluation.detail


# ============================================================
# CALCULATIONS
# ============================================================

class TestCalculations:
    """Tests for sizing, impact and prediction helpers."""

    def test_size_clamped_to_minimum(self, aggregator):
        """Test that a fully volatile asset still gets the minimum size."""
        generator = _generator(aggregator)

        assert generator.position_size(0.9, make_risk(volatility=1.0)) == pytest.approx(0.01)

    def test_size_scaled_by_depth(self, aggregator):
        """Test that shallow books scale the size down."""
        generator = _generator(aggregator)

        size = generator.position_size(1.0, make_risk(volatility=0.0, liquidity_depth=1.0))

        assert size == pytest.approx(0.5)

    def test_size_treats_nan_depth_as_empty(self, aggregator):
        """Test that a NaN depth sizes at the minimum."""
        generator = _generator(aggregator)

        size = generator.position_size(1.0, make_risk(volatility=0.0, liquidity_depth=float("nan")))

        assert size == pytest.approx(0.01)

    def test_price_impact_without_liquidity(self):
        """Test that zero liquidity means unbounded impact."""
        assert SignalGenerator.price_impact_bps(1.0, 2.0, 0.0) == float("inf")

    @pytest.mark.parametrize("volatility", [0.0, float("nan")])
    def test_predict_rejects_degenerate_volatility(self, aggregator, volatility):
        """Test that zero or NaN volatility raises InvalidMetricError."""
        with pytest.raises(InvalidMetricError):
            _generator(aggregator).predict(0.8, volatility)

    @pytest.mark.asyncio
    async def test_zero_volatility_candidate_raises(self, aggregator):
        """Test that a flat-price candidate passing every gate raises."""
        generator = _generator(aggregator, market=make_market(price_change_24h=0.0))

        with pytest.raises(InvalidMetricError):
            await generator.evaluate(make_asset())


# ============================================================
# DEPENDENCY FAILURES
# ============================================================

class TestDependencyFailures:
    """Tests for oracle, market data and price failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [1.5, -0.1, float("nan"), "0.9", True])
    async def test_invalid_oracle_value(self, aggregator, value):
        """Test that non-numeric or out-of-range scores are rejected."""
        generator = _generator(aggregator, oracle=StubOracle(value))

        with pytest.raises(OracleUnavailableError):
            await generator.evaluate(make_asset())

    @pytest.mark.asyncio
    async def test_oracle_exception_wrapped(self, aggregator):
        """Test that an arbitrary oracle failure becomes OracleUnavailableError."""
        generator = _generator(aggregator, oracle=StubOracle(error=RuntimeError("500")))

        with pytest.raises(OracleUnavailableError):
            await generator.evaluate(make_asset())

    @pytest.mark.asyncio
    async def test_oracle_timeout(self, aggregator):
        """Test that a slow oracle times out as OracleUnavailableError."""
        generator = _generator(
            aggregator,
            oracle=StubOracle(delay=1.0),
            config=SignalConfig(oracle_timeout_seconds=0.01),
        )

        with pytest.raises(OracleUnavailableError):
            await generator.evaluate(make_asset())

    @pytest.mark.asyncio
    async def test_oracle_circuit_opens(self, aggregator):
        """Test that an open oracle circuit skips the call."""
        oracle = StubOracle(error=RuntimeError("down"))
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1))
        generator = _generator(aggregator, oracle=oracle, breaker=breaker)

        with pytest.raises(OracleUnavailableError):
            await generator.evaluate(make_asset())
        with pytest.raises(OracleUnavailableError) as exc_info:
            await generator.evaluate(make_asset())

        assert oracle.calls == 1
        assert isinstance(exc_info.value.cause, CircuitOpenError)

    @pytest.mark.asyncio
    async def test_price_failure_propagates(self, aggregator):
        """Test that AllProvidersFailedError reaches the caller."""
        aggregator.get_price = AsyncMock(
            side_effect=AllProvidersFailedError("mint", {"birdeye": "HTTP 503"})
        )

        with pytest.raises(AllProvidersFailedError):
            await _generator(aggregator).evaluate(make_asset())


# ============================================================
# ORACLE
# ============================================================

class TestOracle:
    """Tests for features and the HTTP oracle."""

    def test_features_follow_declared_order(self):
        """Test that the feature vector matches FEATURE_NAMES."""
        features = build_features(make_asset(), make_market(), make_quote(price=2.0))

        assert features.names == FEATURE_NAMES
        assert features.to_dict()["price"] == 2.0
        assert features.to_dict()["holder_count"] == 5_000.0
        assert len(features.to_list()) == len(FEATURE_NAMES)

    @pytest.mark.asyncio
    async def test_http_oracle_parses_confidence(self):
        """Test that the HTTP oracle returns the response confidence."""
        oracle = HttpScoringOracle("https://oracle.example/score", api_key="k")
        features = build_features(make_asset(), make_market(), make_quote())

        with patch.object(oracle, "_make_request", AsyncMock(return_value={"confidence": "0.73"})) as request:
            assert await oracle.score(features) == pytest.approx(0.73)

        kwargs = request.await_args.kwargs
        assert kwargs["headers"] == {"Authorization": "Bearer k"}
        assert kwargs["json"]["feature_names"] == list(FEATURE_NAMES)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, [], {"confidence": "high"}])
    async def test_http_oracle_rejects_bad_payload(self, payload):
        """Test that malformed responses raise OracleUnavailableError."""
        oracle = HttpScoringOracle("https://oracle.example/score")
        features = build_features(make_asset(), make_market(), make_quote())

        with patch.object(oracle, "_make_request", AsyncMock(return_value=payload)):
            with pytest.raises(OracleUnavailableError):
                await oracle.score(features)
