"""
Shared builders for test data.

Every builder takes keyword overrides so tests only spell out
the fields they care about.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from data_sources.models import AssetDescriptor, MarketData, PriceQuote, PriceSource
from risk_scoring.types import RiskMetrics
from storage.types import Position
from strategy_engine.types import PredictionMetrics, TradeAction, TradeSignal


T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

SOL_MINT = "So11111111111111111111111111111111111111112"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def make_asset(identifier: str = BONK_MINT, **overrides) -> AssetDescriptor:
    values = dict(
        identifier=identifier,
        symbol="BONK",
        name="Bonk",
        decimals=5,
        total_supply=1_000_000.0,
        holder_count=5_000,
        social_score=0.5,
    )
    values.update(overrides)
    return AssetDescriptor(**values)


def make_quote(
    price: float = 2.0,
    source: PriceSource = PriceSource.BIRDEYE,
    timestamp: Optional[datetime] = None,
    confidence: float = 0.95,
) -> PriceQuote:
    return PriceQuote(
        price=price,
        source=source,
        timestamp=timestamp or T0,
        confidence=confidence,
    )


def make_market(**overrides) -> MarketData:
    values = dict(
        price=2.0,
        volume_24h=50_000.0,
        liquidity_usd=100_000.0,
        price_change_24h=10.0,
        last_update=T0,
    )
    values.update(overrides)
    return MarketData(**values)


def make_risk(**overrides) -> RiskMetrics:
    values = dict(
        volatility=0.1,
        liquidity_depth=2.0,
        market_cap=2_000_000.0,
        price_feed_reliability=0.9,
        slippage_estimate=0.5,
        wallet_risk=0.1,
        overall_risk=0.3,
    )
    values.update(overrides)
    return RiskMetrics(**values)


def make_signal(
    asset: Optional[AssetDescriptor] = None,
    confidence: float = 0.8,
    suggested_size: float = 0.5,
    price: float = 2.0,
) -> TradeSignal:
    return TradeSignal(
        asset=asset or make_asset(),
        action=TradeAction.BUY,
        confidence=confidence,
        price=price,
        volume=50_000.0,
        suggested_size=suggested_size,
        risk_metrics=make_risk(),
        prediction=PredictionMetrics(expected_return=72.0, max_drawdown=20.0, reward_to_risk=7.8),
        price_impact_bps=1.0,
    )


def make_position(
    position_id: str = "pos-1",
    asset_id: str = BONK_MINT,
    entry_price: float = 1.0,
    amount: float = 10.0,
    entry_time: Optional[datetime] = None,
    **overrides,
) -> Position:
    values = dict(
        position_id=position_id,
        asset_id=asset_id,
        symbol="BONK",
        entry_price=entry_price,
        amount=amount,
        entry_time=entry_time or (T0 - timedelta(minutes=10)),
    )
    values.update(overrides)
    return Position(**values)


async def no_sleep(_seconds: float) -> None:
    return None


class StaticPrices:
    """Aggregator stand-in: fixed price, or an exception, per asset."""

    def __init__(self, prices):
        self.prices = prices
        self.calls = []

    async def get_price(self, asset_id):
        self.calls.append(asset_id)
        value = self.prices[asset_id]
        if isinstance(value, Exception):
            raise value
        return make_quote(price=value)

    def health(self):
        return {}
