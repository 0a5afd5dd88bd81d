"""
Data Sources Module - Price providers and the price aggregator.

Usage:
    from data_sources import PriceAggregator
    from data_sources.providers import BirdeyePriceProvider, JupiterPriceProvider, PythPriceProvider

    aggregator = PriceAggregator([BirdeyePriceProvider(), JupiterPriceProvider(), PythPriceProvider()])
    quote = await aggregator.get_price(mint)
"""

from data_sources.aggregator import PriceAggregator
from data_sources.base import BasePriceProvider, MarketDataSource
from data_sources.config import AggregatorConfig
from data_sources.exceptions import (
    FetchError,
    InvalidQuoteError,
    NormalizationError,
    RateLimitError,
)
from data_sources.models import (
    AssetDescriptor,
    MarketData,
    PriceQuote,
    PriceSource,
    SourceHealth,
    SourceStatus,
)


__all__ = [
    "PriceAggregator",
    "BasePriceProvider",
    "MarketDataSource",
    "AggregatorConfig",
    "FetchError",
    "InvalidQuoteError",
    "NormalizationError",
    "RateLimitError",
    "AssetDescriptor",
    "MarketData",
    "PriceQuote",
    "PriceSource",
    "SourceHealth",
    "SourceStatus",
]
