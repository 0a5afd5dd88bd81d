"""
Providers package - Price and market data source implementations.
"""

from data_sources.providers.birdeye import BirdeyeMarketDataSource, BirdeyePriceProvider
from data_sources.providers.jupiter import JupiterPriceProvider
from data_sources.providers.pyth import PythFeedRegistry, PythPriceProvider


__all__ = [
    "BirdeyeMarketDataSource",
    "BirdeyePriceProvider",
    "JupiterPriceProvider",
    "PythFeedRegistry",
    "PythPriceProvider",
]
