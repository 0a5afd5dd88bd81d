"""
Birdeye Data Source - Public API adapter.

Primary price provider and reference market data source.
Requires an API key (X-API-KEY header).
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from data_sources.base import BasePriceProvider, HttpClientMixin, MarketDataSource
from data_sources.exceptions import NormalizationError
from data_sources.models import AssetDescriptor, MarketData, PriceQuote, PriceSource


logger = logging.getLogger(__name__)

BASE_URL = "https://public-api.birdeye.so"


def _birdeye_headers(api_key: Optional[str], chain: str) -> dict[str, str]:
    headers = {"x-chain": chain}
    if api_key:
        headers["X-API-KEY"] = api_key
    return headers


def _unwrap(payload: Any, source_name: str) -> Optional[dict[str, Any]]:
    """Return payload['data'] when success is true, else None."""
    if not isinstance(payload, dict):
        raise NormalizationError("Unexpected response type", source_name=source_name, raw_data=payload)
    if not payload.get("success") or not isinstance(payload.get("data"), dict):
        return None
    return payload["data"]


def _to_datetime(unix_seconds: Any) -> datetime:
    if isinstance(unix_seconds, (int, float)) and unix_seconds > 0:
        return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)
    return datetime.now(timezone.utc)


class BirdeyePriceProvider(BasePriceProvider):
    """
    Birdeye price endpoint.

    Endpoints used:
    - /defi/price?address=<mint>

    Birdeye publishes no per-quote confidence; a fixed
    confidence is attached.
    """

    DEFAULT_CONFIDENCE = 0.95

    def __init__(
        self,
        api_key: Optional[str] = None,
        chain: str = "solana",
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._api_key = api_key or os.getenv("BIRDEYE_API_KEY")
        self._chain = chain

    @property
    def name(self) -> PriceSource:
        return PriceSource.BIRDEYE

    async def fetch_quote(self, asset_id: str) -> Optional[PriceQuote]:
        payload = await self._make_request(
            "GET",
            f"{BASE_URL}/defi/price",
            params={"address": asset_id},
            headers=_birdeye_headers(self._api_key, self._chain),
        )
        data = _unwrap(payload, self.source_label)
        if data is None or data.get("value") is None:
            return None

        try:
            price = float(data["value"])
        except (TypeError, ValueError) as e:
            raise NormalizationError(
                f"Invalid price value: {e}",
                source_name=self.source_label,
                raw_data=data,
                field_name="value",
            ) from e

        return PriceQuote(
            price=price,
            source=self.name,
            timestamp=_to_datetime(data.get("updateUnixTime")),
            confidence=self.DEFAULT_CONFIDENCE,
        )


class BirdeyeMarketDataSource(HttpClientMixin, MarketDataSource):
    """
    Birdeye token overview as a market data snapshot.

    Endpoints used:
    - /defi/token_overview?address=<mint>
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        chain: str = "solana",
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._init_http(timeout=timeout, session=session)
        self._api_key = api_key or os.getenv("BIRDEYE_API_KEY")
        self._chain = chain

    @property
    def source_label(self) -> str:
        return "birdeye_market"

    async def get_market_data(self, asset: AssetDescriptor) -> MarketData:
        payload = await self._make_request(
            "GET",
            f"{BASE_URL}/defi/token_overview",
            params={"address": asset.identifier},
            headers=_birdeye_headers(self._api_key, self._chain),
        )
        data = _unwrap(payload, self.source_label)
        if data is None:
            raise NormalizationError(
                f"No token overview for {asset.identifier}",
                source_name=self.source_label,
                raw_data=payload,
            )
        return self.normalize(data)

    def normalize(self, data: dict[str, Any]) -> MarketData:
        try:
            return MarketData(
                price=float(data.get("price") or 0.0),
                volume_24h=float(data.get("v24hUSD") or 0.0),
                liquidity_usd=float(data.get("liquidity") or 0.0),
                price_change_24h=float(data.get("priceChange24hPercent") or 0.0),
                last_update=_to_datetime(data.get("lastTradeUnixTime")),
            )
        except (TypeError, ValueError) as e:
            raise NormalizationError(
                f"Invalid token overview: {e}",
                source_name=self.source_label,
                raw_data=data,
            ) from e
