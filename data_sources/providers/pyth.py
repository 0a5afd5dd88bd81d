"""
Pyth Price Source - Hermes HTTP adapter.

Pyth is keyed by price feed id, not by token mint, so a
mint -> feed id mapping is required. Explicit mappings take
precedence; otherwise the published product list is fetched
and cached for 10 minutes.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import aiohttp

from core.clock import ClockProtocol
from data_sources.base import BasePriceProvider, HttpClientMixin
from data_sources.exceptions import NormalizationError
from data_sources.models import PriceQuote, PriceSource
from resilience.cache import TTLCache


logger = logging.getLogger(__name__)


PYTH_IDS_URL = "https://raw.githubusercontent.com/pyth-network/pyth-client-js/main/src/ids.json"


class PythFeedRegistry(HttpClientMixin):
    """
    Mint -> Pyth feed id lookup.

    The remote file has the shape
    {"mainnet-beta": {"products": [{"symbol", "price_account",
    "base", "quote", "token_address"?, "base_token_address"?}]}}.
    """

    CACHE_KEY = "mapping"

    def __init__(
        self,
        static_mapping: Optional[Mapping[str, str]] = None,
        ids_url: Optional[str] = PYTH_IDS_URL,
        cache_ttl_seconds: float = 600.0,
        clock: Optional[ClockProtocol] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._init_http(timeout=timeout, session=session)
        self._static = dict(static_mapping or {})
        self._ids_url = ids_url
        self._cache: TTLCache[dict[str, str]] = TTLCache(
            ttl_seconds=cache_ttl_seconds, clock=clock, name="pyth_ids"
        )

    @property
    def source_label(self) -> str:
        return "pyth_ids"

    async def feed_id_for(self, mint: str) -> Optional[str]:
        if mint in self._static:
            return self._static[mint]
        if not self._ids_url:
            return None
        mapping = await self._load_mapping()
        return mapping.get(mint)

    async def _load_mapping(self) -> dict[str, str]:
        cached = self._cache.get(self.CACHE_KEY)
        if cached is not None:
            return cached

        payload = await self._make_request("GET", self._ids_url)
        mapping = self.parse_mapping(payload)
        self._cache.set(self.CACHE_KEY, mapping)
        logger.info(f"[pyth_ids] Loaded {len(mapping)} mint mappings")
        return mapping

    @staticmethod
    def parse_mapping(payload: Any) -> dict[str, str]:
        products = None
        if isinstance(payload, dict):
            products = (payload.get("mainnet-beta") or {}).get("products")
        if not isinstance(products, list):
            raise NormalizationError("Invalid Pyth ids structure", source_name="pyth_ids", raw_data=payload)

        mapping: dict[str, str] = {}
        for product in products:
            if not isinstance(product, dict):
                continue
            if not all(product.get(k) for k in ("symbol", "price_account", "base", "quote")):
                continue
            for mint_field in ("token_address", "base_token_address"):
                mint = product.get(mint_field)
                if mint:
                    mapping[mint] = product["price_account"]
        return mapping


class PythPriceProvider(BasePriceProvider):
    """
    Pyth Hermes latest price.

    Endpoints used:
    - /v2/updates/price/latest?ids[]=<feed id>&parsed=true

    Prices are fixed-point (price * 10**expo). Confidence is
    derived from the published confidence interval:
    1 - conf / price, clamped to [0, 1].
    """

    HERMES_URL = "https://hermes.pyth.network"

    def __init__(
        self,
        feed_registry: Optional[PythFeedRegistry] = None,
        hermes_url: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._feeds = feed_registry or PythFeedRegistry(session=session)
        self._hermes_url = (hermes_url or self.HERMES_URL).rstrip("/")

    @property
    def name(self) -> PriceSource:
        return PriceSource.PYTH

    async def fetch_quote(self, asset_id: str) -> Optional[PriceQuote]:
        feed_id = await self._feeds.feed_id_for(asset_id)
        if not feed_id:
            logger.debug(f"[pyth] No feed mapping for {asset_id}")
            return None

        payload = await self._make_request(
            "GET",
            f"{self._hermes_url}/v2/updates/price/latest",
            params={"ids[]": feed_id, "parsed": "true"},
        )
        return self.normalize(payload)

    def normalize(self, payload: Any) -> Optional[PriceQuote]:
        parsed = payload.get("parsed") if isinstance(payload, dict) else None
        if not parsed:
            return None

        entry = parsed[0].get("price") if isinstance(parsed[0], dict) else None
        if not entry:
            return None

        try:
            expo = int(entry.get("expo", 0))
            price = float(entry["price"]) * (10 ** expo)
            conf = float(entry.get("conf", 0)) * (10 ** expo)
        except (KeyError, TypeError, ValueError) as e:
            raise NormalizationError(
                f"Invalid Pyth price entry: {e}",
                source_name=self.source_label,
                raw_data=entry,
            ) from e

        publish_time = entry.get("publish_time")
        timestamp = (
            datetime.fromtimestamp(publish_time, tz=timezone.utc)
            if isinstance(publish_time, (int, float))
            else datetime.now(timezone.utc)
        )

        return PriceQuote(
            price=price,
            source=self.name,
            timestamp=timestamp,
            confidence=confidence_from_interval(price, conf),
        )

    async def close(self) -> None:
        await self._feeds.close()
        await super().close()


def confidence_from_interval(price: float, conf: float) -> float:
    """Map a +/- confidence interval to a [0, 1] confidence score."""
    if not math.isfinite(price) or price <= 0 or not math.isfinite(conf):
        return 0.0
    return max(0.0, min(1.0, 1.0 - abs(conf) / price))
