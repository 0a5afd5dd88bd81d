"""
Jupiter Price Source - Public price API adapter.

No authentication required.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from data_sources.base import BasePriceProvider
from data_sources.exceptions import NormalizationError
from data_sources.models import PriceQuote, PriceSource


logger = logging.getLogger(__name__)


class JupiterPriceProvider(BasePriceProvider):
    """
    Jupiter aggregated swap price.

    Endpoints used:
    - /price/v2?ids=<mint>

    Response shape: {"data": {"<mint>": {"price": "1.23"}}}.
    A missing entry (unknown mint) is "no price", not an error.
    """

    BASE_URL = "https://api.jup.ag"
    DEFAULT_CONFIDENCE = 0.9

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._base_url = (base_url or self.BASE_URL).rstrip("/")

    @property
    def name(self) -> PriceSource:
        return PriceSource.JUPITER

    async def fetch_quote(self, asset_id: str) -> Optional[PriceQuote]:
        payload = await self._make_request(
            "GET",
            f"{self._base_url}/price/v2",
            params={"ids": asset_id},
        )
        return self.normalize(payload, asset_id)

    def normalize(self, payload: Any, asset_id: str) -> Optional[PriceQuote]:
        if not isinstance(payload, dict):
            raise NormalizationError("Unexpected response type", source_name=self.source_label, raw_data=payload)

        entry = (payload.get("data") or {}).get(asset_id)
        if not entry or entry.get("price") is None:
            return None

        try:
            price = float(entry["price"])
        except (TypeError, ValueError) as e:
            raise NormalizationError(
                f"Invalid price value: {e}",
                source_name=self.source_label,
                raw_data=entry,
                field_name="price",
            ) from e

        return PriceQuote(
            price=price,
            source=self.name,
            timestamp=datetime.now(timezone.utc),
            confidence=self.DEFAULT_CONFIDENCE,
        )
