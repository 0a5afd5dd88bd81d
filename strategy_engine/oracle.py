"""
Strategy Engine - Scoring Oracle.

============================================================
PURPOSE
============================================================
Interface to the machine-scored confidence model, plus the
feature vector it is fed.

The model itself is external. The engine only requires a
number in [0, 1] back; anything else is rejected upstream.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from core.exceptions import OracleUnavailableError
from data_sources.base import HttpClientMixin
from data_sources.models import AssetDescriptor, MarketData, PriceQuote


logger = logging.getLogger(__name__)


# ============================================================
# FEATURES
# ============================================================


FEATURE_NAMES: Tuple[str, ...] = (
    "price",
    "volume_24h",
    "liquidity_usd",
    "price_change_24h",
    "quote_confidence",
    "total_supply",
    "decimals",
    "holder_count",
    "social_score",
)


@dataclass(frozen=True)
class FeatureVector:
    """Ordered model inputs for one asset."""
    asset_id: str
    values: Tuple[float, ...]

    @property
    def names(self) -> Tuple[str, ...]:
        return FEATURE_NAMES

    def to_list(self) -> List[float]:
        return list(self.values)

    def to_dict(self) -> Dict[str, float]:
        return dict(zip(FEATURE_NAMES, self.values))


def build_features(
    asset: AssetDescriptor,
    market_data: MarketData,
    quote: PriceQuote,
) -> FeatureVector:
    """Assemble the model feature vector in FEATURE_NAMES order."""
    return FeatureVector(
        asset_id=asset.identifier,
        values=(
            float(quote.price),
            float(market_data.volume_24h),
            float(market_data.liquidity_usd),
            float(market_data.price_change_24h),
            float(quote.confidence),
            float(asset.total_supply),
            float(asset.decimals),
            float(asset.holder_count),
            float(asset.social_score),
        ),
    )


# ============================================================
# ORACLE INTERFACE
# ============================================================


class ScoringOracle(ABC):
    """Returns a confidence in [0, 1] for a feature vector."""

    @abstractmethod
    async def score(self, features: FeatureVector) -> float:
        pass

    async def close(self) -> None:
        return None


class HttpScoringOracle(HttpClientMixin, ScoringOracle):
    """
    Model-serving endpoint over HTTP.

    Request:  POST {"asset_id", "features": [...], "feature_names": [...]}
    Response: {"confidence": 0.0-1.0}
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._init_http(timeout=timeout, session=session)
        self._url = url
        self._api_key = api_key

    @property
    def source_label(self) -> str:
        return "scoring_oracle"

    async def score(self, features: FeatureVector) -> float:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else None
        payload = await self._make_request(
            "POST",
            self._url,
            headers=headers,
            json={
                "asset_id": features.asset_id,
                "features": features.to_list(),
                "feature_names": list(features.names),
            },
        )
        return self._parse(payload)

    def _parse(self, payload: Any) -> float:
        if not isinstance(payload, dict) or "confidence" not in payload:
            raise OracleUnavailableError(
                "Oracle response has no confidence",
                context={"payload": str(payload)[:200]},
            )
        try:
            return float(payload["confidence"])
        except (TypeError, ValueError) as e:
            raise OracleUnavailableError(f"Oracle confidence not numeric: {e}", cause=e) from e
