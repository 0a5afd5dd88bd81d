"""
Base Price Provider - Abstract interface for all price and market data providers.

All providers MUST implement this interface to ensure:
- Isolation
- Replaceability
- Fail-safety (no provider payload leaks past normalization)
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from data_sources.exceptions import FetchError, RateLimitError
from data_sources.models import (
    AssetDescriptor,
    MarketData,
    PriceQuote,
    PriceSource,
    SourceHealth,
    SourceStatus,
)


logger = logging.getLogger(__name__)


class HttpClientMixin:
    """
    Shared aiohttp session handling.

    A session passed in by the caller is never closed here;
    a session created lazily is owned and closed by close().
    """

    DEFAULT_TIMEOUT = 10.0

    def _init_http(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def source_label(self) -> str:
        return type(self).__name__

    def _get_default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "trade-decision-engine/1.0",
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """Make HTTP request; map HTTP and transport errors to FetchError."""
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
                json=json,
            ) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        source_name=self.source_label,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                        request_url=url,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name=self.source_label,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                data = await response.json(content_type=None)
                logger.debug(f"[{self.source_label}] Request completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name=self.source_label,
                request_url=url,
                original_error=e,
            ) from e

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()


class BasePriceProvider(HttpClientMixin, ABC):
    """
    Abstract base class for price providers.

    Each provider implementation must:
    1. Declare its PriceSource tag via `name`
    2. Implement fetch_quote() - return a PriceQuote or None

    Retries, timeouts and circuit breaking are applied by the
    aggregator, not here. The base class tracks health only.
    """

    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        timeout: float = HttpClientMixin.DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._init_http(timeout=timeout, session=session)
        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self._request_count = 0
        self._success_count = 0

    @property
    @abstractmethod
    def name(self) -> PriceSource:
        """Provider tag; also used to build breaker keys."""
        pass

    @property
    def source_label(self) -> str:
        return self.name.value

    @abstractmethod
    async def fetch_quote(self, asset_id: str) -> Optional[PriceQuote]:
        """
        Fetch the current price for asset_id.

        Returns:
            PriceQuote, or None when the provider has no price for it

        Raises:
            ProviderUnavailableError: on transport or payload errors
        """
        pass

    async def get_current_price(self, asset_id: str) -> Optional[PriceQuote]:
        """fetch_quote() with health tracking."""
        start = time.time()
        try:
            quote = await self.fetch_quote(asset_id)
        except Exception as e:
            self._on_error(e)
            raise
        self._on_success((time.time() - start) * 1000)
        return quote

    def _on_success(self, latency_ms: float) -> None:
        self._request_count += 1
        self._success_count += 1
        self._health.latency_ms = latency_ms
        self._health.last_check = datetime.now(timezone.utc)
        self._health.consecutive_failures = 0
        if self._health.status != SourceStatus.HEALTHY:
            self._health.status = SourceStatus.HEALTHY
            logger.info(f"[{self.source_label}] Recovered to HEALTHY status")

    def _on_error(self, error: Exception) -> None:
        self._request_count += 1
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)

        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(
                    f"[{self.source_label}] Marked UNAVAILABLE after "
                    f"{self._health.consecutive_failures} failures"
                )
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(
                    f"[{self.source_label}] Marked DEGRADED after "
                    f"{self._health.consecutive_failures} failures"
                )

    def get_health(self) -> SourceHealth:
        if self._request_count > 0:
            self._health.uptime_percentage = self._success_count / self._request_count * 100
        return self._health


class MarketDataSource(ABC):
    """Source of volume/liquidity/price-change snapshots."""

    @abstractmethod
    async def get_market_data(self, asset: AssetDescriptor) -> MarketData:
        """
        Raises:
            ProviderUnavailableError: when no snapshot can be produced
        """
        pass

    async def close(self) -> None:
        return None
