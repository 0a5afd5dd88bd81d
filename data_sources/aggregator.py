"""
Price Aggregator - Multi-provider price lookup with caching and fallback.

Provides:
- Cached quotes per asset (TTL)
- Fixed-priority fallback across providers
- Per-provider circuit breaking and retry
- No downstream dependency on specific providers

Flow for get_price(asset):
1. Fresh cache hit -> return, no provider call
2. For each provider in priority order:
   - breaker open -> skip, record "circuit open"
   - breaker.execute(retry(timeout(provider call))) then validate
     (only transport failures count against the breaker; a missing or
     unusable quote is a per-asset miss)
   - first usable quote -> cache and return
3. Nothing usable -> AllProvidersFailedError with every reason
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from core.clock import ClockProtocol, SystemClock
from core.exceptions import AllProvidersFailedError, CircuitOpenError
from data_sources.base import BasePriceProvider
from data_sources.config import AggregatorConfig
from data_sources.exceptions import FetchError, InvalidQuoteError
from data_sources.models import PriceQuote, SourceIncident
from resilience.cache import TTLCache
from resilience.circuit_breaker import CircuitBreaker
from resilience.retry import retry_async


logger = logging.getLogger(__name__)


class PriceAggregator:
    """
    Price lookup across an ordered list of providers.

    Usage:
        aggregator = PriceAggregator(
            providers=[BirdeyePriceProvider(), JupiterPriceProvider(), PythPriceProvider()],
            breaker=CircuitBreaker(),
        )
        quote = await aggregator.get_price(mint)
    """

    BREAKER_PREFIX = "price"

    def __init__(
        self,
        providers: Sequence[BasePriceProvider],
        breaker: Optional[CircuitBreaker] = None,
        config: Optional[AggregatorConfig] = None,
        clock: Optional[ClockProtocol] = None,
        cache: Optional[TTLCache[PriceQuote]] = None,
    ) -> None:
        if not providers:
            raise ValueError("PriceAggregator requires at least one provider")

        self._config = config or AggregatorConfig()
        self._clock = clock or SystemClock()
        self._providers = self._ordered(providers, self._config.provider_priority)
        self._breaker = breaker or CircuitBreaker(clock=self._clock)
        self._cache: TTLCache[PriceQuote] = cache or TTLCache(
            ttl_seconds=self._config.cache_ttl_seconds,
            clock=self._clock,
            name="price_cache",
        )
        self._incidents: list[SourceIncident] = []

    @staticmethod
    def _ordered(
        providers: Sequence[BasePriceProvider],
        priority: Sequence[str],
    ) -> list[BasePriceProvider]:
        """Providers named in priority first, in that order; the rest keep their order."""
        rank = {name: i for i, name in enumerate(priority)}
        indexed = list(enumerate(providers))
        indexed.sort(key=lambda item: (rank.get(item[1].name.value, len(rank)), item[0]))
        return [p for _, p in indexed]

    # --------------------------------------------------------
    # Introspection
    # --------------------------------------------------------

    @property
    def provider_names(self) -> list[str]:
        return [p.name.value for p in self._providers]

    @property
    def cache(self) -> TTLCache[PriceQuote]:
        return self._cache

    @classmethod
    def breaker_key(cls, provider_name: str) -> str:
        return f"{cls.BREAKER_PREFIX}:{provider_name}"

    def health(self) -> dict[str, dict[str, Any]]:
        """Per-provider breaker state and health counters."""
        return {
            p.name.value: {
                "circuit": self._breaker.state(self.breaker_key(p.name.value)).value,
                "health": p.get_health().to_dict(),
            }
            for p in self._providers
        }

    def get_incidents(self, limit: int = 100) -> list[SourceIncident]:
        return self._incidents[-limit:]

    # --------------------------------------------------------
    # Main entry point
    # --------------------------------------------------------

    async def get_price(self, asset_id: str) -> PriceQuote:
        """
        Current price for asset_id.

        Raises:
            AllProvidersFailedError: every provider failed or returned nothing usable
        """
        cached = self._cache.get(asset_id)
        if cached is not None:
            logger.debug(f"Price cache hit for {asset_id} ({cached.source.value})")
            return cached

        failures: dict[str, str] = {}

        for provider in self._providers:
            name = provider.name.value
            key = self.breaker_key(name)

            if self._breaker.is_open(key):
                failures[name] = "circuit open"
                logger.debug(f"[{name}] Skipped for {asset_id}: circuit open")
                continue

            try:
                quote = await self._breaker.execute(
                    key,
                    lambda p=provider: self._attempt(p, asset_id),
                )
                self._validate(provider, quote)
            except CircuitOpenError:
                failures[name] = "circuit open"
                continue
            except InvalidQuoteError as e:
                failures[name] = e.message
                logger.debug(f"[{name}] No usable quote for {asset_id}: {e.message}")
                continue
            except Exception as e:
                reason = getattr(e, "message", None) or f"{type(e).__name__}: {e}"
                failures[name] = reason
                self._log_incident(name, e, asset_id)
                continue

            self._store(asset_id, quote)
            if failures:
                logger.info(
                    f"Price for {asset_id} served by fallback {name} "
                    f"(failed: {', '.join(failures)})"
                )
            return quote

        logger.warning(f"All price providers failed for {asset_id}: {failures}")
        raise AllProvidersFailedError(asset_id, failures)

    def invalidate(self, asset_id: str) -> None:
        self._cache.delete(asset_id)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def close(self) -> None:
        for provider in self._providers:
            try:
                await provider.close()
            except Exception as e:
                logger.error(f"[{provider.name.value}] Error closing provider: {e}")

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    async def _attempt(self, provider: BasePriceProvider, asset_id: str) -> Optional[PriceQuote]:
        """One breaker-guarded attempt: retried, time-bounded call."""
        return await retry_async(
            lambda: self._call_with_timeout(provider, asset_id),
            self._config.provider_retry,
            key=f"{provider.name.value}:{asset_id}",
            retry_on=(FetchError,),
        )

    @staticmethod
    def _validate(provider: BasePriceProvider, quote: Optional[PriceQuote]) -> None:
        """An absent or unusable quote is a miss for this asset, not a provider fault."""
        if quote is None:
            raise InvalidQuoteError("No quote returned", provider=provider.name.value)
        if not quote.is_usable():
            raise InvalidQuoteError(
                f"Unusable quote (price={quote.price}, confidence={quote.confidence})",
                provider=provider.name.value,
            )

    async def _call_with_timeout(
        self,
        provider: BasePriceProvider,
        asset_id: str,
    ) -> Optional[PriceQuote]:
        timeout = self._config.request_timeout_seconds
        try:
            return await asyncio.wait_for(provider.get_current_price(asset_id), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(
                f"Timed out after {timeout}s",
                source_name=provider.name.value,
                original_error=e,
            ) from e

    def _store(self, asset_id: str, quote: PriceQuote) -> None:
        """Cache quote unless it is older than a cached quote from the same source."""
        existing = self._cache.peek(asset_id)
        if (
            existing is not None
            and existing.source == quote.source
            and existing.timestamp > quote.timestamp
        ):
            logger.debug(
                f"Ignoring out-of-order quote for {asset_id} from {quote.source.value}"
            )
            return
        self._cache.set(asset_id, quote)

    def _log_incident(self, provider_name: str, error: Exception, asset_id: str) -> None:
        self._incidents.append(
            SourceIncident(
                source_name=provider_name,
                incident_type=type(error).__name__,
                timestamp=datetime.now(timezone.utc),
                error_message=str(error),
                asset_id=asset_id,
            )
        )
        if len(self._incidents) > self._config.max_incidents:
            self._incidents = self._incidents[-self._config.max_incidents:]
        logger.warning(f"[{provider_name}] Price fetch failed for {asset_id}: {error}")
