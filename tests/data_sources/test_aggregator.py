"""
Tests for the Price Aggregator.

============================================================
PURPOSE
============================================================
- Cache hits never reach a provider
- Providers are tried in priority order until one answers
- Open circuits are skipped
- Unusable quotes fall back without tripping the provider circuit
- Total failure reports every provider's reason

============================================================
"""

import asyncio
from datetime import timedelta

import pytest

from core.clock import MockClock
from core.exceptions import AllProvidersFailedError
from data_sources.aggregator import PriceAggregator
from data_sources.base import BasePriceProvider
from data_sources.config import AggregatorConfig
from data_sources.exceptions import FetchError
from data_sources.models import PriceSource
from resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from resilience.retry import RetryPolicy
from tests.factories import BONK_MINT, SOL_MINT, T0, make_quote


# ============================================================
# FIXTURES
# ============================================================

class FakeProvider(BasePriceProvider):
    """Scripted provider: returns `result`, or raises `error`."""

    def __init__(self, source, result=None, error=None, delay=0.0):
        super().__init__()
        self._source = source
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def name(self):
        return self._source

    async def fetch_quote(self, asset_id):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def clock():
    return MockClock(T0)


@pytest.fixture
def config():
    return AggregatorConfig(
        cache_ttl_seconds=60,
        request_timeout_seconds=1.0,
        provider_retry=RetryPolicy(max_attempts=1, base_delay_seconds=0, max_delay_seconds=0),
    )


def _fetch_error(source):
    return FetchError("HTTP 503", source_name=source.value, status_code=503)


def _aggregator(providers, clock, config, breaker=None):
    return PriceAggregator(providers, breaker=breaker, config=config, clock=clock)


# ============================================================
# CACHE
# ============================================================

class TestCaching:
    """Tests for quote caching."""

    @pytest.mark.asyncio
    async def test_fresh_cache_hit_skips_providers(self, clock, config):
        """Test that a second lookup within ttl is served from cache."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        aggregator = _aggregator([birdeye], clock, config)

        first = await aggregator.get_price(SOL_MINT)
        clock.advance(seconds=30)
        second = await aggregator.get_price(SOL_MINT)

        assert first == second
        assert birdeye.calls == 1

    @pytest.mark.asyncio
    async def test_expired_entry_refetches(self, clock, config):
        """Test that a quote older than ttl triggers a provider call."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        aggregator = _aggregator([birdeye], clock, config)

        await aggregator.get_price(SOL_MINT)
        clock.advance(seconds=60)
        await aggregator.get_price(SOL_MINT)

        assert birdeye.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, clock, config):
        """Test that invalidate() drops the cached quote."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        aggregator = _aggregator([birdeye], clock, config)

        await aggregator.get_price(SOL_MINT)
        aggregator.invalidate(SOL_MINT)
        await aggregator.get_price(SOL_MINT)

        assert birdeye.calls == 2

    @pytest.mark.asyncio
    async def test_clear_cache_refetches_equal_quote(self, clock, config):
        """Test that clearing the cache and fetching again yields an equal quote."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        aggregator = _aggregator([birdeye], clock, config)

        first = await aggregator.get_price(SOL_MINT)
        aggregator.clear_cache()
        second = await aggregator.get_price(SOL_MINT)

        assert second == first
        assert birdeye.calls == 2
        assert len(aggregator.cache) == 1

    @pytest.mark.asyncio
    async def test_out_of_order_quote_is_ignored(self, clock, config):
        """Test that a slower, older quote does not overwrite a newer cached one."""
        older = make_quote(1.0, timestamp=T0)
        newer = make_quote(2.0, timestamp=T0 + timedelta(seconds=5))

        class Sequenced(FakeProvider):
            async def fetch_quote(self, asset_id):
                self.calls += 1
                if self.calls == 1:
                    await asyncio.sleep(0.05)
                    return older
                return newer

        aggregator = _aggregator([Sequenced(PriceSource.BIRDEYE)], clock, config)

        await asyncio.gather(
            aggregator.get_price(SOL_MINT),
            aggregator.get_price(SOL_MINT),
        )

        assert aggregator.cache.peek(SOL_MINT) == newer


# ============================================================
# FALLBACK
# ============================================================

class TestFallback:
    """Tests for provider fallback."""

    @pytest.mark.asyncio
    async def test_falls_back_on_provider_error(self, clock, config):
        """Test that the next provider answers when the first fails."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, error=_fetch_error(PriceSource.BIRDEYE))
        jupiter = FakeProvider(PriceSource.JUPITER, result=make_quote(1.4, PriceSource.JUPITER))
        aggregator = _aggregator([birdeye, jupiter], clock, config)

        quote = await aggregator.get_price(SOL_MINT)

        assert quote.source == PriceSource.JUPITER
        assert birdeye.calls == 1
        assert [i.source_name for i in aggregator.get_incidents()] == ["birdeye"]

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self, clock, config):
        """Test that lower-priority providers are not called after a success."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        jupiter = FakeProvider(PriceSource.JUPITER, result=make_quote(1.4, PriceSource.JUPITER))
        aggregator = _aggregator([birdeye, jupiter], clock, config)

        await aggregator.get_price(SOL_MINT)

        assert jupiter.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_quote", [
        None,
        make_quote(0.0),
        make_quote(float("nan")),
        make_quote(1.5, confidence=0.0),
    ])
    async def test_unusable_quote_falls_back(self, clock, config, bad_quote):
        """Test that missing, non-positive, NaN or zero-confidence quotes are skipped."""
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=bad_quote)
        pyth = FakeProvider(PriceSource.PYTH, result=make_quote(1.5, PriceSource.PYTH))
        aggregator = _aggregator([birdeye, pyth], clock, config)

        quote = await aggregator.get_price(SOL_MINT)

        assert quote.source == PriceSource.PYTH

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, clock):
        """Test that a provider slower than the timeout is skipped."""
        config = AggregatorConfig(
            request_timeout_seconds=0.01,
            provider_retry=RetryPolicy(max_attempts=1),
        )
        slow = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5), delay=1.0)
        fast = FakeProvider(PriceSource.JUPITER, result=make_quote(1.4, PriceSource.JUPITER))
        aggregator = _aggregator([slow, fast], clock, config)

        quote = await aggregator.get_price(SOL_MINT)

        assert quote.source == PriceSource.JUPITER

    @pytest.mark.asyncio
    async def test_transport_errors_retried_within_provider(self, clock):
        """Test that a FetchError is retried before moving to the next provider."""
        config = AggregatorConfig(
            provider_retry=RetryPolicy(max_attempts=2, base_delay_seconds=0, max_delay_seconds=0),
        )

        class RecoversOnRetry(FakeProvider):
            async def fetch_quote(self, asset_id):
                self.calls += 1
                if self.calls == 1:
                    raise _fetch_error(PriceSource.BIRDEYE)
                return make_quote(1.5)

        birdeye = RecoversOnRetry(PriceSource.BIRDEYE)
        aggregator = _aggregator([birdeye], clock, config)

        quote = await aggregator.get_price(SOL_MINT)

        assert quote.price == 1.5
        assert birdeye.calls == 2

    @pytest.mark.asyncio
    async def test_all_failed_lists_every_provider(self, clock, config):
        """Test that total failure raises with one reason per provider."""
        providers = [
            FakeProvider(PriceSource.BIRDEYE, error=_fetch_error(PriceSource.BIRDEYE)),
            FakeProvider(PriceSource.JUPITER, result=None),
            FakeProvider(PriceSource.PYTH, error=_fetch_error(PriceSource.PYTH)),
        ]
        aggregator = _aggregator(providers, clock, config)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await aggregator.get_price(BONK_MINT)

        error = exc_info.value
        assert error.asset_id == BONK_MINT
        assert set(error.failures) == {"birdeye", "jupiter", "pyth"}
        assert "No quote returned" in error.failures["jupiter"]


# ============================================================
# CIRCUIT BREAKING
# ============================================================

class TestCircuitBreaking:
    """Tests for per-provider circuit breaking."""

    @pytest.mark.asyncio
    async def test_open_circuit_is_skipped(self, clock, config):
        """Test that a provider with an open circuit is not called."""
        breaker = CircuitBreaker(
            CircuitBreakerConfig(failure_threshold=1, reset_timeout_seconds=60),
            clock=clock,
        )
        birdeye = FakeProvider(PriceSource.BIRDEYE, error=_fetch_error(PriceSource.BIRDEYE))
        jupiter = FakeProvider(PriceSource.JUPITER, result=make_quote(1.4, PriceSource.JUPITER))
        aggregator = _aggregator([birdeye, jupiter], clock, config, breaker=breaker)

        await aggregator.get_price(SOL_MINT)
        await aggregator.get_price(BONK_MINT)

        assert birdeye.calls == 1
        assert jupiter.calls == 2
        assert aggregator.health()["birdeye"]["circuit"] == "open"

    @pytest.mark.asyncio
    async def test_open_circuit_reported_in_failures(self, clock, config):
        """Test that a skipped provider is reported as 'circuit open'."""
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1), clock=clock)
        breaker.record_failure(PriceAggregator.breaker_key("birdeye"))
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        aggregator = _aggregator([birdeye], clock, config, breaker=breaker)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await aggregator.get_price(SOL_MINT)

        assert exc_info.value.failures == {"birdeye": "circuit open"}
        assert birdeye.calls == 0

    @pytest.mark.asyncio
    async def test_circuit_closes_after_cooldown(self, clock, config):
        """Test that a provider is retried once its cool-down has passed."""
        breaker = CircuitBreaker(
            CircuitBreakerConfig(failure_threshold=1, reset_timeout_seconds=30),
            clock=clock,
        )
        breaker.record_failure(PriceAggregator.breaker_key("birdeye"))
        birdeye = FakeProvider(PriceSource.BIRDEYE, result=make_quote(1.5))
        aggregator = _aggregator([birdeye], clock, config, breaker=breaker)

        clock.advance(seconds=30)
        quote = await aggregator.get_price(SOL_MINT)

        assert quote.price == 1.5
        assert aggregator.health()["birdeye"]["circuit"] == "closed"

    @pytest.mark.asyncio
    async def test_unpriced_assets_do_not_open_circuit(self, clock, config):
        """Test that providers lacking a price for new mints still serve known assets."""

        class KnowsSolOnly(FakeProvider):
            async def fetch_quote(self, asset_id):
                self.calls += 1
                if asset_id == SOL_MINT:
                    return make_quote(1.5, self._source)
                return None

        jupiter = KnowsSolOnly(PriceSource.JUPITER)
        pyth = KnowsSolOnly(PriceSource.PYTH)
        aggregator = _aggregator([jupiter, pyth], clock, config)

        for i in range(5):
            with pytest.raises(AllProvidersFailedError):
                await aggregator.get_price(f"NewLaunchMint{i}")
        quote = await aggregator.get_price(SOL_MINT)

        assert quote.source == PriceSource.JUPITER
        assert quote.price == 1.5
        assert aggregator.health()["jupiter"]["circuit"] == "closed"
        assert aggregator.health()["pyth"]["circuit"] == "closed"
        assert aggregator.get_incidents() == []


# ============================================================
# CONSTRUCTION
# ============================================================

class TestConstruction:
    """Tests for aggregator construction."""

    def test_requires_a_provider(self):
        """Test that an empty provider list is rejected."""
        with pytest.raises(ValueError):
            PriceAggregator([])

    def test_orders_by_priority(self, config):
        """Test that providers are tried in configured priority order."""
        providers = [
            FakeProvider(PriceSource.PYTH),
            FakeProvider(PriceSource.JUPITER),
            FakeProvider(PriceSource.BIRDEYE),
        ]
        aggregator = PriceAggregator(providers, config=config)

        assert aggregator.provider_names == ["birdeye", "jupiter", "pyth"]

    def test_unlisted_providers_keep_their_order(self):
        """Test that providers missing from the priority list go last."""
        config = AggregatorConfig(provider_priority=("pyth",))
        providers = [
            FakeProvider(PriceSource.JUPITER),
            FakeProvider(PriceSource.BIRDEYE),
            FakeProvider(PriceSource.PYTH),
        ]
        aggregator = PriceAggregator(providers, config=config)

        assert aggregator.provider_names == ["pyth", "jupiter", "birdeye"]
