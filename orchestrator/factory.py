"""
Orchestrator - Factory.

============================================================
RESPONSIBILITY
============================================================
Wires the default components from a BotConfig.

- One CircuitBreaker shared by every upstream dependency
  (keys: price:<provider>, market_data, oracle)
- One RetryQueue for repository writes
- Collaborators passed in explicitly take precedence over
  the defaults

============================================================
"""

import logging
from typing import List, Optional, Sequence

from core.clock import ClockProtocol, SystemClock
from core.config import BotConfig
from core.exceptions import ConfigurationError
from data_ingestion.candidates import (
    CandidateSource,
    ChannelCandidateSource,
    CompositeCandidateSource,
    StaticCandidateSource,
)
from data_ingestion.channel import OpportunityChannel
from data_sources.aggregator import PriceAggregator
from data_sources.base import BasePriceProvider, MarketDataSource
from data_sources.models import AssetDescriptor
from data_sources.providers import (
    BirdeyeMarketDataSource,
    BirdeyePriceProvider,
    JupiterPriceProvider,
    PythFeedRegistry,
    PythPriceProvider,
)
from execution_engine.executor import PaperTradeExecutor, TradeExecutor
from exit_engine.evaluator import ExitEvaluator
from resilience.circuit_breaker import CircuitBreaker
from resilience.retry import RetryQueue
from risk_management.trade_guard import TradeGuard
from risk_scoring.bad_actors import BadActorRegistry, StaticBadActorRegistry, TokenListBadActorRegistry
from risk_scoring.engine import RiskScorer
from storage.database import Database
from storage.repositories.base import PositionRepository
from storage.repositories.positions import SqlPositionRepository
from strategy_engine.engine import SignalGenerator
from strategy_engine.oracle import HttpScoringOracle, ScoringOracle

from .core import ShutdownHook, TradingOrchestrator


logger = logging.getLogger(__name__)


def default_providers(config: BotConfig, clock: Optional[ClockProtocol] = None) -> List[BasePriceProvider]:
    timeout = config.aggregator.request_timeout_seconds
    return [
        BirdeyePriceProvider(api_key=config.birdeye_api_key, timeout=timeout),
        JupiterPriceProvider(timeout=timeout),
        PythPriceProvider(
            feed_registry=PythFeedRegistry(static_mapping=config.pyth_feed_ids, clock=clock),
            timeout=timeout,
        ),
    ]


async def build_orchestrator(
    config: BotConfig,
    *,
    providers: Optional[Sequence[BasePriceProvider]] = None,
    market_data: Optional[MarketDataSource] = None,
    oracle: Optional[ScoringOracle] = None,
    repository: Optional[PositionRepository] = None,
    executor: Optional[TradeExecutor] = None,
    candidates: Optional[CandidateSource] = None,
    channel: Optional[OpportunityChannel] = None,
    bad_actors: Optional[BadActorRegistry] = None,
    clock: Optional[ClockProtocol] = None,
) -> TradingOrchestrator:
    """
    Build a ready-to-run orchestrator.

    Raises:
        ConfigurationError: invalid configuration or missing oracle
    """
    config.validate_or_raise()
    clock = clock or SystemClock()
    hooks: List[ShutdownHook] = []

    breaker = CircuitBreaker(config.breaker, clock=clock)
    retry_queue = RetryQueue(config.write_retry)

    # ----------------------------------------------------
    # Market data
    # ----------------------------------------------------
    aggregator = PriceAggregator(
        providers if providers is not None else default_providers(config, clock),
        breaker=breaker,
        config=config.aggregator,
        clock=clock,
    )
    hooks.append(aggregator.close)

    if market_data is None:
        market_data = BirdeyeMarketDataSource(
            api_key=config.birdeye_api_key,
            timeout=config.signal.market_data_timeout_seconds,
        )
        hooks.append(market_data.close)

    if oracle is None:
        if not config.oracle_url:
            raise ConfigurationError("ORACLE_URL is required", config_key="oracle_url")
        http_oracle = HttpScoringOracle(
            config.oracle_url,
            api_key=config.oracle_api_key,
            timeout=config.signal.oracle_timeout_seconds,
        )
        hooks.append(http_oracle.close)
        oracle = http_oracle

    # ----------------------------------------------------
    # Risk
    # ----------------------------------------------------
    if bad_actors is None:
        if config.scam_token_list_url:
            registry = TokenListBadActorRegistry(
                url=config.scam_token_list_url,
                seed=config.scam_wallets,
            )
            await registry.refresh()
            hooks.append(registry.close)
            bad_actors = registry
        else:
            bad_actors = StaticBadActorRegistry(config.scam_wallets)

    risk_scorer = RiskScorer(config.risk, bad_actors=bad_actors)
    signal_generator = SignalGenerator(
        aggregator,
        market_data,
        oracle,
        risk_scorer,
        breaker=breaker,
        config=config.signal,
    )

    # ----------------------------------------------------
    # Persistence & execution
    # ----------------------------------------------------
    if repository is None:
        database = Database(config.database)
        await database.connect(create_schema=True)
        hooks.append(database.disconnect)
        repository = SqlPositionRepository(database.session_factory)

    if executor is None:
        executor = PaperTradeExecutor(fee_bps=config.paper_fee_bps, clock=clock)
    hooks.append(executor.close)

    exit_evaluator = ExitEvaluator(
        aggregator,
        repository,
        executor,
        retry_queue=retry_queue,
        config=config.exit,
        clock=clock,
    )

    # ----------------------------------------------------
    # Candidates
    # ----------------------------------------------------
    if candidates is None:
        sources: List[CandidateSource] = []
        if channel is not None:
            sources.append(ChannelCandidateSource(channel))
        if config.watchlist:
            sources.append(StaticCandidateSource(
                AssetDescriptor(identifier=asset_id, symbol=asset_id[:8], name=asset_id)
                for asset_id in config.watchlist
            ))
        candidates = CompositeCandidateSource(sources)

    logger.info(
        f"Orchestrator built | providers={aggregator.provider_names} "
        f"interval={config.orchestrator.cycle_interval_seconds}s "
        f"dry_run={config.orchestrator.dry_run}"
    )

    return TradingOrchestrator(
        candidates=candidates,
        signal_generator=signal_generator,
        exit_evaluator=exit_evaluator,
        repository=repository,
        executor=executor,
        trade_guard=TradeGuard(config.guard, clock=clock),
        aggregator=aggregator,
        retry_queue=retry_queue,
        config=config.orchestrator,
        clock=clock,
        shutdown_hooks=hooks,
    )
