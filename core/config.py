"""
Core - Bot Configuration.

============================================================
PURPOSE
============================================================
Single configuration object composed of the per-package
configs. Built once at startup and injected; nothing reads
the environment after that.

SOURCES:
- from_env():   environment variables (.env honoured)
- from_yaml():  YAML file, one section per package
- defaults:     conservative values

============================================================
ENVIRONMENT
============================================================
CONFIDENCE_THRESHOLD               0.67
MIN_LIQUIDITY_USD                  10000
MAX_POSITION_SIZE                  1.0
MAX_SLIPPAGE_BPS                   150
TAKE_PROFIT_THRESHOLD              0.15
STOP_LOSS_THRESHOLD                -0.10
MAX_HOLDING_TIME                   3600 (seconds)
PRICE_CACHE_TTL_MS                 60000
CIRCUIT_BREAKER_FAILURE_THRESHOLD  5
CIRCUIT_BREAKER_RESET_TIMEOUT_MS   60000
SCAM_WALLETS                       comma separated
DATABASE_URL, BIRDEYE_API_KEY, ORACLE_URL, ORACLE_API_KEY,
SCAM_TOKEN_LIST_URL, WATCHLIST, LOG_LEVEL, LOG_FORMAT

============================================================
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from core.exceptions import ConfigurationError
from data_sources.config import AggregatorConfig
from exit_engine.config import ExitConfig
from orchestrator.models import OrchestratorConfig
from resilience.circuit_breaker import CircuitBreakerConfig
from resilience.retry import RetryPolicy
from risk_management.config import TradeGuardConfig
from risk_scoring.config import RiskScoringConfig, RiskWeights
from storage.database import DatabaseConfig
from strategy_engine.config import SignalConfig


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be a number",
            config_key=name,
            actual_value=raw,
        ) from e


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass
class BotConfig:
    """
    Complete runtime configuration.

    Usage:
        config = BotConfig.from_env()
        errors = config.validate()
        if errors:
            raise ConfigurationError(...)
    """

    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    write_retry: RetryPolicy = field(default_factory=RetryPolicy)
    risk: RiskScoringConfig = field(default_factory=RiskScoringConfig)
    signal: SignalConfig = field(default_factory=SignalConfig)
    exit: ExitConfig = field(default_factory=ExitConfig)
    guard: TradeGuardConfig = field(default_factory=TradeGuardConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    # Collaborators
    birdeye_api_key: Optional[str] = None
    oracle_url: Optional[str] = None
    oracle_api_key: Optional[str] = None
    scam_wallets: List[str] = field(default_factory=list)
    scam_token_list_url: Optional[str] = None
    pyth_feed_ids: Dict[str, str] = field(default_factory=dict)
    watchlist: List[str] = field(default_factory=list)
    paper_fee_bps: float = 30.0

    # --------------------------------------------------------
    # LOADERS
    # --------------------------------------------------------

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Load configuration from environment variables."""
        load_dotenv()

        max_position_size = _env_float("MAX_POSITION_SIZE", 1.0)
        defaults = cls()

        return cls(
            aggregator=replace(
                defaults.aggregator,
                cache_ttl_seconds=_env_float("PRICE_CACHE_TTL_MS", 60_000) / 1000.0,
                request_timeout_seconds=_env_float("REQUEST_TIMEOUT_SECONDS", 10.0),
            ),
            breaker=CircuitBreakerConfig(
                failure_threshold=_env_int("CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5),
                reset_timeout_seconds=_env_float("CIRCUIT_BREAKER_RESET_TIMEOUT_MS", 60_000) / 1000.0,
            ),
            risk=replace(defaults.risk, default_trade_size=max_position_size),
            signal=replace(
                defaults.signal,
                confidence_threshold=_env_float("CONFIDENCE_THRESHOLD", 0.67),
                min_liquidity_usd=_env_float("MIN_LIQUIDITY_USD", 10_000.0),
                max_position_size=max_position_size,
                max_slippage_bps=_env_float("MAX_SLIPPAGE_BPS", 150.0),
            ),
            exit=replace(
                defaults.exit,
                take_profit_threshold=_env_float("TAKE_PROFIT_THRESHOLD", 0.15),
                stop_loss_threshold=_env_float("STOP_LOSS_THRESHOLD", -0.10),
                max_holding_seconds=_env_float("MAX_HOLDING_TIME", 3600.0),
            ),
            guard=replace(
                defaults.guard,
                max_open_positions=_env_int("MAX_OPEN_POSITIONS", 5),
                max_daily_trades=_env_int("MAX_DAILY_TRADES", 20),
                max_consecutive_losses=_env_int("MAX_CONSECUTIVE_LOSSES", 3),
                daily_loss_limit=_env_float("DAILY_LOSS_LIMIT", 0.05),
                emergency_stop_threshold=_env_float("EMERGENCY_STOP_THRESHOLD", 0.15),
                max_position_size=max_position_size,
            ),
            orchestrator=OrchestratorConfig.from_env(),
            database=DatabaseConfig.from_env(),
            birdeye_api_key=os.getenv("BIRDEYE_API_KEY"),
            oracle_url=os.getenv("ORACLE_URL"),
            oracle_api_key=os.getenv("ORACLE_API_KEY"),
            scam_wallets=_split(os.getenv("SCAM_WALLETS")),
            scam_token_list_url=os.getenv("SCAM_TOKEN_LIST_URL"),
            watchlist=_split(os.getenv("WATCHLIST")),
            paper_fee_bps=_env_float("PAPER_FEE_BPS", 30.0),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "BotConfig":
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"{path}: top level must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BotConfig":
        config = cls()

        if "aggregator" in data:
            ag = data["aggregator"]
            retry = ag.get("provider_retry", {})
            config.aggregator = AggregatorConfig(
                cache_ttl_seconds=ag.get("price_cache_ttl_ms", 60_000) / 1000.0,
                request_timeout_seconds=ag.get("request_timeout_seconds", 10.0),
                provider_retry=RetryPolicy(
                    max_attempts=retry.get("max_attempts", 2),
                    base_delay_seconds=retry.get("base_delay_seconds", 0.2),
                    max_delay_seconds=retry.get("max_delay_seconds", 1.0),
                ),
                provider_priority=tuple(
                    ag.get("provider_priority", config.aggregator.provider_priority)
                ),
            )

        if "circuit_breaker" in data:
            cb = data["circuit_breaker"]
            config.breaker = CircuitBreakerConfig(
                failure_threshold=cb.get("failure_threshold", 5),
                reset_timeout_seconds=cb.get("reset_timeout_ms", 60_000) / 1000.0,
            )

        if "write_retry" in data:
            wr = data["write_retry"]
            config.write_retry = RetryPolicy(
                max_attempts=wr.get("max_attempts", 5),
                base_delay_seconds=wr.get("base_delay_seconds", 0.5),
                max_delay_seconds=wr.get("max_delay_seconds", 10.0),
            )

        if "risk" in data:
            rk = data["risk"]
            weights = rk.get("weights", {})
            config.risk = RiskScoringConfig(
                weights=RiskWeights(
                    volatility=weights.get("volatility", 0.2),
                    liquidity_depth=weights.get("liquidity_depth", 0.2),
                    market_cap=weights.get("market_cap", 0.1),
                    price_feed_reliability=weights.get("price_feed_reliability", 0.2),
                    slippage=weights.get("slippage", 0.2),
                    wallet=weights.get("wallet", 0.1),
                ),
                source_base_reliability=rk.get(
                    "source_base_reliability", dict(config.risk.source_base_reliability)
                ),
                wallet_risk_floor=rk.get("wallet_risk_floor", 0.1),
                market_cap_reference_usd=rk.get("market_cap_reference_usd", 1_000_000_000.0),
            )

        if "signal" in data:
            sg = data["signal"]
            config.signal = SignalConfig(
                confidence_threshold=sg.get("confidence_threshold", 0.67),
                min_liquidity_usd=sg.get("min_liquidity_usd", 10_000.0),
                max_position_size=sg.get("max_position_size", 1.0),
                min_position_size=sg.get("min_position_size", 0.01),
                max_slippage_bps=sg.get("max_slippage_bps", 150.0),
                risk_free_rate=sg.get("risk_free_rate", 0.02),
                oracle_timeout_seconds=sg.get("oracle_timeout_seconds", 5.0),
            )
            config.risk = replace(config.risk, default_trade_size=config.signal.max_position_size)

        if "exit" in data:
            ex = data["exit"]
            config.exit = ExitConfig(
                take_profit_threshold=ex.get("take_profit_threshold", 0.15),
                stop_loss_threshold=ex.get("stop_loss_threshold", -0.10),
                max_holding_seconds=ex.get("max_holding_time", 3600.0),
                max_concurrent_evaluations=ex.get("max_concurrent_evaluations", 10),
                track_unrealized_pnl=ex.get("track_unrealized_pnl", True),
            )

        if "trade_guard" in data:
            tg = data["trade_guard"]
            config.guard = TradeGuardConfig(
                max_open_positions=tg.get("max_open_positions", 5),
                max_daily_trades=tg.get("max_daily_trades", 20),
                max_consecutive_losses=tg.get("max_consecutive_losses", 3),
                daily_loss_limit=tg.get("daily_loss_limit", 0.05),
                emergency_stop_threshold=tg.get("emergency_stop_threshold", 0.15),
                max_position_size=tg.get("max_position_size", config.signal.max_position_size),
                min_seconds_between_trades=tg.get("min_seconds_between_trades", 0.0),
            )

        if "orchestrator" in data:
            oc = data["orchestrator"]
            config.orchestrator = OrchestratorConfig(
                cycle_interval_seconds=oc.get("cycle_interval_seconds", 300.0),
                max_concurrent_evaluations=oc.get("max_concurrent_evaluations", 10),
                health_check_interval_seconds=oc.get("health_check_interval_seconds", 3600.0),
                health_check_asset=oc.get(
                    "health_check_asset", config.orchestrator.health_check_asset
                ),
                cycle_history_size=oc.get("cycle_history_size", 100),
                log_level=oc.get("log_level", "INFO"),
                log_format=oc.get("log_format", "text"),
                dry_run=oc.get("dry_run", False),
            )

        if "database" in data:
            db = data["database"]
            config.database = DatabaseConfig(
                url=db.get("url", config.database.url),
                pool_size=db.get("pool_size", 5),
                max_overflow=db.get("max_overflow", 10),
                echo=db.get("echo", False),
            )

        config.birdeye_api_key = data.get("birdeye_api_key", config.birdeye_api_key)
        config.oracle_url = data.get("oracle_url", config.oracle_url)
        config.oracle_api_key = data.get("oracle_api_key", config.oracle_api_key)
        config.scam_wallets = list(data.get("scam_wallets", []))
        config.scam_token_list_url = data.get("scam_token_list_url")
        config.pyth_feed_ids = dict(data.get("pyth_feed_ids", {}))
        config.watchlist = list(data.get("watchlist", []))
        config.paper_fee_bps = data.get("paper_fee_bps", 30.0)
        return config

    # --------------------------------------------------------
    # VALIDATION
    # --------------------------------------------------------

    def validate(self) -> List[str]:
        """Validate every section, return list of errors prefixed by section."""
        errors: List[str] = []
        sections = (
            ("aggregator", self.aggregator),
            ("risk", self.risk),
            ("signal", self.signal),
            ("exit", self.exit),
            ("trade_guard", self.guard),
            ("orchestrator", self.orchestrator),
        )
        for name, section in sections:
            errors.extend(f"{name}: {e}" for e in section.validate())

        if self.breaker.failure_threshold < 1:
            errors.append("circuit_breaker: failure_threshold must be at least 1")
        if self.breaker.reset_timeout_seconds <= 0:
            errors.append("circuit_breaker: reset_timeout must be positive")
        if self.paper_fee_bps < 0:
            errors.append("paper_fee_bps must be non-negative")
        return errors

    def validate_or_raise(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view; secrets are masked."""
        return {
            "aggregator": self.aggregator.to_dict(),
            "circuit_breaker": {
                "failure_threshold": self.breaker.failure_threshold,
                "reset_timeout_seconds": self.breaker.reset_timeout_seconds,
            },
            "write_retry": self.write_retry.to_dict(),
            "risk": self.risk.to_dict(),
            "signal": self.signal.to_dict(),
            "exit": self.exit.to_dict(),
            "trade_guard": self.guard.to_dict(),
            "orchestrator": self.orchestrator.to_dict(),
            "database": {"url": self.database.safe_url()},
            "birdeye_api_key": "***" if self.birdeye_api_key else None,
            "oracle_url": self.oracle_url,
            "oracle_api_key": "***" if self.oracle_api_key else None,
            "scam_wallets": len(self.scam_wallets),
            "scam_token_list_url": self.scam_token_list_url,
            "pyth_feed_ids": dict(self.pyth_feed_ids),
            "watchlist": list(self.watchlist),
            "paper_fee_bps": self.paper_fee_bps,
        }
