"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line entry point.

- Loads BotConfig from YAML or the environment
- CLI flags override the loaded values
- Installs SIGINT/SIGTERM handlers that stop the loop after
  the in-flight cycle

============================================================
USAGE
============================================================
python -m orchestrator.cli
python -m orchestrator.cli --config bot.yaml --dry-run
python -m orchestrator.cli --single-cycle --log-format text

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

from core.config import BotConfig
from core.exceptions import ConfigurationError

from .core import setup_logging
from .factory import build_orchestrator


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solana-trade-engine",
        description="Trade decision engine: entry signals, exits and the orchestration loop",
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML configuration file (default: environment variables)",
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--interval",
        type=float,
        metavar="SECONDS",
        help="Cycle interval in seconds (default from config: 300)",
    )

    execution_group.add_argument(
        "--single-cycle",
        action="store_true",
        help="Run a single cycle and exit (no loop)",
    )

    execution_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Evaluate and log signals without executing entries",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default from config: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default from config: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 0.1.0",
    )

    return parser


def load_config(args: argparse.Namespace) -> BotConfig:
    """Load BotConfig and apply CLI overrides."""
    config = BotConfig.from_yaml(args.config) if args.config else BotConfig.from_env()

    overrides = {}
    if args.interval is not None:
        overrides["cycle_interval_seconds"] = args.interval
    if args.dry_run:
        overrides["dry_run"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    if overrides:
        config.orchestrator = replace(config.orchestrator, **overrides)
    return config


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt for SIGINT
            pass


async def async_main(args: argparse.Namespace) -> int:
    try:
        config = load_config(args)
    except (ConfigurationError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    correlation_id = f"{config.orchestrator.correlation_id_prefix}_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"
    log = setup_logging(
        level=config.orchestrator.log_level,
        log_format=config.orchestrator.log_format,
        correlation_id=correlation_id,
    )

    try:
        orchestrator = await build_orchestrator(config)
    except ConfigurationError as e:
        log.error(e.to_log_format())
        return 1

    try:
        if args.single_cycle:
            result = await orchestrator.run_cycle()
            return 0 if result.success else 1

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        await orchestrator.run_forever(stop_event)
        return 0
    except KeyboardInterrupt:
        log.info("Interrupted by user")
        return 130
    except Exception as e:
        log.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await orchestrator.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    return asyncio.run(async_main(args))


if __name__ == "__main__":
    logging.captureWarnings(True)
    sys.exit(main())
