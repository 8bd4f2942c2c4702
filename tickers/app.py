"""
Crypto ticker bots: process entry point.

Wires config -> registry -> readiness gate -> price feed -> scheduler and
runs until SIGINT/SIGTERM. Exit codes: 0 on a clean stop, 1 on a config or
login failure.
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from tickers.config import LOG_LEVELS, MIN_UPDATE_INTERVAL, ConfigError, Settings, load_settings
from tickers.price_feed import PriceFeed
from tickers.readiness import ReadinessGate
from tickers.registry import build_registry
from tickers.scheduler import LoginError, UpdateScheduler

logger = logging.getLogger(__name__)

_LOGGING_CONFIGURED = False


def setup_logging(level: str = "INFO", console: Optional[Console] = None):
    """Route the `tickers` and `discord` loggers through one RichHandler."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        logging.getLogger("tickers").setLevel(level)
        return

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    app_logger = logging.getLogger("tickers")
    app_logger.setLevel(level)
    app_logger.addHandler(handler)
    app_logger.propagate = False

    # Gateway chatter only when something is wrong
    discord_logger = logging.getLogger("discord")
    discord_logger.setLevel(logging.WARNING)
    discord_logger.addHandler(handler)
    discord_logger.propagate = False

    _LOGGING_CONFIGURED = True


def build_scheduler(settings: Settings) -> UpdateScheduler:
    registry = build_registry(settings)
    gate = ReadinessGate(registry)
    gate.attach_all()
    feed = PriceFeed(api_key=settings.api_key, assets=settings.assets)
    return UpdateScheduler(
        registry,
        gate,
        feed,
        update_interval=settings.update_interval,
        ready_poll_interval=settings.ready_poll_interval,
    )


async def run(settings: Settings) -> int:
    scheduler = build_scheduler(settings)
    loop = asyncio.get_running_loop()

    def signal_handler(sig, frame):
        logger.info("Shutting down...")
        loop.call_soon_threadsafe(scheduler.stop)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await scheduler.run()
    except LoginError as e:
        logger.critical("Error logging in: %s", e)
        return 1
    finally:
        await scheduler.shutdown()
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Discord ticker bots showing live crypto prices as nicknames"
    )
    parser.add_argument(
        "--env-file", default=None,
        help="Path to a .env file (default: ./.env if present)"
    )
    parser.add_argument(
        "--log-level", default=None, type=str.upper, choices=LOG_LEVELS,
        help="Log level, overrides TICKER_LOG_LEVEL (default: INFO)"
    )
    parser.add_argument(
        "--interval", type=float, default=None,
        help="Seconds between update cycles, overrides TICKER_UPDATE_INTERVAL"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    console = Console(stderr=True)
    setup_logging(args.log_level or "INFO", console)

    try:
        settings = load_settings(env_file=args.env_file)
    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        return 1

    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.interval is not None:
        if args.interval < MIN_UPDATE_INTERVAL:
            logger.warning(
                "--interval %g is below the %gs floor, using %g",
                args.interval, MIN_UPDATE_INTERVAL, MIN_UPDATE_INTERVAL,
            )
        overrides["update_interval"] = max(MIN_UPDATE_INTERVAL, args.interval)
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    setup_logging(settings.log_level)

    console.print("\n[bold blue]Crypto Ticker Bots[/]")
    console.print(
        f"Tracking {', '.join(a.label for a in settings.assets)} "
        f"every {settings.update_interval:g}s in guild {settings.guild_id}\n"
    )

    try:
        return asyncio.run(run(settings))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
