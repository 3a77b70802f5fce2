"""Main entry point for the shop monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

import structlog
import uvicorn

from shop_monitor.api import create_app
from shop_monitor.config import load_config
from shop_monitor.scheduler.coordinator import MonitorCoordinator
from shop_monitor.scheduler.job_scheduler import RunOnceScheduler


logger = structlog.get_logger(__name__)


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Webhook and Telegram tokens live in request URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_once(config) -> int:
    coordinator = MonitorCoordinator(config, scheduler=RunOnceScheduler())
    try:
        status = await coordinator.engine.run_cycle()
        logger.info("Single check finished", status=status.value if status else "skipped")
    finally:
        await coordinator.client.aclose()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Shop Health Monitor")
    parser.add_argument(
        "--config",
        default=os.getenv("SHOP_MONITOR_CONFIG", "config/shop_monitor.yaml"),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one check cycle and exit")
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    parser.add_argument("--host", default=None, help="API bind host")
    parser.add_argument("--port", type=int, default=None, help="API bind port")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)

    if args.once:
        return asyncio.run(run_once(config))

    app = create_app(config)
    uvicorn.run(
        app,
        host=args.host or config.api.host,
        port=args.port or config.api.port,
        log_level=str(args.log_level or config.log_level).lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
