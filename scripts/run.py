#!/usr/bin/env python3
"""Monitoring entrypoint — wires the monitoring stack and runs until signalled.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Single health + backup-status pass, print the report, exit
    python scripts/run.py --once
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

import structlog

from src.core.config import load_settings
from src.core.logging import setup_logging
from src.monitor.factory import create_monitor_stack
from src.store import create_store

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the monitoring service and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level, service="monitor")

    store = create_store(settings.store.url, echo=settings.store.echo)
    service = create_monitor_stack(settings, store)

    logger.info(
        "monitor_starting",
        store="sql" if settings.store.url else "memory",
        channels=[ch.name for ch in service.dispatcher.channels],
    )
    if not service.dispatcher.channels:
        logger.warning("no_notification_channels_enabled")

    await service.initialize()

    if args.once:
        await service.health_monitor.run_check()
        await service.health_monitor.check_backup_status()
        await service.alert_manager.process_alerts()
        report = await service.reporter.generate_report()
        print(json.dumps(report.model_dump(mode="json"), indent=2))
        await service.stop()
        await store.close()
        return 0

    await service.start()
    logger.info("monitor_running", tasks=[t.name for t in service.tasks])

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")
    await service.stop()
    await store.close()
    logger.info("monitor_stopped")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the backup reliability monitor.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one monitoring pass, print the status report and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
