#!/usr/bin/env python3
"""Disaster recovery entrypoint — runs one full recovery and prints the session.

Usage::

    # Run a full recovery with default config
    python scripts/recover.py --reason "primary db lost"

    # Show the procedure catalog without running anything
    python scripts/recover.py --list-procedures
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog

from src.core.config import load_settings
from src.core.logging import setup_logging
from src.core.types import RecoveryStatus
from src.monitor.channels import create_channels
from src.monitor.dispatcher import NotificationDispatcher
from src.recovery.actions import RecoveryActions
from src.recovery.orchestrator import RecoveryOrchestrator
from src.store import create_store

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    setup_logging(level=args.log_level, service="recovery")

    store = create_store(settings.store.url, echo=settings.store.echo)
    await store.initialize()

    dispatcher = NotificationDispatcher(
        channels=create_channels(settings.notifications),
        channel_timeout_secs=settings.notifications.channel_timeout_secs,
    )
    orchestrator = RecoveryOrchestrator(
        store,
        RecoveryActions(store, settings.recovery),
        dispatcher=dispatcher,
        config=settings.recovery,
    )
    await orchestrator.initialize()

    try:
        if args.list_procedures:
            procedures = await store.list_recovery_procedures()
            print(json.dumps([p.model_dump(mode="json") for p in procedures], indent=2))
            return 0

        options = {"reason": args.reason} if args.reason else {}
        session = await orchestrator.execute_full_recovery(options)
        await orchestrator.drain_notifications()
        print(json.dumps(session.model_dump(mode="json"), indent=2))
        return 0 if session.status == RecoveryStatus.COMPLETED else 1
    finally:
        await dispatcher.close()
        await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run a full disaster recovery.",
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
        "--reason",
        default=None,
        help="Free-text reason recorded with the recovery session",
    )
    parser.add_argument(
        "--list-procedures",
        action="store_true",
        help="Print the recovery procedure catalog and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
