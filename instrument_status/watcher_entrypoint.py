"""Watcher entrypoint - Standalone process for folder ingestion.

Usage:
    python -m instrument_status.watcher_entrypoint

Runs until SIGINT/SIGTERM; in-flight files are finished before exit.
"""

import asyncio
import contextlib
import signal
import sys

from instrument_status.core.broker import BrokerConnection
from instrument_status.core.config import settings
from instrument_status.core.logging import get_logger
from instrument_status.ingestion.watcher import FolderWatcher

logger = get_logger("watcher_entrypoint")


async def run_watcher() -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    async with BrokerConnection.from_settings(settings) as broker:
        watcher = FolderWatcher.from_settings(settings, publisher=broker)
        await watcher.run(stop_event)


def main() -> None:
    logger.info("Instrument watcher starting...")
    try:
        asyncio.run(run_watcher())
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        logger.exception(f"Instrument watcher failed: {exc}")
        sys.exit(1)
    logger.info("Instrument watcher stopped")


if __name__ == "__main__":
    main()
