# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alert dispatch worker process.

Starts the alert dispatch service against Firestore and FCM, runs until
SIGINT or SIGTERM, then shuts down cleanly.

Usage:
    alert-dispatch-worker

Configuration is read from the environment (see src.core.config).
"""

import asyncio
import signal
import sys

from src.core.config import Settings, get_settings
from src.core.exceptions import AlertDispatchError
from src.infrastructure.alerts.service import AlertDispatchService
from src.infrastructure.background.scheduler import MaintenanceScheduler
from src.infrastructure.notifications.channels.push import FCMPushChannel
from src.infrastructure.store.firestore import FirestoreDocumentStore
from src.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def run(settings: Settings, stop_event: asyncio.Event | None = None) -> int:
    """Run the worker until the stop event is set.

    Args:
        settings: Application settings.
        stop_event: Event ending the run; SIGINT/SIGTERM set it when None.

    Returns:
        Process exit code.
    """
    if not settings.firebase.is_configured:
        logger.error(
            "firebase_not_configured",
            hint="set FIREBASE_PROJECT_ID and FIREBASE_CREDENTIALS_PATH",
        )
        return 1

    try:
        store = FirestoreDocumentStore.from_settings(settings.firebase)
        transport = FCMPushChannel.from_settings(settings.firebase)
    except (AlertDispatchError, OSError, ValueError) as e:
        logger.error("worker_init_failed", error=str(e))
        return 1

    if stop_event is None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

    scheduler = MaintenanceScheduler()
    service = AlertDispatchService.create(
        store=store,
        feed=store,
        transport=transport,
        settings=settings.dispatch,
        scheduler=scheduler,
    )

    await service.start()
    await scheduler.start()
    logger.info("worker_started", environment=settings.environment)

    try:
        await stop_event.wait()
    finally:
        logger.info("worker_stopping")
        await scheduler.stop()
        await service.stop()
        await transport.close()

    logger.info("worker_stopped", **service.get_stats()["outcomes"])
    return 0


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    setup_logging(settings)
    sys.exit(asyncio.run(run(settings)))


if __name__ == "__main__":
    main()
