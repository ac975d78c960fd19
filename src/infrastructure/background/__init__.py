# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background maintenance for the alert dispatch worker.

Scheduler:
    from src.infrastructure.background import MaintenanceScheduler

    scheduler = MaintenanceScheduler()
    scheduler.add_interval_task(name="Dedup Sweep", func=dedup.sweep, minutes=10)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from src.infrastructure.background.scheduler import MaintenanceScheduler, ScheduledTask

__all__ = [
    "MaintenanceScheduler",
    "ScheduledTask",
]
