# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic maintenance tasks.

Uses APScheduler's AsyncIOScheduler to run housekeeping jobs (such as the
dedup sweep) on the worker's event loop.

Example:
    from src.infrastructure.background.scheduler import MaintenanceScheduler

    scheduler = MaintenanceScheduler()

    # Add interval job (runs every 10 minutes)
    scheduler.add_interval_task(
        name="Dedup Sweep",
        func=deduplicator.sweep,
        minutes=10,
    )

    # Start scheduler
    await scheduler.start()
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Configuration for a scheduled maintenance task.

    Attributes:
        id: Unique task identifier.
        name: Human-readable task name.
        func: Callable to run; may be sync or async.
        interval_seconds: Run interval in seconds.
        enabled: Whether the task is enabled.
        last_run: Last run timestamp.
        last_result: Return value of the last run.
        run_count: Total number of runs.
        error_count: Number of failed runs.
    """

    name: str
    func: Callable[[], Any]
    interval_seconds: float
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    last_result: Any = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class MaintenanceScheduler:
    """Scheduler for periodic in-process maintenance jobs.

    Tasks added before start() are registered with APScheduler when the
    scheduler starts; tasks added afterwards are registered immediately.

    Attributes:
        _scheduler: APScheduler instance.
        _tasks: Dictionary of scheduled tasks.
        _running: Whether scheduler is running.
    """

    def __init__(self) -> None:
        """Initialize the scheduler."""
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    def add_interval_task(
        self,
        name: str,
        func: Callable[[], Any],
        seconds: float = 0,
        minutes: float = 0,
        hours: float = 0,
        enabled: bool = True,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        Args:
            name: Task name.
            func: Callable to run.
            seconds: Interval seconds.
            minutes: Interval minutes.
            hours: Interval hours.
            enabled: Whether task is enabled.

        Returns:
            Created ScheduledTask.

        Raises:
            ValueError: If the interval is not positive.
        """
        interval = seconds + minutes * 60 + hours * 3600
        if interval <= 0:
            raise ValueError(f"Interval must be positive for task {name}")

        task = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval,
            enabled=enabled,
        )
        self._tasks[task.id] = task

        if self._scheduler and enabled:
            self._register(task)

        logger.info("Added interval task: %s (every %ss)", name, interval)
        return task

    def remove_task(self, task_id: str) -> bool:
        """Remove a scheduled task.

        Args:
            task_id: Task ID to remove.

        Returns:
            True if removed.
        """
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False

        if self._scheduler and self._scheduler.get_job(task_id) is not None:
            self._scheduler.remove_job(task_id)

        logger.info("Removed scheduled task: %s", task.name)
        return True

    def get_task(self, task_id: str) -> ScheduledTask | None:
        """Get a scheduled task by ID."""
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        """List all scheduled tasks."""
        return list(self._tasks.values())

    async def run_task(self, task_id: str) -> None:
        """Execute a scheduled task once.

        Errors are counted and logged, never raised.

        Args:
            task_id: ID of the task to execute.
        """
        task = self._tasks.get(task_id)
        if not task or not task.enabled:
            return

        logger.debug("Executing scheduled task: %s", task.name)

        try:
            result = task.func()
            if inspect.isawaitable(result):
                result = await result

            task.last_run = datetime.now(timezone.utc)
            task.last_result = result
            task.run_count += 1

        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, str(e))

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        for task in self._tasks.values():
            if task.enabled:
                self._register(task)
        self._scheduler.start()
        self._running = True

        logger.info("Maintenance scheduler started with %d tasks", len(self._tasks))

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Maintenance scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics.

        Returns:
            Statistics dictionary.
        """
        return {
            "is_running": self._running,
            "task_count": len(self._tasks),
            "enabled_count": sum(1 for t in self._tasks.values() if t.enabled),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }

    def _register(self, task: ScheduledTask) -> None:
        self._scheduler.add_job(
            self.run_task,
            trigger=IntervalTrigger(seconds=task.interval_seconds),
            args=[task.id],
            id=task.id,
            name=task.name,
            replace_existing=True,
        )
