# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the maintenance scheduler."""

import pytest

from src.infrastructure.background.scheduler import MaintenanceScheduler


class TestTasks:
    """Task registration and execution."""

    def test_add_task(self) -> None:
        scheduler = MaintenanceScheduler()

        task = scheduler.add_interval_task(name="Sweep", func=lambda: 0, minutes=10)

        assert task.interval_seconds == 600
        assert scheduler.get_task(task.id) is task

    def test_rejects_non_positive_interval(self) -> None:
        scheduler = MaintenanceScheduler()

        with pytest.raises(ValueError):
            scheduler.add_interval_task(name="Bad", func=lambda: 0)

    def test_remove_task(self) -> None:
        scheduler = MaintenanceScheduler()
        task = scheduler.add_interval_task(name="Sweep", func=lambda: 0, seconds=5)

        assert scheduler.remove_task(task.id)
        assert not scheduler.remove_task(task.id)
        assert scheduler.list_tasks() == []

    @pytest.mark.asyncio
    async def test_run_sync_task(self) -> None:
        scheduler = MaintenanceScheduler()
        task = scheduler.add_interval_task(name="Sweep", func=lambda: 3, seconds=5)

        await scheduler.run_task(task.id)

        assert task.run_count == 1
        assert task.last_result == 3
        assert task.last_run is not None

    @pytest.mark.asyncio
    async def test_run_async_task(self) -> None:
        calls = []

        async def job() -> str:
            calls.append(1)
            return "done"

        scheduler = MaintenanceScheduler()
        task = scheduler.add_interval_task(name="Async", func=job, seconds=5)

        await scheduler.run_task(task.id)

        assert calls == [1]
        assert task.last_result == "done"

    @pytest.mark.asyncio
    async def test_errors_are_counted(self) -> None:
        def job() -> None:
            raise RuntimeError("boom")

        scheduler = MaintenanceScheduler()
        task = scheduler.add_interval_task(name="Broken", func=job, seconds=5)

        await scheduler.run_task(task.id)

        assert task.error_count == 1
        assert scheduler.get_stats()["total_errors"] == 1

    @pytest.mark.asyncio
    async def test_disabled_task_does_not_run(self) -> None:
        scheduler = MaintenanceScheduler()
        task = scheduler.add_interval_task(name="Off", func=lambda: 1, seconds=5, enabled=False)

        await scheduler.run_task(task.id)

        assert task.run_count == 0


class TestLifecycle:
    """Start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        scheduler = MaintenanceScheduler()
        scheduler.add_interval_task(name="Sweep", func=lambda: 0, minutes=10)

        await scheduler.start()
        stats = scheduler.get_stats()
        await scheduler.stop()

        assert stats["is_running"]
        assert stats["task_count"] == 1
        assert not scheduler.is_running
