# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Inbox watcher.

Attaches one change feed subscription per watched inbox location and
turns container snapshots into dispatch candidates.

Task layout:
- Each WatchTarget has an asyncio.Queue fed by its subscription and one
  router task draining it.
- The router hands each container's events to that container's worker,
  which owns its own queue, task and InboxDiffer. A container is processed
  strictly in order while different containers run concurrently.
- Candidates of one snapshot are awaited one after another.

A failing subscription is logged and re-attached after a delay with a
fresh watermark; other targets are not affected.

Example:
    watcher = AlertWatcher(feed=store, handler=service.handle_candidate)
    await watcher.start()
    ...
    await watcher.stop()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.domains.alerts.models import AlertItem, RecipientRole
from src.infrastructure.alerts.differ import InboxDiffer, snapshot_items
from src.infrastructure.store.base import (
    ADMIN_ALERTS_COLLECTION,
    ADMIN_INBOX_DOCUMENT,
    PARENT_ALERTS_COLLECTION,
    STUDENT_ALERTS_COLLECTION,
    ChangeBatch,
    ChangeFeed,
    ChangeType,
    Subscription,
    WatchTarget,
)
from src.utils.datetime import utc_now
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

# Receives (alert, inbox role, container id) for every candidate.
CandidateHandler = Callable[[AlertItem, RecipientRole, str], Awaitable[Any]]


@dataclass(frozen=True)
class WatchSpec:
    """A watched location and the role owning its inboxes."""

    target: WatchTarget
    role: RecipientRole


DEFAULT_TARGETS: tuple[WatchSpec, ...] = (
    WatchSpec(WatchTarget(STUDENT_ALERTS_COLLECTION), RecipientRole.STUDENT),
    WatchSpec(WatchTarget(PARENT_ALERTS_COLLECTION), RecipientRole.PARENT),
    WatchSpec(WatchTarget(ADMIN_ALERTS_COLLECTION, ADMIN_INBOX_DOCUMENT), RecipientRole.ADMIN),
)


@dataclass
class _ContainerUpdate:
    items: list[Any]
    initial: bool
    started_at: datetime


class _ContainerWorker:
    """Serial processor for one inbox container."""

    def __init__(
        self,
        container_id: str,
        spec: WatchSpec,
        handler: CandidateHandler,
    ) -> None:
        self.container_id = container_id
        self.spec = spec
        self.differ: InboxDiffer | None = None
        self._handler = handler
        self._queue: asyncio.Queue[_ContainerUpdate | None] = asyncio.Queue()
        self.task = asyncio.create_task(
            self._run(),
            name=f"alert-worker:{spec.target.collection}/{container_id}",
        )

    def submit(self, update: _ContainerUpdate) -> None:
        self._queue.put_nowait(update)

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def _run(self) -> None:
        bind_context(collection=self.spec.target.collection, container_id=self.container_id)
        try:
            while True:
                update = await self._queue.get()
                if update is None:
                    return
                try:
                    await self._process(update)
                except Exception as e:
                    logger.error(
                        "Failed to process %s inbox %s: %s",
                        self.spec.role.value,
                        self.container_id,
                        str(e),
                        exc_info=True,
                    )
        finally:
            clear_context()

    async def _process(self, update: _ContainerUpdate) -> None:
        if update.initial or self.differ is None:
            self.differ = InboxDiffer(self.container_id, self.spec.role, update.started_at)
            if update.initial:
                self.differ.prime(update.items)
                return

        for alert in self.differ.observe(update.items):
            try:
                await self._handler(alert, self.spec.role, self.container_id)
            except Exception as e:
                logger.error(
                    "Candidate handler failed for alert %s in %s inbox %s: %s",
                    alert.id,
                    self.spec.role.value,
                    self.container_id,
                    str(e),
                    exc_info=True,
                )


@dataclass
class _TargetWatch:
    """Subscription state for one WatchSpec."""

    spec: WatchSpec
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    workers: dict[str, _ContainerWorker] = field(default_factory=dict)
    subscription: Subscription | None = None
    router: asyncio.Task | None = None
    attached_at: datetime | None = None
    generation: int = 0
    error_count: int = 0


class AlertWatcher:
    """Watches alert inboxes and forwards new alerts to a handler.

    Attributes:
        resubscribe_delay: Seconds to wait before re-attaching a failed
            subscription.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        handler: CandidateHandler,
        targets: Sequence[WatchSpec] = DEFAULT_TARGETS,
        clock: Callable[[], datetime] = utc_now,
        resubscribe_delay: float = 5.0,
    ) -> None:
        """Initialize the watcher.

        Args:
            feed: Change feed to subscribe to.
            handler: Coroutine called for each candidate alert.
            targets: Locations to watch.
            clock: Source of the current time; sets watermarks.
            resubscribe_delay: Delay before re-attaching after an error.
        """
        self._feed = feed
        self._handler = handler
        self._targets = list(targets)
        self._clock = clock
        self.resubscribe_delay = resubscribe_delay
        self._watches: list[_TargetWatch] = []
        self._retry_tasks: set[asyncio.Task] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the watcher is attached."""
        return self._running

    def get_stats(self) -> dict[str, Any]:
        """Get per-target watcher statistics."""
        return {
            watch.spec.target.path: {
                "role": watch.spec.role.value,
                "attached": watch.subscription is not None,
                "attached_at": watch.attached_at.isoformat() if watch.attached_at else None,
                "containers": len(watch.workers),
                "errors": watch.error_count,
            }
            for watch in self._watches
        }

    async def start(self) -> None:
        """Attach every target and start the router tasks."""
        if self._running:
            logger.warning("Alert watcher already running")
            return

        self._running = True
        for spec in self._targets:
            watch = _TargetWatch(spec=spec)
            watch.router = asyncio.create_task(
                self._route(watch),
                name=f"alert-router:{spec.target.path}",
            )
            self._watches.append(watch)
            self._attach(watch)

        logger.info("Alert watcher started for %d targets", len(self._watches))

    async def stop(self) -> None:
        """Detach every target and wait for queued work to finish.

        In-flight dispatches are allowed to complete.
        """
        if not self._running:
            return

        self._running = False

        for task in list(self._retry_tasks):
            task.cancel()

        for watch in self._watches:
            self._detach(watch)
            watch.queue.put_nowait(None)

        routers = [watch.router for watch in self._watches if watch.router is not None]
        await asyncio.gather(*routers, return_exceptions=True)
        await asyncio.gather(*self._retry_tasks, return_exceptions=True)

        self._watches.clear()
        logger.info("Alert watcher stopped")

    def _attach(self, watch: _TargetWatch) -> None:
        watch.generation += 1
        generation = watch.generation
        watch.attached_at = self._clock()

        def on_batch(batch: ChangeBatch) -> None:
            watch.queue.put_nowait((generation, batch))

        def on_error(error: Exception) -> None:
            self._handle_feed_error(watch, generation, error)

        try:
            watch.subscription = self._feed.subscribe(watch.spec.target, on_batch, on_error)
        except Exception as e:
            self._handle_feed_error(watch, generation, e)
            return

        logger.info("Watching %s for %s alerts", watch.spec.target.path, watch.spec.role.value)

    def _detach(self, watch: _TargetWatch) -> None:
        subscription, watch.subscription = watch.subscription, None
        if subscription is None:
            return
        try:
            subscription.unsubscribe()
        except Exception as e:
            logger.warning("Failed to unsubscribe from %s: %s", watch.spec.target.path, str(e))

    def _handle_feed_error(self, watch: _TargetWatch, generation: int, error: Exception) -> None:
        if generation != watch.generation:
            return

        watch.error_count += 1
        logger.error(
            "Change feed error on %s, re-subscribing in %.1fs: %s",
            watch.spec.target.path,
            self.resubscribe_delay,
            str(error),
        )
        self._detach(watch)

        if not self._running:
            return

        task = asyncio.get_running_loop().create_task(self._resubscribe(watch, generation))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _resubscribe(self, watch: _TargetWatch, generation: int) -> None:
        await asyncio.sleep(self.resubscribe_delay)
        if self._running and generation == watch.generation:
            self._attach(watch)

    async def _route(self, watch: _TargetWatch) -> None:
        """Fan a target's batches out to its container workers."""
        while True:
            message = await watch.queue.get()
            if message is None:
                break

            generation, batch = message
            if generation != watch.generation:
                continue

            try:
                self._dispatch_batch(watch, batch)
            except Exception as e:
                logger.error(
                    "Failed to route batch for %s: %s",
                    watch.spec.target.path,
                    str(e),
                    exc_info=True,
                )

        workers = list(watch.workers.values())
        watch.workers.clear()
        for worker in workers:
            worker.close()
        await asyncio.gather(*(worker.task for worker in workers), return_exceptions=True)

    def _dispatch_batch(self, watch: _TargetWatch, batch: ChangeBatch) -> None:
        started_at = watch.attached_at or self._clock()
        present: set[str] = set()

        for event in batch.events:
            container_id = event.document.id
            present.add(container_id)

            if event.type is ChangeType.REMOVED:
                worker = watch.workers.pop(container_id, None)
                if worker is not None:
                    worker.close()
                continue

            worker = watch.workers.get(container_id)
            if worker is None:
                worker = _ContainerWorker(container_id, watch.spec, self._handler)
                watch.workers[container_id] = worker

            items = snapshot_items(event.document.data) if event.document.exists else []
            worker.submit(_ContainerUpdate(items=items, initial=batch.initial, started_at=started_at))

        if batch.initial:
            # Containers missing from a fresh initial snapshot restart
            # from the new watermark.
            for container_id, worker in watch.workers.items():
                if container_id not in present:
                    worker.submit(_ContainerUpdate(items=[], initial=True, started_at=started_at))
