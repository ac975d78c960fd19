# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alert inbox watching and dispatch orchestration.

Key Components:
- InboxDiffer: Per-container new-alert detection
- AlertWatcher: Change feed subscriptions and per-container workers
- AlertDispatchService: The candidate -> sent/failed pipeline

Usage:
    from src.infrastructure.alerts import AlertDispatchService

    service = AlertDispatchService.create(store, store, transport, settings.dispatch)
    await service.start()
"""

from src.infrastructure.alerts.differ import InboxDiffer
from src.infrastructure.alerts.service import AlertDispatchService, DispatchOutcome
from src.infrastructure.alerts.watcher import DEFAULT_TARGETS, AlertWatcher, WatchSpec

__all__ = [
    "AlertDispatchService",
    "AlertWatcher",
    "DEFAULT_TARGETS",
    "DispatchOutcome",
    "InboxDiffer",
    "WatchSpec",
]
