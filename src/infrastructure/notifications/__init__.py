# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification delivery for alert pushes.

Key Components:
- AlertDispatcher: Builds the push payload, sends it and records the outcome
- Deduplicator: Per (alert, recipient) cooldown
- NotificationLogSink: Fire-and-forget notification log records
- Channels: FCMPushChannel

Usage:
    from src.infrastructure.notifications import AlertDispatcher, Deduplicator

    dedup = Deduplicator()
    dispatcher = AlertDispatcher(transport, dedup, log_sink)
    result = await dispatcher.dispatch(alert, token, RecipientRole.STUDENT, "S1")

Configuration (environment variables):
- FIREBASE_CREDENTIALS_PATH: Path to Firebase service account JSON
- FIREBASE_PROJECT_ID: Firebase project ID
- ALERT_DISPATCH_PUSH_TIMEOUT_SECONDS: Timeout for one push send
"""

from src.infrastructure.notifications.channels import (
    FCMPushChannel,
    PushResult,
    PushTransport,
)
from src.infrastructure.notifications.dedup import Deduplicator
from src.infrastructure.notifications.dispatcher import (
    AlertDispatcher,
    DispatchResult,
    build_payload,
)
from src.infrastructure.notifications.log_sink import (
    NotificationLogEntry,
    NotificationLogSink,
    NotificationLogStatus,
)

__all__ = [
    # Dispatch
    "AlertDispatcher",
    "DispatchResult",
    "build_payload",
    "Deduplicator",
    # Log records
    "NotificationLogEntry",
    "NotificationLogSink",
    "NotificationLogStatus",
    # Channels
    "FCMPushChannel",
    "PushResult",
    "PushTransport",
]
