# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification log records.

Every push attempt, successful or not, is recorded as a document in the
``notifications`` collection so that delivery can be audited from the
admin console. Writes are fire-and-forget: a failing log write is logged
and never affects the dispatch outcome.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from src.infrastructure.store.base import DocumentStore

logger = logging.getLogger(__name__)

PUSH_ALERT_TYPE = "PUSH_ALERT"


class NotificationLogStatus(str, Enum):
    """Outcome recorded for a push attempt."""

    SENT = "sent"
    FAILED = "failed"


@dataclass
class NotificationLogEntry:
    """A single push attempt.

    Attributes:
        recipient: Recipient id the alert was sent to.
        role: Recipient role.
        alert_id: Alert id.
        title: Notification title.
        message: Notification body.
        status: Attempt outcome.
        sent_at: When the attempt finished.
        error: Error message if failed.
        error_code: Push service error code if failed.
        message_id: Push service message id if sent.
    """

    recipient: str
    role: str
    alert_id: str
    title: str
    message: str
    status: NotificationLogStatus
    sent_at: datetime
    error: str | None = None
    error_code: str | None = None
    message_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored document shape.

        Returns:
            Dictionary for the notifications collection.
        """
        record: dict[str, Any] = {
            "type": PUSH_ALERT_TYPE,
            "recipient": self.recipient,
            "role": self.role,
            "alertId": self.alert_id,
            "message": self.message,
            "title": self.title,
            "status": self.status.value,
            "sentAt": self.sent_at,
            "createdAt": self.sent_at,
        }
        if self.status is NotificationLogStatus.FAILED:
            record["error"] = self.error
            record["errorCode"] = self.error_code
        if self.message_id:
            record["messageId"] = self.message_id
        return record


class NotificationLogSink:
    """Writes notification log records in the background.

    Attributes:
        collection: Target collection name.
    """

    def __init__(self, store: DocumentStore, collection: str = "notifications") -> None:
        """Initialize the sink.

        Args:
            store: Document store receiving the records.
            collection: Target collection name.
        """
        self._store = store
        self.collection = collection
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        """Number of writes still in flight."""
        return len(self._pending)

    def record(self, entry: NotificationLogEntry) -> None:
        """Schedule a log write without waiting for it.

        Must be called from within a running event loop.

        Args:
            entry: Entry to record.
        """
        task = asyncio.get_running_loop().create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for all in-flight writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write(self, entry: NotificationLogEntry) -> None:
        try:
            await self._store.add(self.collection, entry.to_dict())
        except Exception as e:
            logger.error(
                "Failed to record notification log for alert %s to %s: %s",
                entry.alert_id,
                entry.recipient,
                str(e),
            )
