# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alert push dispatcher.

Turns an eligible alert into a push message, sends it through the push
transport under a timeout, records the outcome in the notification log
and marks the (alert, recipient) pair as sent on success.

dispatch() never raises: every failure is reported through the returned
DispatchResult and the log record.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.domains.alerts.models import AlertItem, RecipientRole
from src.infrastructure.notifications.channels.base import PushResult, PushTransport
from src.infrastructure.notifications.dedup import Deduplicator
from src.infrastructure.notifications.log_sink import (
    NotificationLogEntry,
    NotificationLogSink,
    NotificationLogStatus,
)
from src.utils.datetime import format_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_ALERT_TITLE = "New Alert"
DEFAULT_ALERT_BODY = "You have a new alert"
TIMEOUT_ERROR_CODE = "DEADLINE_EXCEEDED"


@dataclass
class DispatchResult:
    """Outcome of one dispatch attempt.

    Attributes:
        success: Whether the push was accepted.
        message_id: Push service message id on success.
        error: Error description on failure.
        error_code: Push service error code on failure.
    """

    success: bool
    message_id: str | None = None
    error: str | None = None
    error_code: str | None = None


@dataclass
class PushPayload:
    """Title, body and data of a push message."""

    title: str
    body: str
    data: dict[str, str]


def build_payload(alert: AlertItem) -> PushPayload:
    """Assemble the push message for an alert.

    Pass-through producer fields come first; the fixed alert fields are
    laid over them so producers cannot override them.

    Args:
        alert: Alert to notify about.

    Returns:
        PushPayload with string-only data.
    """
    data: dict[str, str] = dict(alert.extra)
    data.update(
        {
            "type": "alert",
            "alertId": alert.id,
            "alertType": alert.type,
            "studentId": alert.student_id or "",
            "parentId": alert.parent_id or "",
            "status": alert.status.value,
            "createdAt": format_iso(alert.created_at) or "",
        }
    )
    return PushPayload(
        title=alert.title or DEFAULT_ALERT_TITLE,
        body=alert.message or DEFAULT_ALERT_BODY,
        data=data,
    )


class AlertDispatcher:
    """Sends alert pushes and records their outcome.

    Attributes:
        timeout: Timeout in seconds for one push send.
    """

    def __init__(
        self,
        transport: PushTransport,
        deduplicator: Deduplicator,
        log_sink: NotificationLogSink | None = None,
        timeout: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            transport: Push transport.
            deduplicator: Deduplicator marked on successful sends.
            log_sink: Notification log sink; None disables logging records.
            timeout: Timeout in seconds for one push send.
            clock: Source of the current time.
        """
        self._transport = transport
        self._deduplicator = deduplicator
        self._log_sink = log_sink
        self._clock = clock
        self.timeout = timeout

    async def dispatch(
        self,
        alert: AlertItem,
        token: str,
        role: RecipientRole,
        recipient_id: str,
    ) -> DispatchResult:
        """Send a push for an alert to one recipient.

        Args:
            alert: Eligible alert.
            token: Effective push token.
            role: Recipient role.
            recipient_id: Recipient id (dedup key).

        Returns:
            DispatchResult describing the attempt.
        """
        payload = build_payload(alert)

        try:
            push = await asyncio.wait_for(
                self._transport.send(token, payload.title, payload.body, payload.data),
                timeout=self.timeout,
            )
            result = self._from_push_result(push)
        except asyncio.TimeoutError:
            result = DispatchResult(
                success=False,
                error=f"Push send timed out after {self.timeout}s",
                error_code=TIMEOUT_ERROR_CODE,
            )
        except Exception as e:
            logger.error(
                "Push transport raised for alert %s to %s: %s",
                alert.id,
                recipient_id,
                str(e),
                exc_info=True,
            )
            result = DispatchResult(success=False, error=str(e))

        if result.success:
            self._deduplicator.mark_sent(alert.id, recipient_id)
            logger.info(
                "Push sent for alert %s to %s %s: %s",
                alert.id,
                role.value,
                recipient_id,
                result.message_id,
            )
        else:
            logger.warning(
                "Push failed for alert %s to %s %s (%s): %s",
                alert.id,
                role.value,
                recipient_id,
                result.error_code,
                result.error,
            )

        self._record(alert, payload, role, recipient_id, result)
        return result

    def _record(
        self,
        alert: AlertItem,
        payload: PushPayload,
        role: RecipientRole,
        recipient_id: str,
        result: DispatchResult,
    ) -> None:
        if self._log_sink is None:
            return

        entry = NotificationLogEntry(
            recipient=recipient_id,
            role=role.value,
            alert_id=alert.id,
            title=payload.title,
            message=payload.body,
            status=NotificationLogStatus.SENT if result.success else NotificationLogStatus.FAILED,
            sent_at=self._clock(),
            error=result.error,
            error_code=result.error_code,
            message_id=result.message_id,
        )
        try:
            self._log_sink.record(entry)
        except Exception as e:
            logger.error("Failed to schedule notification log for alert %s: %s", alert.id, str(e))

    @staticmethod
    def _from_push_result(push: Any) -> DispatchResult:
        if not isinstance(push, PushResult):
            return DispatchResult(success=False, error="Push transport returned no result")
        if push.success:
            return DispatchResult(success=True, message_id=push.message_id)
        return DispatchResult(
            success=False,
            error=push.error or "Push send failed",
            error_code=push.code,
        )
