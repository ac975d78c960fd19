# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for push transports.

This module defines the abstract base class and result type for all push
transports. A transport delivers one message to one device token and
reports the outcome; it does not decide who gets notified.

Transport implementations must be async and must not raise for delivery
failures: those are reported through a failed PushResult.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.utils.datetime import utc_now

# Error codes meaning the token will never work again.
INVALID_TOKEN_CODES = frozenset({"UNREGISTERED"})

# INVALID_ARGUMENT also covers payload errors; it only condemns the token
# when the error text names the registration token.
TOKEN_ARGUMENT_CODE = "INVALID_ARGUMENT"
TOKEN_ERROR_MARKERS = ("registration token", "message.token")


def is_invalid_token_error(code: str | None, message: str | None = None) -> bool:
    """Check whether a push failure marks the token as unusable."""
    if not code:
        return False
    code = code.upper()
    if code in INVALID_TOKEN_CODES:
        return True
    text = (message or "").lower()
    return code == TOKEN_ARGUMENT_CODE and any(marker in text for marker in TOKEN_ERROR_MARKERS)


@dataclass
class PushResult:
    """Result of a push send.

    Attributes:
        success: Whether the push service accepted the message.
        message_id: Message id assigned by the push service.
        error: Error message if failed.
        code: Push service error code if failed (e.g. "UNREGISTERED").
        sent_at: When the send completed.
        metadata: Additional result metadata.
    """

    success: bool
    message_id: str | None = None
    error: str | None = None
    code: str | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class PushTransport(ABC):
    """Abstract base class for push transports."""

    def __init__(self) -> None:
        """Initialize the transport."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> PushResult:
        """Send one push message.

        Args:
            token: Device push token.
            title: Notification title.
            body: Notification body.
            data: String-valued data payload.

        Returns:
            PushResult with delivery status.
        """
        ...

    async def close(self) -> None:
        """Release transport resources."""
        return None

    def create_success_result(
        self,
        message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PushResult:
        """Create a successful push result.

        Args:
            message_id: Message id from the push service.
            metadata: Additional metadata.

        Returns:
            PushResult with success=True.
        """
        return PushResult(
            success=True,
            message_id=message_id,
            sent_at=utc_now(),
            metadata=metadata or {},
        )

    def create_failure_result(
        self,
        error: str,
        code: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PushResult:
        """Create a failed push result.

        Args:
            error: Error description.
            code: Push service error code.
            metadata: Additional metadata.

        Returns:
            PushResult with success=False.
        """
        return PushResult(
            success=False,
            error=error,
            code=code,
            sent_at=utc_now(),
            metadata=metadata or {},
        )
