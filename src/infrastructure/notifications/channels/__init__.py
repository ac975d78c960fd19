# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push transports for delivering notifications.

This package provides:

- PushTransport: Base class for push transports
- FCMPushChannel: Sends push notifications via Firebase Cloud Messaging

Usage:
    from src.infrastructure.notifications.channels import FCMPushChannel

    push = FCMPushChannel.from_settings(settings.firebase)
    result = await push.send(token, "New Alert", "You have a new alert", {"alertId": "a1"})
"""

from src.infrastructure.notifications.channels.base import (
    INVALID_TOKEN_CODES,
    PushResult,
    PushTransport,
    is_invalid_token_error,
)
from src.infrastructure.notifications.channels.push import FCMPushChannel

__all__ = [
    # Base types
    "INVALID_TOKEN_CODES",
    "PushResult",
    "PushTransport",
    "is_invalid_token_error",
    # Channels
    "FCMPushChannel",
]
