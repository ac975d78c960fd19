# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Custom exceptions for the alert dispatch engine.

This module defines the exception hierarchy:
- AlertDispatchError: Base exception for all engine errors
- MalformedAlertError: An inbox entry cannot be parsed into an alert
- StoreError: A document store read or write failed or timed out
- PushTransportError: The push service rejected or failed a send

None of these escape the engine's per-alert boundary: the watcher and
the dispatch service log them and move on to the next candidate.
"""


class AlertDispatchError(Exception):
    """Base exception for all alert dispatch errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict | None = None):
        """Initialize alert dispatch error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class MalformedAlertError(AlertDispatchError):
    """Raised when an inbox entry is not a usable alert (e.g. missing id)."""

    pass


class StoreError(AlertDispatchError):
    """Raised when a document store operation fails or times out."""

    pass


class PushTransportError(AlertDispatchError):
    """Error reported by the push service.

    Attributes:
        code: Push service error code (e.g. "UNREGISTERED").
        status_code: HTTP status code if the error came from an HTTP call.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        """Initialize push transport error.

        Args:
            message: Human-readable error description.
            code: Push service error code.
            status_code: HTTP status code.
            details: Optional additional error context.
        """
        super().__init__(message, details)
        self.code = code
        self.status_code = status_code
