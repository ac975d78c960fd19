# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across the unit tests:
- A controllable clock
- An in-memory document store and change feed
- A push transport that records every send
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from src.infrastructure.notifications.channels.base import PushResult, PushTransport
from src.infrastructure.store.memory import InMemoryDocumentStore

T0 = datetime(2025, 3, 10, 8, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Helpers
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class SentPush:
    """A push captured by RecordingTransport."""

    token: str
    title: str
    body: str
    data: dict[str, str]


class RecordingTransport(PushTransport):
    """Push transport that records sends and returns a scripted result."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[SentPush] = []
        self.next_result: PushResult | None = None
        self.error: Exception | None = None

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> PushResult:
        self.sent.append(SentPush(token=token, title=title, body=body, data=dict(data)))
        if self.error is not None:
            raise self.error
        if self.next_result is not None:
            return self.next_result
        return self.create_success_result(message_id=f"msg-{len(self.sent)}")

    def fail_with(self, error: str, code: str | None = None) -> None:
        """Make every following send fail."""
        self.next_result = self.create_failure_result(error, code=code)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock frozen at T0."""
    return FakeClock()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Provide an empty in-memory store."""
    return InMemoryDocumentStore()


@pytest.fixture
def transport() -> RecordingTransport:
    """Provide a recording push transport."""
    return RecordingTransport()


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
