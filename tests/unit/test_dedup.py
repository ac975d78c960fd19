# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the send deduplicator."""

from datetime import timedelta
from typing import Any

import pytest

from src.infrastructure.notifications.dedup import Deduplicator


@pytest.fixture
def dedup(clock: Any) -> Deduplicator:
    return Deduplicator(clock=clock)


class TestCooldown:
    """Tests for should_send / mark_sent."""

    def test_unknown_pair_may_send(self, dedup: Deduplicator) -> None:
        assert dedup.should_send("a1", "S1")

    def test_blocked_within_cooldown(self, dedup: Deduplicator, clock: Any) -> None:
        dedup.mark_sent("a1", "S1")
        clock.advance(minutes=4)

        assert not dedup.should_send("a1", "S1")

    def test_allowed_after_cooldown(self, dedup: Deduplicator, clock: Any) -> None:
        dedup.mark_sent("a1", "S1")
        clock.advance(minutes=6)

        assert dedup.should_send("a1", "S1")

    def test_pairs_are_independent(self, dedup: Deduplicator) -> None:
        dedup.mark_sent("a1", "S1")

        assert dedup.should_send("a1", "S2")
        assert dedup.should_send("a2", "S1")

    def test_last_sent(self, dedup: Deduplicator, clock: Any) -> None:
        assert dedup.last_sent("a1", "S1") is None

        dedup.mark_sent("a1", "S1")

        assert dedup.last_sent("a1", "S1") == clock()


class TestReserve:
    """Tests for the atomic check-and-record."""

    def test_first_reserve_wins(self, dedup: Deduplicator) -> None:
        assert dedup.reserve("a1", "Admin")
        assert not dedup.reserve("a1", "Admin")
        assert len(dedup) == 1

    def test_reserve_after_cooldown(self, dedup: Deduplicator, clock: Any) -> None:
        dedup.reserve("a1", "Admin")
        clock.advance(minutes=5)

        assert dedup.reserve("a1", "Admin")
        assert dedup.last_sent("a1", "Admin") == clock()


class TestSweep:
    """Tests for retention sweeping."""

    def test_sweep_removes_old_entries(self, dedup: Deduplicator, clock: Any) -> None:
        dedup.mark_sent("a1", "S1")
        clock.advance(minutes=50)
        dedup.mark_sent("a2", "S1")
        clock.advance(minutes=20)

        removed = dedup.sweep()

        assert removed == 1
        assert dedup.entry_count == 1
        assert dedup.last_sent("a1", "S1") is None
        assert dedup.last_sent("a2", "S1") is not None

    def test_sweep_is_independent_of_cooldown(self, clock: Any) -> None:
        dedup = Deduplicator(cooldown=timedelta(minutes=5), retention=timedelta(hours=1), clock=clock)
        dedup.mark_sent("a1", "S1")
        clock.advance(minutes=30)

        assert dedup.sweep() == 0
        assert dedup.should_send("a1", "S1")
        assert len(dedup) == 1
