# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for inbox diffing."""

from datetime import timedelta
from typing import Any

import pytest

from src.domains.alerts.models import RecipientRole
from src.infrastructure.alerts.differ import InboxDiffer, snapshot_items


def item(alert_id: str, created_at: Any, status: str = "unread", **fields: Any) -> dict[str, Any]:
    data = {"id": alert_id, "type": "alert", "status": status, "createdAt": created_at.isoformat()}
    data.update(fields)
    return data


@pytest.fixture
def differ(clock: Any) -> InboxDiffer:
    return InboxDiffer("S1", RecipientRole.STUDENT, subscription_started_at=clock())


class TestSnapshotItems:
    """Tests for snapshot_items()."""

    def test_missing_document(self) -> None:
        assert snapshot_items(None) == []
        assert snapshot_items({}) == []

    def test_items_not_a_list(self) -> None:
        assert snapshot_items({"items": "oops"}) == []

    def test_items(self) -> None:
        assert snapshot_items({"items": [{"id": "a"}]}) == [{"id": "a"}]


class TestInboxDiffer:
    """Tests for InboxDiffer."""

    def test_prime_dispatches_nothing(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([item("a0", clock() - timedelta(minutes=1))])

        assert differ.primed
        assert differ.seen_alert_ids == {"a0"}

    def test_new_unread_alert_is_candidate(self, differ: InboxDiffer, clock: Any) -> None:
        old = item("a0", clock() - timedelta(minutes=1))
        differ.prime([old])
        clock.advance(minutes=1)

        candidates = differ.observe([old, item("a1", clock())])

        assert [c.id for c in candidates] == ["a1"]
        assert differ.seen_alert_ids == {"a0", "a1"}

    def test_seen_alert_is_not_repeated(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)
        snapshot = [item("a1", clock())]

        assert len(differ.observe(snapshot)) == 1
        assert differ.observe(snapshot) == []

    def test_read_alert_is_ignored(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)

        assert differ.observe([item("a1", clock(), status="read")]) == []

    def test_missing_or_foreign_status_is_ignored(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)
        no_status = {"id": "no-status", "createdAt": clock().isoformat()}

        candidates = differ.observe([no_status, item("declined", clock(), status="declined")])

        assert candidates == []

    def test_alert_at_or_before_watermark_is_ignored(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])

        candidates = differ.observe(
            [item("a1", clock()), item("a2", clock() - timedelta(seconds=1))]
        )

        assert candidates == []

    def test_missing_creation_time_is_ignored(self, differ: InboxDiffer) -> None:
        differ.prime([])

        assert differ.observe([{"id": "no-time", "status": "unread"}]) == []

    def test_malformed_entries_are_skipped(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)

        candidates = differ.observe(["garbage", {"status": "unread"}, item("a1", clock())])

        assert [c.id for c in candidates] == ["a1"]

    def test_snapshot_order_is_kept(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)

        candidates = differ.observe(
            [item("b", clock() + timedelta(seconds=2)), item("a", clock() + timedelta(seconds=1))]
        )

        assert [c.id for c in candidates] == ["b", "a"]

    def test_duplicate_id_in_snapshot(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)

        candidates = differ.observe([item("a1", clock()), item("a1", clock())])

        assert len(candidates) == 1

    def test_removed_alert_is_forgotten(self, differ: InboxDiffer, clock: Any) -> None:
        differ.prime([])
        clock.advance(minutes=1)
        differ.observe([item("a1", clock())])

        differ.observe([])

        assert differ.seen_alert_ids == set()
