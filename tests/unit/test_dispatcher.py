# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the alert dispatcher and notification log."""

import asyncio
from typing import Any

import pytest

from src.domains.alerts.models import AlertItem, RecipientRole
from src.infrastructure.notifications.dedup import Deduplicator
from src.infrastructure.notifications.dispatcher import (
    DEFAULT_ALERT_BODY,
    DEFAULT_ALERT_TITLE,
    TIMEOUT_ERROR_CODE,
    AlertDispatcher,
    build_payload,
)
from src.infrastructure.notifications.log_sink import NotificationLogSink
from src.infrastructure.store.memory import InMemoryDocumentStore


@pytest.fixture
def dedup(clock: Any) -> Deduplicator:
    return Deduplicator(clock=clock)


@pytest.fixture
def sink(store: InMemoryDocumentStore) -> NotificationLogSink:
    return NotificationLogSink(store)


@pytest.fixture
def dispatcher(transport: Any, dedup: Deduplicator, sink: NotificationLogSink, clock: Any) -> AlertDispatcher:
    return AlertDispatcher(transport, dedup, log_sink=sink, timeout=1.0, clock=clock)


@pytest.fixture
def alert(clock: Any) -> AlertItem:
    return AlertItem.from_dict(
        {
            "id": "a1",
            "type": "schedule_added",
            "status": "unread",
            "title": "Schedule",
            "message": "Math moved to 10:00",
            "studentId": "S1",
            "createdAt": clock().isoformat(),
            "room": 12,
        }
    )


class TestBuildPayload:
    """Tests for build_payload()."""

    def test_fixed_fields(self, alert: AlertItem) -> None:
        payload = build_payload(alert)

        assert payload.title == "Schedule"
        assert payload.body == "Math moved to 10:00"
        assert payload.data["type"] == "alert"
        assert payload.data["alertId"] == "a1"
        assert payload.data["alertType"] == "schedule_added"
        assert payload.data["studentId"] == "S1"
        assert payload.data["parentId"] == ""
        assert payload.data["status"] == "unread"
        assert payload.data["createdAt"].startswith("2025-03-10T08:00:00")
        assert payload.data["room"] == "12"
        assert all(isinstance(v, str) for v in payload.data.values())

    def test_defaults(self) -> None:
        payload = build_payload(AlertItem.from_dict({"id": "bare"}))

        assert payload.title == DEFAULT_ALERT_TITLE
        assert payload.body == DEFAULT_ALERT_BODY
        assert payload.data["createdAt"] == ""

    def test_producer_fields_cannot_override(self) -> None:
        payload = build_payload(AlertItem.from_dict({"id": "a1", "alertId": "x", "priority": "high"}))

        assert payload.data["alertId"] == "a1"
        assert payload.data["priority"] == "high"


class TestDispatch:
    """Tests for AlertDispatcher.dispatch()."""

    @pytest.mark.asyncio
    async def test_success(
        self,
        dispatcher: AlertDispatcher,
        transport: Any,
        dedup: Deduplicator,
        sink: NotificationLogSink,
        store: InMemoryDocumentStore,
        alert: AlertItem,
    ) -> None:
        result = await dispatcher.dispatch(alert, "T1", RecipientRole.STUDENT, "S1")
        await sink.drain()

        assert result.success
        assert result.message_id == "msg-1"
        assert transport.sent[0].token == "T1"
        assert not dedup.should_send("a1", "S1")

        records = list(store.documents("notifications").values())
        assert len(records) == 1
        assert records[0]["type"] == "PUSH_ALERT"
        assert records[0]["status"] == "sent"
        assert records[0]["recipient"] == "S1"
        assert records[0]["role"] == "student"
        assert records[0]["messageId"] == "msg-1"
        assert "error" not in records[0]

    @pytest.mark.asyncio
    async def test_failure_is_recorded(
        self,
        dispatcher: AlertDispatcher,
        transport: Any,
        dedup: Deduplicator,
        sink: NotificationLogSink,
        store: InMemoryDocumentStore,
        alert: AlertItem,
    ) -> None:
        transport.fail_with("Requested entity was not found.", code="UNREGISTERED")

        result = await dispatcher.dispatch(alert, "T1", RecipientRole.STUDENT, "S1")
        await sink.drain()

        assert not result.success
        assert result.error_code == "UNREGISTERED"
        assert dedup.last_sent("a1", "S1") is None

        (record,) = store.documents("notifications").values()
        assert record["status"] == "failed"
        assert record["errorCode"] == "UNREGISTERED"

    @pytest.mark.asyncio
    async def test_transport_exception_never_raises(
        self, dispatcher: AlertDispatcher, transport: Any, alert: AlertItem
    ) -> None:
        transport.error = RuntimeError("socket closed")

        result = await dispatcher.dispatch(alert, "T1", RecipientRole.PARENT, "P1")

        assert not result.success
        assert result.error == "socket closed"

    @pytest.mark.asyncio
    async def test_timeout(self, dedup: Deduplicator, alert: AlertItem) -> None:
        class SlowTransport:
            async def send(self, *args: Any) -> None:
                await asyncio.sleep(10)

        dispatcher = AlertDispatcher(SlowTransport(), dedup, timeout=0.01)

        result = await dispatcher.dispatch(alert, "T1", RecipientRole.STUDENT, "S1")

        assert not result.success
        assert result.error_code == TIMEOUT_ERROR_CODE

    @pytest.mark.asyncio
    async def test_store_failure_in_log_is_swallowed(
        self, transport: Any, dedup: Deduplicator, alert: AlertItem
    ) -> None:
        class BrokenStore(InMemoryDocumentStore):
            async def add(self, collection: str, data: dict[str, Any]) -> str:
                raise RuntimeError("quota exceeded")

        sink = NotificationLogSink(BrokenStore())
        dispatcher = AlertDispatcher(transport, dedup, log_sink=sink)

        result = await dispatcher.dispatch(alert, "T1", RecipientRole.STUDENT, "S1")
        await sink.drain()

        assert result.success
        assert sink.pending_count == 0
