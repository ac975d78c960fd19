# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the Firestore adapter (no Firestore backend needed)."""

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions

from src.core.exceptions import StoreError
from src.infrastructure.store.base import ChangeBatch, ChangeType, WatchTarget
from src.infrastructure.store.firestore import FirestoreDocumentStore, _FirestoreSubscription


def snapshot(doc_id: str, data: dict[str, Any] | None) -> MagicMock:
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = data is not None
    snap.to_dict.return_value = data
    return snap


def change(kind: str, snap: MagicMock) -> SimpleNamespace:
    return SimpleNamespace(type=SimpleNamespace(name=kind), document=snap)


@pytest.fixture
def batches() -> list[ChangeBatch]:
    return []


class TestBuildBatch:
    """Snapshot to ChangeBatch conversion."""

    @pytest.mark.asyncio
    async def test_initial_collection_batch(self, batches: list[ChangeBatch]) -> None:
        subscription = _FirestoreSubscription(
            WatchTarget("student_alerts"), batches.append, MagicMock(), asyncio.get_running_loop()
        )

        batch = subscription._build_batch([snapshot("S1", {"items": []})], [])

        assert batch.initial
        assert batch.events[0].type is ChangeType.ADDED
        assert batch.events[0].document.id == "S1"

    @pytest.mark.asyncio
    async def test_initial_missing_document(self, batches: list[ChangeBatch]) -> None:
        subscription = _FirestoreSubscription(
            WatchTarget("admin_alerts", "inbox"), batches.append, MagicMock(), asyncio.get_running_loop()
        )

        batch = subscription._build_batch([], [])

        assert batch.initial
        assert batch.events[0].document.id == "inbox"
        assert not batch.events[0].document.exists

    @pytest.mark.asyncio
    async def test_follow_up_changes(self, batches: list[ChangeBatch]) -> None:
        subscription = _FirestoreSubscription(
            WatchTarget("parent_alerts"), batches.append, MagicMock(), asyncio.get_running_loop()
        )
        subscription._build_batch([], [])

        batch = subscription._build_batch(
            [],
            [
                change("MODIFIED", snapshot("P1", {"items": [{"id": "a1"}]})),
                change("REMOVED", snapshot("P2", None)),
            ],
        )

        assert not batch.initial
        assert [e.type for e in batch.events] == [ChangeType.MODIFIED, ChangeType.REMOVED]
        assert batch.events[0].document.data == {"items": [{"id": "a1"}]}


class TestDelivery:
    """Hand-off from the watch thread to the event loop."""

    @pytest.mark.asyncio
    async def test_snapshot_is_delivered_on_loop(self, batches: list[ChangeBatch]) -> None:
        subscription = _FirestoreSubscription(
            WatchTarget("student_alerts"), batches.append, MagicMock(), asyncio.get_running_loop()
        )

        subscription._on_snapshot([snapshot("S1", {"items": []})], [], None)
        await asyncio.sleep(0)

        assert len(batches) == 1
        assert batches[0].initial

    @pytest.mark.asyncio
    async def test_nothing_delivered_after_unsubscribe(self, batches: list[ChangeBatch]) -> None:
        reference = MagicMock()
        subscription = _FirestoreSubscription(
            WatchTarget("student_alerts"), batches.append, MagicMock(), asyncio.get_running_loop()
        )
        subscription.attach(reference)

        subscription.unsubscribe()
        subscription.unsubscribe()
        subscription._on_snapshot([snapshot("S1", {})], [], None)
        await asyncio.sleep(0)

        assert batches == []
        reference.on_snapshot.return_value.unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_callback_failure_reports_error(self, batches: list[ChangeBatch]) -> None:
        on_error = MagicMock()
        subscription = _FirestoreSubscription(
            WatchTarget("student_alerts"), batches.append, on_error, asyncio.get_running_loop()
        )
        broken = MagicMock()
        broken.exists = True
        broken.to_dict.side_effect = RuntimeError("decode failed")

        subscription._on_snapshot([broken], [], None)
        await asyncio.sleep(0)

        assert batches == []
        on_error.assert_called_once()


def store_with_client(client: MagicMock) -> FirestoreDocumentStore:
    store = FirestoreDocumentStore.__new__(FirestoreDocumentStore)
    store._async_client = client
    return store


class TestErrorMapping:
    """Client failures surface as StoreError."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            google_exceptions.ServiceUnavailable("backend down"),
            auth_exceptions.RefreshError("invalid_grant: account disabled"),
            auth_exceptions.TransportError("token endpoint unreachable"),
        ],
    )
    async def test_get(self, error: Exception) -> None:
        client = MagicMock()
        client.collection.return_value.document.return_value.get = AsyncMock(side_effect=error)

        with pytest.raises(StoreError) as exc_info:
            await store_with_client(client).get("users", "S1")

        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_query(self) -> None:
        async def stream():
            raise auth_exceptions.RefreshError("expired")
            yield

        client = MagicMock()
        client.collection.return_value.stream = stream

        with pytest.raises(StoreError):
            await store_with_client(client).query("users", [])

    @pytest.mark.asyncio
    async def test_add(self) -> None:
        client = MagicMock()
        client.collection.return_value.add = AsyncMock(
            side_effect=auth_exceptions.DefaultCredentialsError("no credentials")
        )

        with pytest.raises(StoreError):
            await store_with_client(client).add("notification_logs", {"alertId": "a1"})

    @pytest.mark.asyncio
    async def test_update(self) -> None:
        client = MagicMock()
        client.collection.return_value.document.return_value.update = AsyncMock(
            side_effect=auth_exceptions.RefreshError("expired")
        )

        with pytest.raises(StoreError):
            await store_with_client(client).update("users", "S1", {"fcmToken": None})

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self) -> None:
        client = MagicMock()
        client.collection.return_value.document.return_value.get = AsyncMock(
            side_effect=ValueError("bad path")
        )

        with pytest.raises(ValueError):
            await store_with_client(client).get("users", "S1")
