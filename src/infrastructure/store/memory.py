# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory document store and change feed.

Implements both DocumentStore and ChangeFeed on plain dictionaries so the
whole dispatch pipeline can run without a Firestore backend: in unit
tests, and locally with ENVIRONMENT=development and no Firebase project.

Writes notify subscribers synchronously on the calling thread, which must
be the event loop thread.

Example:
    store = InMemoryDocumentStore()
    store.set_document("users", "S1", {"role": "student", "uid": "U1"})
    store.append_item("student_alerts", "S1", {"id": "a1", "status": "unread"})
"""

import copy
import itertools
import logging
from collections.abc import Sequence
from typing import Any

from src.core.exceptions import StoreError
from src.infrastructure.store.base import (
    ChangeBatch,
    ChangeEvent,
    ChangeFeed,
    ChangeSink,
    ChangeType,
    Document,
    DocumentStore,
    ErrorSink,
    FieldFilter,
    Subscription,
    WatchTarget,
)

logger = logging.getLogger(__name__)


class _MemorySubscription(Subscription):
    """Subscription handle for InMemoryDocumentStore."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        target: WatchTarget,
        sink: ChangeSink,
        on_error: ErrorSink,
    ) -> None:
        self.target = target
        self.sink = sink
        self.on_error = on_error
        self.active = True
        self._store = store

    def matches(self, collection: str, doc_id: str) -> bool:
        if not self.active or self.target.collection != collection:
            return False
        return self.target.document_id is None or self.target.document_id == doc_id

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._store._subscriptions.remove(self)


class InMemoryDocumentStore(DocumentStore, ChangeFeed):
    """Dictionary-backed document store with a synchronous change feed."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[_MemorySubscription] = []
        self._ids = itertools.count(1)

    # =========================================================================
    # Synchronous helpers (seeding and mutating data)
    # =========================================================================

    def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or replace a document and notify subscribers."""
        docs = self._collections.setdefault(collection, {})
        change_type = ChangeType.MODIFIED if doc_id in docs else ChangeType.ADDED
        docs[doc_id] = copy.deepcopy(data)
        self._notify(collection, doc_id, change_type)

    def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document and notify subscribers."""
        docs = self._collections.get(collection, {})
        if docs.pop(doc_id, None) is not None:
            self._notify(collection, doc_id, ChangeType.REMOVED)

    def append_item(self, collection: str, doc_id: str, item: dict[str, Any]) -> None:
        """Append an entry to a container's ``items`` list."""
        current = self._collections.get(collection, {}).get(doc_id)
        data = copy.deepcopy(current) if current is not None else {}
        items = data.get("items")
        data["items"] = [*items, item] if isinstance(items, list) else [item]
        self.set_document(collection, doc_id, data)

    def document_data(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a copy of a document's data, or None."""
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def documents(self, collection: str) -> dict[str, dict[str, Any]]:
        """Return a copy of every document in a collection."""
        return copy.deepcopy(self._collections.get(collection, {}))

    def fail_subscriptions(self, collection: str, error: Exception) -> int:
        """Report an error to every subscription on a collection.

        Failed subscriptions are detached, like a broken listener.

        Returns:
            Number of subscriptions that received the error.
        """
        failed = [s for s in self._subscriptions if s.active and s.target.collection == collection]
        for subscription in failed:
            subscription.unsubscribe()
            subscription.on_error(error)
        return len(failed)

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)

    def _snapshot(self, collection: str, doc_id: str) -> Document:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return Document(collection=collection, id=doc_id, data={}, exists=False)
        return Document(collection=collection, id=doc_id, data=copy.deepcopy(data))

    def _notify(self, collection: str, doc_id: str, change_type: ChangeType) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(collection, doc_id):
                event = ChangeEvent(type=change_type, document=self._snapshot(collection, doc_id))
                subscription.sink(ChangeBatch(events=[event]))

    # =========================================================================
    # DocumentStore
    # =========================================================================

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a single document."""
        document = self._snapshot(collection, doc_id)
        return document if document.exists else None

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        limit: int | None = None,
    ) -> list[Document]:
        """Fetch documents matching all equality filters."""
        results: list[Document] = []
        for doc_id, data in self._collections.get(collection, {}).items():
            if all(data.get(f.field) == f.value for f in filters):
                results.append(Document(collection=collection, id=doc_id, data=copy.deepcopy(data)))
                if limit is not None and len(results) >= limit:
                    break
        return results

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id."""
        doc_id = f"{collection}-{next(self._ids)}"
        self.set_document(collection, doc_id, data)
        return doc_id

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        current = self._collections.get(collection, {}).get(doc_id)
        if current is None:
            raise StoreError(
                "Document not found",
                details={"collection": collection, "doc_id": doc_id},
            )
        self.set_document(collection, doc_id, {**current, **data})

    # =========================================================================
    # ChangeFeed
    # =========================================================================

    def subscribe(
        self,
        target: WatchTarget,
        sink: ChangeSink,
        on_error: ErrorSink,
    ) -> Subscription:
        """Attach a subscription and deliver the initial snapshot."""
        subscription = _MemorySubscription(self, target, sink, on_error)
        self._subscriptions.append(subscription)

        if target.document_id is None:
            events = [
                ChangeEvent(type=ChangeType.ADDED, document=self._snapshot(target.collection, doc_id))
                for doc_id in self._collections.get(target.collection, {})
            ]
        else:
            events = [
                ChangeEvent(
                    type=ChangeType.ADDED,
                    document=self._snapshot(target.collection, target.document_id),
                )
            ]

        logger.debug("Subscribed to %s (%d initial documents)", target.path, len(events))
        sink(ChangeBatch(events=events, initial=True))
        return subscription
