# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firestore implementation of DocumentStore and ChangeFeed.

Reads and writes go through the async Firestore client. Real-time
listeners are only available on the synchronous client: on_snapshot()
callbacks run on a background thread owned by the client library, so
every batch is handed to the event loop with call_soon_threadsafe().

Configuration (via FirebaseSettings):
- FIREBASE_PROJECT_ID: Google Cloud project ID
- FIREBASE_CREDENTIALS_PATH: Service account JSON file (falls back to
  application default credentials when unset)
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter
from google.oauth2 import service_account

from src.core.config.settings import FirebaseSettings
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

# Backend failures and credential refresh failures both surface as StoreError.
STORE_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError)

FIRESTORE_SCOPES = ["https://www.googleapis.com/auth/datastore"]


def _to_document(collection: str, snapshot: Any) -> Document:
    """Convert a Firestore DocumentSnapshot to a Document."""
    if not snapshot.exists:
        return Document(collection=collection, id=snapshot.id, data={}, exists=False)
    return Document(collection=collection, id=snapshot.id, data=snapshot.to_dict() or {})


class _FirestoreSubscription(Subscription):
    """Bridges a Firestore Watch into the event loop."""

    def __init__(
        self,
        target: WatchTarget,
        sink: ChangeSink,
        on_error: ErrorSink,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._target = target
        self._sink = sink
        self._on_error = on_error
        self._loop = loop
        self._initial = True
        self._active = True
        self._watch: Any = None

    def attach(self, reference: Any) -> None:
        self._watch = reference.on_snapshot(self._on_snapshot)

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._watch is not None:
            try:
                self._watch.unsubscribe()
            except Exception as e:
                logger.warning("Failed to close watch on %s: %s", self._target.path, e)

    def _on_snapshot(self, snapshots: list[Any], changes: list[Any], read_time: Any) -> None:
        # Runs on the Firestore watch thread.
        if not self._active:
            return
        try:
            batch = self._build_batch(snapshots, changes)
        except Exception as e:
            logger.error("Failed to read snapshot for %s: %s", self._target.path, e, exc_info=True)
            self._active = False
            self._loop.call_soon_threadsafe(self._on_error, e)
            return
        self._loop.call_soon_threadsafe(self._deliver, batch)

    def _deliver(self, batch: ChangeBatch) -> None:
        if self._active:
            self._sink(batch)

    def _build_batch(self, snapshots: list[Any], changes: list[Any]) -> ChangeBatch:
        collection = self._target.collection

        if self._initial:
            self._initial = False
            if self._target.document_id is not None and not snapshots:
                documents = [
                    Document(collection=collection, id=self._target.document_id, exists=False)
                ]
            else:
                documents = [_to_document(collection, s) for s in snapshots]
            events = [ChangeEvent(type=ChangeType.ADDED, document=d) for d in documents]
            return ChangeBatch(events=events, initial=True)

        events = []
        for change in changes:
            change_type = ChangeType(change.type.name.lower())
            events.append(
                ChangeEvent(type=change_type, document=_to_document(collection, change.document))
            )
        return ChangeBatch(events=events)


class FirestoreDocumentStore(DocumentStore, ChangeFeed):
    """Document store and change feed backed by Cloud Firestore.

    Attributes:
        project_id: Google Cloud project ID.
    """

    def __init__(
        self,
        project_id: str | None = None,
        credentials: Any = None,
    ) -> None:
        """Initialize Firestore clients.

        Args:
            project_id: Google Cloud project ID.
            credentials: google-auth credentials, or None for application
                default credentials.
        """
        self.project_id = project_id
        self._async_client = firestore.AsyncClient(project=project_id, credentials=credentials)
        self._sync_client = firestore.Client(project=project_id, credentials=credentials)
        logger.info("Firestore store initialized for project %s", project_id)

    @classmethod
    def from_settings(cls, settings: FirebaseSettings) -> "FirestoreDocumentStore":
        """Build a store from Firebase settings.

        Args:
            settings: Firebase settings.

        Returns:
            Configured FirestoreDocumentStore.
        """
        credentials = None
        if settings.credentials_path:
            credentials = service_account.Credentials.from_service_account_file(
                settings.credentials_path,
                scopes=FIRESTORE_SCOPES,
            )
        return cls(project_id=settings.project_id, credentials=credentials)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a single document."""
        try:
            snapshot = await self._async_client.collection(collection).document(doc_id).get()
        except STORE_ERRORS as e:
            raise StoreError(
                f"Failed to read {collection}/{doc_id}: {e}",
                details={"collection": collection, "doc_id": doc_id},
            ) from e

        if not snapshot.exists:
            return None
        return _to_document(collection, snapshot)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        limit: int | None = None,
    ) -> list[Document]:
        """Fetch documents matching all equality filters."""
        query: Any = self._async_client.collection(collection)
        for f in filters:
            query = query.where(filter=FirestoreFieldFilter(f.field, "==", f.value))
        if limit is not None:
            query = query.limit(limit)

        try:
            return [_to_document(collection, snapshot) async for snapshot in query.stream()]
        except STORE_ERRORS as e:
            raise StoreError(
                f"Failed to query {collection}: {e}",
                details={"collection": collection, "filters": [f.field for f in filters]},
            ) from e

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id."""
        try:
            _, reference = await self._async_client.collection(collection).add(data)
        except STORE_ERRORS as e:
            raise StoreError(f"Failed to write to {collection}: {e}") from e
        return reference.id

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        try:
            await self._async_client.collection(collection).document(doc_id).update(data)
        except STORE_ERRORS as e:
            raise StoreError(
                f"Failed to update {collection}/{doc_id}: {e}",
                details={"collection": collection, "doc_id": doc_id},
            ) from e

    def subscribe(
        self,
        target: WatchTarget,
        sink: ChangeSink,
        on_error: ErrorSink,
    ) -> Subscription:
        """Attach a Firestore listener to a collection or document.

        Must be called from the event loop that consumes the batches.
        """
        loop = asyncio.get_running_loop()
        subscription = _FirestoreSubscription(target, sink, on_error, loop)

        reference: Any = self._sync_client.collection(target.collection)
        if target.document_id is not None:
            reference = reference.document(target.document_id)

        subscription.attach(reference)
        logger.info("Firestore listener attached to %s", target.path)
        return subscription
