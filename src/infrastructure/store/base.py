# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base interfaces for the document store and its change feed.

The engine never talks to a concrete database. It reads documents through
DocumentStore and observes inboxes through ChangeFeed; adapters implement
both for Firestore (production) and for an in-memory backend (tests and
local runs).

Document layout (collection/document, store-agnostic):
- student_alerts/{studentId}       -> {"items": [AlertItem, ...]}
- parent_alerts/{parentId}         -> {"items": [AlertItem, ...]}
- admin_alerts/inbox               -> {"items": [AlertItem, ...]}
- users/{id}                       -> recipient profile
- parent_student_links/{linkId}    -> parent/student relationship
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

USERS_COLLECTION = "users"
LINKS_COLLECTION = "parent_student_links"
STUDENT_ALERTS_COLLECTION = "student_alerts"
PARENT_ALERTS_COLLECTION = "parent_alerts"
ADMIN_ALERTS_COLLECTION = "admin_alerts"
ADMIN_INBOX_DOCUMENT = "inbox"


class ChangeType(str, Enum):
    """Kind of change reported by the change feed."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class Document:
    """A document read from the store.

    Attributes:
        collection: Collection the document belongs to.
        id: Document id within the collection.
        data: Document fields.
        exists: False for a watched document that does not exist (yet).
    """

    collection: str
    id: str
    data: dict[str, Any] = field(default_factory=dict)
    exists: bool = True

    def get(self, key: str, default: Any = None) -> Any:
        """Get a field value."""
        return self.data.get(key, default)


@dataclass(frozen=True)
class FieldFilter:
    """Equality filter for store queries."""

    field: str
    value: Any


@dataclass(frozen=True)
class WatchTarget:
    """A watched inbox location.

    A target is either a whole collection (one container per document)
    or a single document (one container).

    Attributes:
        collection: Collection to watch.
        document_id: Document to watch, or None for the whole collection.
    """

    collection: str
    document_id: str | None = None

    @property
    def path(self) -> str:
        """Human-readable path used in logs."""
        if self.document_id is None:
            return self.collection
        return f"{self.collection}/{self.document_id}"


@dataclass
class ChangeEvent:
    """One document change."""

    type: ChangeType
    document: Document


@dataclass
class ChangeBatch:
    """A group of changes delivered together by the feed.

    Attributes:
        events: Document changes in delivery order.
        initial: True for the first batch of a subscription, which lists
            every document present when the subscription was attached.
    """

    events: list[ChangeEvent]
    initial: bool = False


ChangeSink = Callable[[ChangeBatch], None]
ErrorSink = Callable[[Exception], None]


class Subscription(ABC):
    """Handle returned by ChangeFeed.subscribe()."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering changes. Must be idempotent."""
        ...


class DocumentStore(ABC):
    """Read/write access to documents."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a single document.

        Args:
            collection: Collection name.
            doc_id: Document id.

        Returns:
            The document, or None if it does not exist.

        Raises:
            StoreError: If the read fails.
        """
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        limit: int | None = None,
    ) -> list[Document]:
        """Fetch documents matching all equality filters.

        Args:
            collection: Collection name.
            filters: Equality filters, combined with AND.
            limit: Maximum number of documents to return.

        Returns:
            Matching documents.

        Raises:
            StoreError: If the query fails.
        """
        ...

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id.

        Returns:
            The new document id.

        Raises:
            StoreError: If the write fails.
        """
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            StoreError: If the write fails or the document does not exist.
        """
        ...


class ChangeFeed(ABC):
    """Source of change notifications for watched inboxes."""

    @abstractmethod
    def subscribe(
        self,
        target: WatchTarget,
        sink: ChangeSink,
        on_error: ErrorSink,
    ) -> Subscription:
        """Attach a subscription.

        The first batch delivered to ``sink`` has ``initial=True``. The
        sink is always invoked on the event loop thread.

        Args:
            target: Collection or document to watch.
            sink: Receives change batches.
            on_error: Receives subscription errors. After an error the
                subscription delivers nothing further.

        Returns:
            Subscription handle.
        """
        ...
