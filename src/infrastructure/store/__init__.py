# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store and change feed for the alert dispatch engine.

Key Components:
- DocumentStore / ChangeFeed: Interfaces consumed by the engine
- InMemoryDocumentStore: Dictionary-backed store and feed
- FirestoreDocumentStore: Cloud Firestore adapter (import from
  src.infrastructure.store.firestore; it pulls in the Google client)
"""

from src.infrastructure.store.base import (
    ADMIN_ALERTS_COLLECTION,
    ADMIN_INBOX_DOCUMENT,
    LINKS_COLLECTION,
    PARENT_ALERTS_COLLECTION,
    STUDENT_ALERTS_COLLECTION,
    USERS_COLLECTION,
    ChangeBatch,
    ChangeEvent,
    ChangeFeed,
    ChangeType,
    Document,
    DocumentStore,
    FieldFilter,
    Subscription,
    WatchTarget,
)
from src.infrastructure.store.memory import InMemoryDocumentStore

__all__ = [
    # Collections
    "USERS_COLLECTION",
    "LINKS_COLLECTION",
    "STUDENT_ALERTS_COLLECTION",
    "PARENT_ALERTS_COLLECTION",
    "ADMIN_ALERTS_COLLECTION",
    "ADMIN_INBOX_DOCUMENT",
    # Types
    "ChangeBatch",
    "ChangeEvent",
    "ChangeType",
    "Document",
    "FieldFilter",
    "WatchTarget",
    # Interfaces
    "ChangeFeed",
    "DocumentStore",
    "Subscription",
    # Implementations
    "InMemoryDocumentStore",
]
