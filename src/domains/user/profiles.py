# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recipient profile lookup.

Profiles live in ``users/{id}``, but the document id is not consistent
across account types: students and parents are usually keyed by their
canonical number, admins by a shared sentinel id ("Admin"), and some
accounts only by their auth uid. ProfileRepository.find() walks these
layouts in a fixed order and returns the first match.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from src.core.exceptions import StoreError
from src.domains.alerts.models import RecipientRole
from src.infrastructure.store.base import (
    USERS_COLLECTION,
    Document,
    DocumentStore,
    FieldFilter,
)

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_SENTINEL_ID = "Admin"


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class RecipientProfile:
    """A recipient account as stored in ``users/{id}``.

    Attributes:
        doc_id: Document id the profile was read from.
        role: Raw role string.
        uid: Auth uid.
        student_id: Canonical student number (students).
        parent_id: Canonical parent number (parents).
        parent_id_number: Alternate canonical parent number field.
        push_token: Account-level push token (fcmToken).
        last_login_at: Raw last login timestamp, parsed by the
            session freshness check.
    """

    doc_id: str
    role: str | None = None
    uid: str | None = None
    student_id: str | None = None
    parent_id: str | None = None
    parent_id_number: str | None = None
    push_token: str | None = None
    last_login_at: Any = None

    @classmethod
    def from_document(cls, document: Document) -> RecipientProfile:
        """Build a profile from a users document."""
        data = document.data
        return cls(
            doc_id=document.id,
            role=_optional_str(data.get("role")),
            uid=_optional_str(data.get("uid")),
            student_id=_optional_str(data.get("studentId")),
            parent_id=_optional_str(data.get("parentId")),
            parent_id_number=_optional_str(data.get("parentIdNumber")),
            push_token=_optional_str(data.get("fcmToken")),
            last_login_at=data.get("lastLoginAt"),
        )

    @property
    def canonical_parent_id(self) -> str | None:
        """Canonical parent number, preferring parentId."""
        return self.parent_id or self.parent_id_number


class ProfileRepository:
    """Reads recipient profiles from the users collection.

    Attributes:
        admin_sentinel_id: Document id of the shared admin account.
    """

    def __init__(
        self,
        store: DocumentStore,
        timeout: float = 10.0,
        admin_sentinel_id: str = DEFAULT_ADMIN_SENTINEL_ID,
    ) -> None:
        """Initialize the repository.

        Args:
            store: Document store.
            timeout: Timeout in seconds for each read.
            admin_sentinel_id: Document id of the shared admin account.
        """
        self._store = store
        self._timeout = timeout
        self.admin_sentinel_id = admin_sentinel_id

    async def find(self, recipient_id: str, role: RecipientRole) -> RecipientProfile | None:
        """Find the profile for a recipient.

        Lookup order:
        1. ``users/{recipient_id}``
        2. a user whose ``uid`` equals recipient_id
        3. admins only: the sentinel document and its lowercase variant
        4. students/parents: a user whose ``studentId``/``parentId``
           equals recipient_id

        Args:
            recipient_id: Inbox key or admin recipient id.
            role: Role of the inbox.

        Returns:
            The profile, or None if no layout matches.

        Raises:
            StoreError: If a read fails or times out.
        """
        document = await self._get(recipient_id)

        if document is None:
            document = await self._query_one("uid", recipient_id)

        if document is None and role is RecipientRole.ADMIN:
            for alt_id in (self.admin_sentinel_id, self.admin_sentinel_id.lower()):
                if alt_id == recipient_id:
                    continue
                document = await self._get(alt_id)
                if document is not None:
                    break

        if document is None and role in (RecipientRole.STUDENT, RecipientRole.PARENT):
            field_name = "studentId" if role is RecipientRole.STUDENT else "parentId"
            document = await self._query_one(field_name, recipient_id)

        if document is None:
            logger.debug("No profile found for %s %s", role.value, recipient_id)
            return None

        return RecipientProfile.from_document(document)

    async def list_admin_recipient_ids(self) -> list[str]:
        """List recipient ids for every admin account.

        The sentinel document maps to the sentinel id; other admin
        accounts map to their uid, falling back to the document id.

        Returns:
            Unique recipient ids, sentinel first.

        Raises:
            StoreError: If a read fails or times out.
        """
        recipient_ids: list[str] = []

        sentinel = await self._get(self.admin_sentinel_id)
        if sentinel is not None:
            recipient_ids.append(self.admin_sentinel_id)

        admins = await self._with_timeout(
            self._store.query(USERS_COLLECTION, [FieldFilter("role", RecipientRole.ADMIN.value)])
        )
        for document in admins:
            if document.id == self.admin_sentinel_id:
                recipient_id = self.admin_sentinel_id
            else:
                recipient_id = _optional_str(document.get("uid")) or document.id
            if recipient_id not in recipient_ids:
                recipient_ids.append(recipient_id)

        return recipient_ids

    async def clear_push_token(self, doc_id: str, reason: str, now: Any) -> None:
        """Remove an invalid push token from a profile.

        Args:
            doc_id: Profile document id.
            reason: Why the token was cleared.
            now: Timestamp recorded as fcmTokenErrorAt.

        Raises:
            StoreError: If the write fails or times out.
        """
        await self._with_timeout(
            self._store.update(
                USERS_COLLECTION,
                doc_id,
                {
                    "fcmToken": None,
                    "fcmTokenError": reason,
                    "fcmTokenErrorAt": now,
                },
            )
        )

    async def _get(self, doc_id: str) -> Document | None:
        if not doc_id:
            return None
        return await self._with_timeout(self._store.get(USERS_COLLECTION, doc_id))

    async def _query_one(self, field_name: str, value: str) -> Document | None:
        if not value:
            return None
        documents = await self._with_timeout(
            self._store.query(USERS_COLLECTION, [FieldFilter(field_name, value)], limit=1)
        )
        return documents[0] if documents else None

    async def _with_timeout(self, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise StoreError(
                "Profile read timed out",
                details={"timeout": self._timeout},
            ) from e
