# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student relationship resolution.

This module provides the ParentLinkResolver class for:
- Checking that a parent has an active link to a student
- Resolving the link-scoped push token used for attendance alerts

Links live in ``parent_student_links/{linkId}`` and reference both
parties twice: by auth uid (parentId, studentId) and by canonical number
(parentIdNumber, studentIdNumber).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.core.exceptions import StoreError
from src.domains.alerts.models import AlertKind
from src.infrastructure.store.base import (
    LINKS_COLLECTION,
    Document,
    DocumentStore,
    FieldFilter,
)

logger = logging.getLogger(__name__)


class LinkStatus(str, Enum):
    """Lifecycle of a parent-student link."""

    PENDING = "pending"
    ACTIVE = "active"


@dataclass(frozen=True)
class ParentStudentLink:
    """A parent-student relationship record.

    Attributes:
        link_id: Document id.
        parent_id: Parent auth uid.
        student_id: Student auth uid.
        parent_id_number: Canonical parent number.
        student_id_number: Canonical student number.
        status: Link status.
        parent_fcm_token: Push token scoped to this link.
    """

    link_id: str
    parent_id: str | None
    student_id: str | None
    parent_id_number: str | None
    student_id_number: str | None
    status: LinkStatus
    parent_fcm_token: str | None = None

    @classmethod
    def from_document(cls, document: Document) -> ParentStudentLink:
        """Build a link from a parent_student_links document."""

        def text(key: str) -> str | None:
            value: Any = document.get(key)
            return str(value).strip() or None if value is not None else None

        raw_status = (text("status") or LinkStatus.PENDING.value).lower()
        status = LinkStatus.ACTIVE if raw_status == LinkStatus.ACTIVE.value else LinkStatus.PENDING

        return cls(
            link_id=document.id,
            parent_id=text("parentId"),
            student_id=text("studentId"),
            parent_id_number=text("parentIdNumber"),
            student_id_number=text("studentIdNumber"),
            status=status,
            parent_fcm_token=text("parentFcmToken"),
        )

    @property
    def is_active(self) -> bool:
        """Whether the link is active."""
        return self.status is LinkStatus.ACTIVE


@dataclass(frozen=True)
class LinkResolution:
    """Outcome of a link lookup.

    Attributes:
        active: True if an active link was found.
        link_scoped_token: Push token to use instead of the profile token,
            only set for attendance alerts.
        link_id: Id of the matching link, if any.
    """

    active: bool
    link_scoped_token: str | None = None
    link_id: str | None = None


NO_LINK = LinkResolution(active=False)


class ParentLinkResolver:
    """Resolves active parent-student links.

    Attributes:
        timeout: Timeout in seconds for each store query.
    """

    def __init__(self, store: DocumentStore, timeout: float = 10.0) -> None:
        """Initialize the resolver.

        Args:
            store: Document store holding parent_student_links.
            timeout: Timeout in seconds for each store query.
        """
        self._store = store
        self.timeout = timeout

    async def resolve(
        self,
        parent_uid: str | None,
        parent_canonical_id: str | None,
        student_id: str,
        kind: AlertKind = AlertKind.ALERT,
    ) -> LinkResolution:
        """Find the active link between a parent and a student.

        The link is looked up by uid first (parentId, studentId). When the
        parent's canonical number differs from the uid, the lookup is
        retried by canonical numbers (parentIdNumber, studentIdNumber).
        The first match wins.

        Args:
            parent_uid: Parent auth uid.
            parent_canonical_id: Parent canonical number.
            student_id: Student id carried by the alert.
            kind: Alert kind; only attendance alerts get a link token.

        Returns:
            LinkResolution; NO_LINK when no active link exists.

        Raises:
            StoreError: If a query fails or times out.
        """
        link: ParentStudentLink | None = None

        if parent_uid:
            link = await self._find_active(
                [FieldFilter("parentId", parent_uid), FieldFilter("studentId", student_id)]
            )

        if link is None and parent_canonical_id and parent_canonical_id != parent_uid:
            link = await self._find_active(
                [
                    FieldFilter("parentIdNumber", parent_canonical_id),
                    FieldFilter("studentIdNumber", student_id),
                ]
            )

        if link is None:
            logger.debug(
                "No active link for parent %s / %s and student %s",
                parent_uid,
                parent_canonical_id,
                student_id,
            )
            return NO_LINK

        token = link.parent_fcm_token if kind.is_attendance else None
        return LinkResolution(active=True, link_scoped_token=token, link_id=link.link_id)

    async def _find_active(self, filters: list[FieldFilter]) -> ParentStudentLink | None:
        query = self._store.query(
            LINKS_COLLECTION,
            [*filters, FieldFilter("status", LinkStatus.ACTIVE.value)],
            limit=1,
        )
        try:
            documents = await asyncio.wait_for(query, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreError(
                "Link lookup timed out",
                details={"timeout": self.timeout},
            ) from e

        for document in documents:
            link = ParentStudentLink.from_document(document)
            if link.is_active:
                return link
        return None
