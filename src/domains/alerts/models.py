# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alert types and routing rules.

Inbox entries are written by many producers (attendance scanner, schedule
editor, link workflow, QR requests) with loosely shaped fields. This
module turns them into a fixed AlertItem structure and describes which
recipient roles each kind of alert may reach.

Routing:
    KIND_ROUTES maps an AlertKind to the roles allowed to receive it.
    Kinds absent from the table (the generic "alert") reach admins only
    when they are not scoped to a student or parent.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from src.core.exceptions import MalformedAlertError
from src.utils.datetime import format_iso, timestamp_from_alert_id, to_utc_datetime


class RecipientRole(str, Enum):
    """Roles that own an alert inbox."""

    STUDENT = "student"
    PARENT = "parent"
    ADMIN = "admin"


class AlertStatus(str, Enum):
    """Read state of an inbox entry.

    Only the literal "unread" (any case) counts as unread. A missing
    status or any other producer value maps to OTHER.
    """

    UNREAD = "unread"
    READ = "read"
    OTHER = "other"

    @classmethod
    def from_value(cls, value: Any) -> "AlertStatus":
        """Map a raw status string to a status."""
        text = str(value).strip().lower() if value is not None else ""
        if text == cls.UNREAD.value:
            return cls.UNREAD
        if text == cls.READ.value:
            return cls.READ
        return cls.OTHER


class AlertKind(str, Enum):
    """Known alert kinds."""

    LINK_REQUEST = "link_request"
    LINK_RESPONSE = "link_response"
    LINK_RESPONSE_SELF = "link_response_self"
    LINK_UNLINKED = "link_unlinked"
    LINK_UNLINKED_SELF = "link_unlinked_self"
    SCHEDULE_ADDED = "schedule_added"
    SCHEDULE_UPDATED = "schedule_updated"
    SCHEDULE_DELETED = "schedule_deleted"
    SCHEDULE_CURRENT = "schedule_current"
    SCHEDULE_PERMISSION_REQUEST = "schedule_permission_request"
    SCHEDULE_PERMISSION_RESPONSE = "schedule_permission_response"
    SCHEDULE_PERMISSION_RESPONSE_SELF = "schedule_permission_response_self"
    ATTENDANCE_SCAN = "attendance_scan"
    QR_GENERATED = "qr_generated"
    QR_CHANGED = "qr_changed"
    QR_REQUEST = "qr_request"
    ALERT = "alert"

    @classmethod
    def from_value(cls, value: Any) -> "AlertKind":
        """Map a raw type string to a kind; unknown types are generic."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.ALERT

    @property
    def is_attendance(self) -> bool:
        """Whether this kind may be delivered with a link-scoped token."""
        return self is AlertKind.ATTENDANCE_SCAN


_FAMILY_ROLES = frozenset({RecipientRole.STUDENT, RecipientRole.PARENT})

KIND_ROUTES: dict[AlertKind, frozenset[RecipientRole]] = {
    AlertKind.QR_REQUEST: frozenset({RecipientRole.ADMIN}),
    AlertKind.LINK_REQUEST: _FAMILY_ROLES,
    AlertKind.LINK_RESPONSE: _FAMILY_ROLES,
    AlertKind.LINK_RESPONSE_SELF: _FAMILY_ROLES,
    AlertKind.LINK_UNLINKED: _FAMILY_ROLES,
    AlertKind.LINK_UNLINKED_SELF: _FAMILY_ROLES,
    AlertKind.SCHEDULE_ADDED: _FAMILY_ROLES,
    AlertKind.SCHEDULE_UPDATED: _FAMILY_ROLES,
    AlertKind.SCHEDULE_DELETED: _FAMILY_ROLES,
    AlertKind.SCHEDULE_CURRENT: _FAMILY_ROLES,
    AlertKind.SCHEDULE_PERMISSION_REQUEST: _FAMILY_ROLES,
    AlertKind.SCHEDULE_PERMISSION_RESPONSE: _FAMILY_ROLES,
    AlertKind.SCHEDULE_PERMISSION_RESPONSE_SELF: _FAMILY_ROLES,
    AlertKind.ATTENDANCE_SCAN: _FAMILY_ROLES,
    AlertKind.QR_GENERATED: _FAMILY_ROLES,
    AlertKind.QR_CHANGED: _FAMILY_ROLES,
}


def admin_may_receive(alert: "AlertItem") -> bool:
    """Check the routing table for the admin inbox.

    Args:
        alert: Candidate alert.

    Returns:
        True if an admin may be notified about this alert.
    """
    allowed = KIND_ROUTES.get(alert.kind)
    if allowed is not None:
        return RecipientRole.ADMIN in allowed
    return not alert.student_id and not alert.parent_id


# Wire keys consumed into fixed fields; everything else goes to extra.
_RESERVED_KEYS = frozenset(
    {
        "id",
        "alertId",
        "type",
        "alertType",
        "title",
        "message",
        "body",
        "status",
        "studentId",
        "student_id",
        "parentId",
        "parent_id",
        "createdAt",
        "timestamp",
    }
)


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return format_iso(value) or ""
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, sort_keys=True)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class AlertItem:
    """A single inbox entry.

    Attributes:
        id: Alert id, unique within its container.
        type: Raw type string as written by the producer.
        kind: Parsed alert kind.
        title: Alert title, if any.
        message: Alert body, if any.
        status: Read state; OTHER for missing or unknown values.
        student_id: Student the alert concerns, if any.
        parent_id: Parent the alert concerns, if any.
        created_at: Creation time (from createdAt, or the id prefix).
        extra: Remaining producer fields, forwarded verbatim as strings.
    """

    id: str
    type: str = AlertKind.ALERT.value
    kind: AlertKind = AlertKind.ALERT
    title: str | None = None
    message: str | None = None
    status: AlertStatus = AlertStatus.UNREAD
    student_id: str | None = None
    parent_id: str | None = None
    created_at: datetime | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any) -> "AlertItem":
        """Parse an inbox entry.

        Args:
            raw: Entry as stored in the container's ``items`` list.

        Returns:
            Parsed AlertItem.

        Raises:
            MalformedAlertError: If the entry is not a mapping or has no id.
        """
        if not isinstance(raw, dict):
            raise MalformedAlertError(
                "Alert entry is not an object",
                details={"entry_type": type(raw).__name__},
            )

        alert_id = _optional_str(_first(raw, "id", "alertId"))
        if alert_id is None:
            raise MalformedAlertError("Alert entry has no id", details={"keys": sorted(raw)})

        raw_type = _optional_str(_first(raw, "type", "alertType")) or AlertKind.ALERT.value

        created_at = to_utc_datetime(_first(raw, "createdAt", "timestamp"))
        if created_at is None:
            created_at = timestamp_from_alert_id(alert_id)

        extra = {
            str(key): _stringify(value)
            for key, value in raw.items()
            if key not in _RESERVED_KEYS and value is not None
        }

        return cls(
            id=alert_id,
            type=raw_type,
            kind=AlertKind.from_value(raw_type),
            title=_optional_str(raw.get("title")),
            message=_optional_str(_first(raw, "message", "body")),
            status=AlertStatus.from_value(raw.get("status")),
            student_id=_optional_str(_first(raw, "studentId", "student_id")),
            parent_id=_optional_str(_first(raw, "parentId", "parent_id")),
            created_at=created_at,
            extra=extra,
        )

    @property
    def is_unread(self) -> bool:
        """Whether the entry is still unread."""
        return self.status is AlertStatus.UNREAD

    def with_owner(
        self,
        student_id: str | None = None,
        parent_id: str | None = None,
    ) -> "AlertItem":
        """Return a copy with missing owner ids filled in."""
        return replace(
            self,
            student_id=self.student_id or student_id,
            parent_id=self.parent_id or parent_id,
        )
