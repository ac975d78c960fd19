# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the alert dispatch engine.

All datetimes handled by the engine are timezone-aware UTC. Values read
from the document store arrive in many shapes (ISO strings, epoch
seconds, epoch milliseconds, native store timestamps); to_utc_datetime()
is the single place where they are converted.

Usage:
------
    from src.utils.datetime import utc_now, to_utc_datetime

    now = utc_now()
    last_login = to_utc_datetime(profile_data.get("lastLoginAt"))
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

# Numbers above this are treated as epoch milliseconds, below as seconds.
EPOCH_MILLIS_THRESHOLD = 1_000_000_000_000


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: float) -> datetime:
    """Create a timezone-aware UTC datetime from a Unix timestamp.

    Args:
        timestamp: Unix timestamp (seconds since epoch).

    Returns:
        Timezone-aware UTC datetime.
    """
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string.

    Args:
        iso_string: ISO 8601 formatted string.

    Returns:
        Timezone-aware UTC datetime or None.

    Raises:
        ValueError: If the string is not valid ISO 8601.
    """
    if iso_string is None:
        return None

    dt = datetime.fromisoformat(iso_string.strip().replace("Z", "+00:00"))
    return ensure_utc(dt)


def from_epoch(value: float) -> datetime:
    """Convert an epoch number in seconds or milliseconds to UTC.

    Args:
        value: Epoch seconds, or epoch milliseconds when above
            EPOCH_MILLIS_THRESHOLD.

    Returns:
        Timezone-aware UTC datetime.
    """
    if abs(value) >= EPOCH_MILLIS_THRESHOLD:
        return utc_from_timestamp(value / 1000)
    return utc_from_timestamp(value)


def to_utc_datetime(value: Any) -> datetime | None:
    """Convert a stored timestamp of any supported shape to UTC.

    Supported shapes:
    - datetime (including store-native datetime subclasses)
    - ISO 8601 strings, and digit-only strings holding epoch numbers
    - epoch seconds or epoch milliseconds (int or float)
    - objects exposing ``seconds``/``nanos`` (protobuf Timestamp)
    - mappings with ``seconds`` or ``_seconds`` keys (serialized timestamps)

    Args:
        value: Raw timestamp value.

    Returns:
        Timezone-aware UTC datetime, or None when the value is absent
        or cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, datetime):
            return ensure_utc(value)

        if isinstance(value, (int, float)):
            if value <= 0:
                return None
            return from_epoch(value)

        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.isdigit():
                return to_utc_datetime(int(text))
            return parse_iso(text)

        if isinstance(value, Mapping):
            seconds = value.get("seconds", value.get("_seconds"))
            if seconds is None:
                return None
            nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
            return utc_from_timestamp(float(seconds) + float(nanos) / 1e9)

        seconds = getattr(value, "seconds", None)
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = getattr(value, "nanos", 0) or 0
            return utc_from_timestamp(float(seconds) + float(nanos) / 1e9)

    except (ValueError, TypeError, OverflowError, OSError):
        return None

    return None


def timestamp_from_alert_id(alert_id: str | None) -> datetime | None:
    """Extract the creation time embedded in an alert id.

    Producers build alert ids as ``"<epoch millis>_<suffix>"``. When an
    alert lacks ``createdAt`` this prefix is the only creation time
    available.

    Args:
        alert_id: Alert identifier.

    Returns:
        Timezone-aware UTC datetime, or None if the id carries no
        numeric prefix.
    """
    if not alert_id or "_" not in alert_id:
        return None

    prefix = alert_id.split("_", 1)[0]
    if not prefix.isdigit():
        return None

    return to_utc_datetime(int(prefix))
