# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for timestamp parsing helpers."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from src.utils.datetime import (
    ensure_utc,
    format_iso,
    from_epoch,
    parse_iso,
    timestamp_from_alert_id,
    to_utc_datetime,
)

REFERENCE = datetime(2025, 3, 10, 8, 0, 0, tzinfo=timezone.utc)
REFERENCE_SECONDS = int(REFERENCE.timestamp())


class TestEnsureUtc:
    """Tests for ensure_utc."""

    def test_naive_is_assumed_utc(self) -> None:
        result = ensure_utc(datetime(2025, 3, 10, 8, 0, 0))
        assert result == REFERENCE
        assert result.tzinfo == timezone.utc

    def test_aware_is_converted(self) -> None:
        plus_three = timezone(timedelta(hours=3))
        result = ensure_utc(datetime(2025, 3, 10, 11, 0, 0, tzinfo=plus_three))
        assert result == REFERENCE
        assert result.tzinfo == timezone.utc

    def test_none(self) -> None:
        assert ensure_utc(None) is None


class TestParseIso:
    """Tests for parse_iso and format_iso."""

    def test_parses_z_suffix(self) -> None:
        assert parse_iso("2025-03-10T08:00:00Z") == REFERENCE

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_iso("yesterday")

    def test_format(self) -> None:
        assert format_iso(REFERENCE) == "2025-03-10T08:00:00+00:00"
        assert format_iso(None) is None


class TestFromEpoch:
    """Tests for from_epoch."""

    def test_seconds(self) -> None:
        assert from_epoch(REFERENCE_SECONDS) == REFERENCE

    def test_milliseconds(self) -> None:
        assert from_epoch(REFERENCE_SECONDS * 1000) == REFERENCE


class TestToUtcDatetime:
    """Tests for to_utc_datetime."""

    @pytest.mark.parametrize(
        "value",
        [
            REFERENCE,
            "2025-03-10T08:00:00Z",
            "2025-03-10T08:00:00.000+00:00",
            REFERENCE_SECONDS,
            REFERENCE_SECONDS * 1000,
            str(REFERENCE_SECONDS * 1000),
            float(REFERENCE_SECONDS),
            {"seconds": REFERENCE_SECONDS, "nanoseconds": 0},
            {"_seconds": REFERENCE_SECONDS, "_nanoseconds": 0},
            SimpleNamespace(seconds=REFERENCE_SECONDS, nanos=0),
        ],
    )
    def test_supported_shapes(self, value: object) -> None:
        """Every stored timestamp shape converts to the same instant."""
        assert to_utc_datetime(value) == REFERENCE

    @pytest.mark.parametrize(
        "value",
        [None, "", "   ", "not a date", 0, -5, True, {"foo": 1}, object()],
    )
    def test_unusable_values(self, value: object) -> None:
        """Absent or unparsable timestamps yield None instead of raising."""
        assert to_utc_datetime(value) is None


class TestTimestampFromAlertId:
    """Tests for timestamp_from_alert_id."""

    def test_millis_prefix(self) -> None:
        alert_id = f"{REFERENCE_SECONDS * 1000}_abc123"
        assert timestamp_from_alert_id(alert_id) == REFERENCE

    @pytest.mark.parametrize("alert_id", [None, "", "a1", "abc_123", "_123"])
    def test_no_numeric_prefix(self, alert_id: str | None) -> None:
        assert timestamp_from_alert_id(alert_id) is None
