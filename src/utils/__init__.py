# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the alert dispatch engine.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations and timestamp parsing
- identity: Identifier normalization for identity comparisons
"""

from src.utils.datetime import (
    ensure_utc,
    format_iso,
    from_epoch,
    parse_iso,
    timestamp_from_alert_id,
    to_utc_datetime,
    utc_from_timestamp,
    utc_now,
)
from src.utils.identity import ids_match, normalize_id
from src.utils.logging import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "utc_from_timestamp",
    "ensure_utc",
    "format_iso",
    "parse_iso",
    "from_epoch",
    "to_utc_datetime",
    "timestamp_from_alert_id",
    # Identity
    "normalize_id",
    "ids_match",
]
