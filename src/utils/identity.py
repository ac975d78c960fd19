# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identifier normalization for identity comparisons.

Canonical student and parent numbers are stored in several shapes
("2024-00-123", "202400123", " 2024-00-123 "). Every equality check
between a recipient id, a profile field and an alert field goes through
normalize_id() so that these shapes compare equal.

Example:
    >>> normalize_id("AB-12-3") == normalize_id(" ab123 ")
    True
"""

from typing import Any


def normalize_id(value: Any) -> str:
    """Normalize an identifier for comparison.

    Removes all "-" separators, trims surrounding whitespace and
    lowercases the result.

    Args:
        value: Identifier to normalize. None yields an empty string,
            non-string values are converted with str().

    Returns:
        Normalized identifier.
    """
    if value is None:
        return ""
    return str(value).replace("-", "").strip().lower()


def ids_match(left: Any, right: Any) -> bool:
    """Check whether two identifiers are equal after normalization.

    Empty identifiers never match.

    Args:
        left: First identifier.
        right: Second identifier.

    Returns:
        True if both are non-empty and normalize to the same value.
    """
    normalized = normalize_id(left)
    return bool(normalized) and normalized == normalize_id(right)
