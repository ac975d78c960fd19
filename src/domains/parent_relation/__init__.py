# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-student relation domain package.

This package provides parent-student relationship lookups:
- Verifying that a parent is actively linked to a student
- Resolving the link-scoped push token for attendance alerts
"""

from src.domains.parent_relation.service import (
    NO_LINK,
    LinkResolution,
    LinkStatus,
    ParentLinkResolver,
    ParentStudentLink,
)

__all__ = [
    "NO_LINK",
    "LinkResolution",
    "LinkStatus",
    "ParentLinkResolver",
    "ParentStudentLink",
]
