# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User domain package.

This package provides recipient profile functionality:
- RecipientProfile: A users document as seen by the dispatch pipeline
- ProfileRepository: Profile lookup across document id layouts

Example:
    >>> from src.domains.user import ProfileRepository
    >>> profiles = ProfileRepository(store)
    >>> profile = await profiles.find("S1", RecipientRole.STUDENT)
"""

from src.domains.user.profiles import (
    DEFAULT_ADMIN_SENTINEL_ID,
    ProfileRepository,
    RecipientProfile,
)

__all__ = [
    "DEFAULT_ADMIN_SENTINEL_ID",
    "ProfileRepository",
    "RecipientProfile",
]
