# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session freshness check.

A push token stays cached on the profile after the user logs out or
stops using the app. A recipient only counts as logged in when the
profile carries a role, a uid, a push token and a login timestamp no
older than the freshness window.
"""

from datetime import datetime, timedelta

from src.domains.user.profiles import RecipientProfile
from src.utils.datetime import ensure_utc, to_utc_datetime, utc_now

DEFAULT_SESSION_FRESHNESS = timedelta(hours=12)


def is_logged_in(
    profile: RecipientProfile | None,
    now: datetime | None = None,
    freshness: timedelta = DEFAULT_SESSION_FRESHNESS,
) -> bool:
    """Decide whether a recipient is currently logged in.

    Args:
        profile: Recipient profile, or None if it was not found.
        now: Reference time; defaults to the current UTC time.
        freshness: Maximum age of the last login.

    Returns:
        True if the profile is complete and its last login is within
        the freshness window.
    """
    if profile is None:
        return False

    if not profile.role or not profile.uid or not profile.push_token:
        return False

    last_login = to_utc_datetime(profile.last_login_at)
    if last_login is None:
        return False

    reference = ensure_utc(now) if now is not None else utc_now()
    return reference - last_login <= freshness
