# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Eligibility verification for alert notifications.

Decides whether a recipient may be notified about a specific alert and,
if so, which push token to use. Guards run in a fixed order and the first
failing guard rejects the candidate:

1. Profile exists
2. Session is fresh (see session.is_logged_in)
3. Profile role matches the inbox role
4. Profile owns the inbox (canonical id match)
5. Admin only: alert kind is routed to admins
6. Student/parent: alert owner matches the inbox (imputed when missing)
7. Parent only: an active link to the alert's student exists; attendance
   alerts switch to the link-scoped token when one is stored
8. Optionally: alert was created after the recipient's last login

A candidate with no usable token after these guards is rejected as well.
Store failures reject the candidate instead of raising.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from src.core.exceptions import StoreError
from src.domains.alerts.models import AlertItem, RecipientRole, admin_may_receive
from src.domains.alerts.session import DEFAULT_SESSION_FRESHNESS, is_logged_in
from src.domains.parent_relation.service import ParentLinkResolver
from src.domains.user.profiles import ProfileRepository, RecipientProfile
from src.utils.datetime import to_utc_datetime, utc_now
from src.utils.identity import ids_match, normalize_id

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    """Why a candidate was rejected."""

    PROFILE_NOT_FOUND = "profile_not_found"
    SESSION_STALE = "session_stale"
    ROLE_MISMATCH = "role_mismatch"
    OWNERSHIP_MISMATCH = "ownership_mismatch"
    TYPE_NOT_ALLOWED = "type_not_allowed"
    ALERT_OWNER_MISMATCH = "alert_owner_mismatch"
    MISSING_STUDENT = "missing_student"
    NOT_LINKED = "not_linked"
    CREATED_BEFORE_LOGIN = "created_before_login"
    NO_TOKEN = "no_token"
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of eligibility verification.

    Attributes:
        ok: True if the recipient may be notified.
        reason: Failing guard when ok is False.
        effective_token: Token to deliver to when ok is True.
        token_source: "profile" or "link".
        alert: The alert, with owner ids imputed where they were missing.
        profile: The recipient profile, when it was found.
    """

    ok: bool
    reason: RejectReason | None = None
    effective_token: str | None = None
    token_source: str | None = None
    alert: AlertItem | None = None
    profile: RecipientProfile | None = None

    @classmethod
    def reject(
        cls,
        reason: RejectReason,
        alert: AlertItem | None = None,
        profile: RecipientProfile | None = None,
    ) -> "EligibilityResult":
        """Build a rejection."""
        return cls(ok=False, reason=reason, alert=alert, profile=profile)


class EligibilityVerifier:
    """Runs the eligibility guard chain for (alert, role, recipient).

    Attributes:
        admin_sentinel_id: Fixed recipient id of the shared admin account.
        session_freshness: Maximum age of the recipient's last login.
        reject_before_login: Also reject alerts created before the
            recipient's last login.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        links: ParentLinkResolver,
        clock: Callable[[], datetime] = utc_now,
        session_freshness: timedelta = DEFAULT_SESSION_FRESHNESS,
        reject_before_login: bool = False,
    ) -> None:
        """Initialize the verifier.

        Args:
            profiles: Profile repository.
            links: Parent link resolver.
            clock: Source of the current time.
            session_freshness: Maximum age of the last login.
            reject_before_login: Enable the created-before-login guard.
        """
        self._profiles = profiles
        self._links = links
        self._clock = clock
        self.admin_sentinel_id = profiles.admin_sentinel_id
        self.session_freshness = session_freshness
        self.reject_before_login = reject_before_login

    async def verify(
        self,
        alert: AlertItem,
        role: RecipientRole,
        recipient_id: str,
    ) -> EligibilityResult:
        """Verify that a recipient may receive an alert.

        Args:
            alert: Candidate alert.
            role: Role of the inbox the alert came from.
            recipient_id: Inbox key (student/parent) or admin recipient id.

        Returns:
            EligibilityResult with the effective token, or the reason
            for rejection.
        """
        try:
            return await self._verify(alert, role, recipient_id)
        except StoreError as e:
            logger.warning(
                "Store error while verifying alert %s for %s %s: %s",
                alert.id,
                role.value,
                recipient_id,
                e,
            )
            return EligibilityResult.reject(RejectReason.STORE_ERROR, alert=alert)

    async def _verify(
        self,
        alert: AlertItem,
        role: RecipientRole,
        recipient_id: str,
    ) -> EligibilityResult:
        profile = await self._profiles.find(recipient_id, role)
        if profile is None:
            return EligibilityResult.reject(RejectReason.PROFILE_NOT_FOUND, alert=alert)

        if not is_logged_in(profile, now=self._clock(), freshness=self.session_freshness):
            return EligibilityResult.reject(RejectReason.SESSION_STALE, alert, profile)

        if normalize_id(profile.role) != role.value:
            return EligibilityResult.reject(RejectReason.ROLE_MISMATCH, alert, profile)

        if not self._owns_inbox(profile, role, recipient_id):
            return EligibilityResult.reject(RejectReason.OWNERSHIP_MISMATCH, alert, profile)

        if role is RecipientRole.ADMIN:
            if not admin_may_receive(alert):
                return EligibilityResult.reject(RejectReason.TYPE_NOT_ALLOWED, alert, profile)
        else:
            owner_id = alert.student_id if role is RecipientRole.STUDENT else alert.parent_id
            if owner_id is None:
                alert = (
                    alert.with_owner(student_id=recipient_id)
                    if role is RecipientRole.STUDENT
                    else alert.with_owner(parent_id=recipient_id)
                )
            elif not ids_match(owner_id, recipient_id):
                return EligibilityResult.reject(RejectReason.ALERT_OWNER_MISMATCH, alert, profile)

        token = profile.push_token
        token_source = "profile"

        if role is RecipientRole.PARENT:
            if not alert.student_id:
                return EligibilityResult.reject(RejectReason.MISSING_STUDENT, alert, profile)

            resolution = await self._links.resolve(
                parent_uid=profile.uid,
                parent_canonical_id=profile.canonical_parent_id or recipient_id,
                student_id=alert.student_id,
                kind=alert.kind,
            )
            if not resolution.active:
                return EligibilityResult.reject(RejectReason.NOT_LINKED, alert, profile)
            if resolution.link_scoped_token:
                token = resolution.link_scoped_token
                token_source = "link"

        if self.reject_before_login and self._created_before_login(alert, profile):
            return EligibilityResult.reject(RejectReason.CREATED_BEFORE_LOGIN, alert, profile)

        if not token:
            return EligibilityResult.reject(RejectReason.NO_TOKEN, alert, profile)

        return EligibilityResult(
            ok=True,
            effective_token=token,
            token_source=token_source,
            alert=alert,
            profile=profile,
        )

    def _owns_inbox(
        self,
        profile: RecipientProfile,
        role: RecipientRole,
        recipient_id: str,
    ) -> bool:
        if role is RecipientRole.STUDENT:
            return ids_match(profile.student_id, recipient_id)
        if role is RecipientRole.PARENT:
            return ids_match(profile.canonical_parent_id, recipient_id)
        return ids_match(recipient_id, self.admin_sentinel_id) or ids_match(profile.uid, recipient_id)

    @staticmethod
    def _created_before_login(alert: AlertItem, profile: RecipientProfile) -> bool:
        last_login = to_utc_datetime(profile.last_login_at)
        if alert.created_at is None or last_login is None:
            return False
        return alert.created_at < last_login
