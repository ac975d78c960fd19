# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alert domain package.

This package provides:
- models: AlertItem, AlertKind and the kind -> role routing table
- session: Session freshness check
- eligibility: EligibilityVerifier guard chain

Only the models are re-exported here; import the verifier from
src.domains.alerts.eligibility (it depends on the user domain, which in
turn depends on these models).

Example:
    >>> from src.domains.alerts import AlertItem
    >>> alert = AlertItem.from_dict({"id": "a1", "type": "qr_request"})
    >>> alert.kind
    <AlertKind.QR_REQUEST: 'qr_request'>
"""

from src.domains.alerts.models import (
    KIND_ROUTES,
    AlertItem,
    AlertKind,
    AlertStatus,
    RecipientRole,
    admin_may_receive,
)

__all__ = [
    "AlertItem",
    "AlertKind",
    "AlertStatus",
    "RecipientRole",
    "KIND_ROUTES",
    "admin_may_receive",
]
