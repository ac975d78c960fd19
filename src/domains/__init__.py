# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain layer for the alert dispatch engine.

This package contains the business rules deciding who may be notified
about which alert. It reads documents through the store interfaces and
never talks to a concrete database or push service.

Domains:
    alerts: Alert model, routing table, session freshness, eligibility.
    user: Recipient profiles and their lookup.
    parent_relation: Parent-student link resolution.
"""
