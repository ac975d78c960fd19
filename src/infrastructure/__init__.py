# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains adapters and runtime components for:
- Document store and change feed (Firestore, in-memory)
- Alert inbox watching and the dispatch pipeline
- Push notifications (Firebase Cloud Messaging)
- Background maintenance scheduling (APScheduler)
"""
