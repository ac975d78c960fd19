"""Alert Dispatch Engine.

Background worker that watches alert inboxes in Firestore and delivers
push notifications to eligible students, parents and admins.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
