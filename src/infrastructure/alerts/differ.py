# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-container inbox diffing.

An inbox container is rewritten as a whole whenever a producer appends an
alert, so every snapshot repeats the full item list. InboxDiffer keeps the
ids seen in the previous snapshot and a watermark (the time the watcher
attached) and surfaces only entries that are new, unread and created
after the watermark.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from src.core.exceptions import MalformedAlertError
from src.domains.alerts.models import AlertItem, RecipientRole

logger = logging.getLogger(__name__)


def snapshot_items(data: dict[str, Any] | None) -> list[Any]:
    """Return the raw item list of a container document."""
    if not data:
        return []
    items = data.get("items")
    return list(items) if isinstance(items, list) else []


class InboxDiffer:
    """Diff state for one inbox container.

    Attributes:
        container_id: Inbox key (student id, parent id or the admin inbox).
        role: Role owning the inbox.
        subscription_started_at: Watermark; older entries never qualify.
        seen_alert_ids: Ids present in the last observed snapshot.
    """

    def __init__(
        self,
        container_id: str,
        role: RecipientRole,
        subscription_started_at: datetime,
    ) -> None:
        self.container_id = container_id
        self.role = role
        self.subscription_started_at = subscription_started_at
        self.seen_alert_ids: set[str] = set()
        self.primed = False

    def prime(self, raw_items: Iterable[Any]) -> None:
        """Seed seen ids from the snapshot present at attach time."""
        self.seen_alert_ids = self._collect_ids(raw_items)
        self.primed = True
        logger.debug(
            "Primed %s inbox %s with %d existing alerts",
            self.role.value,
            self.container_id,
            len(self.seen_alert_ids),
        )

    def observe(self, raw_items: Iterable[Any]) -> list[AlertItem]:
        """Compute dispatch candidates from a new snapshot.

        Args:
            raw_items: Full item list of the container.

        Returns:
            New unread alerts created after the watermark, in snapshot
            order.
        """
        raw_items = list(raw_items)
        candidates: list[AlertItem] = []
        snapshot_ids: set[str] = set()

        for raw in raw_items:
            try:
                alert = AlertItem.from_dict(raw)
            except MalformedAlertError as e:
                logger.warning(
                    "Skipping malformed alert in %s inbox %s: %s",
                    self.role.value,
                    self.container_id,
                    e,
                )
                continue

            if alert.id in snapshot_ids:
                continue
            snapshot_ids.add(alert.id)
            if alert.id in self.seen_alert_ids or not alert.is_unread:
                continue
            if alert.created_at is None:
                logger.debug("Alert %s has no creation time, ignoring", alert.id)
                continue
            if alert.created_at <= self.subscription_started_at:
                continue
            candidates.append(alert)

        self.seen_alert_ids = snapshot_ids
        self.primed = True
        return candidates

    @staticmethod
    def _collect_ids(raw_items: Iterable[Any]) -> set[str]:
        ids: set[str] = set()
        for raw in raw_items:
            try:
                ids.add(AlertItem.from_dict(raw).id)
            except MalformedAlertError:
                continue
        return ids
