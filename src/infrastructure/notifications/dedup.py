# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Send deduplication.

Remembers when each (alert, recipient) pair was last sent so that the same
alert is not pushed to the same recipient twice within the cooldown
window. Entries older than the retention window are removed by sweep(),
which the maintenance scheduler runs periodically.

The check-and-record in reserve() is atomic: it runs under a
threading.Lock so it stays correct whether callers share the event loop
or come from a store watch thread.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=5)
DEFAULT_RETENTION = timedelta(hours=1)


class Deduplicator:
    """In-memory (alert id, recipient id) -> last sent time map.

    Attributes:
        cooldown: Minimum time between two sends of one pair.
        retention: Age after which sweep() forgets an entry.
    """

    def __init__(
        self,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the deduplicator.

        Args:
            cooldown: Minimum time between two sends of one pair.
            retention: Age after which entries are swept.
            clock: Source of the current time.
        """
        self.cooldown = cooldown
        self.retention = retention
        self._clock = clock
        self._sent: dict[tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)

    @property
    def entry_count(self) -> int:
        """Number of remembered pairs."""
        return len(self)

    def last_sent(self, alert_id: str, recipient_id: str) -> datetime | None:
        """Return when the pair was last recorded, if at all."""
        with self._lock:
            return self._sent.get((alert_id, recipient_id))

    def should_send(self, alert_id: str, recipient_id: str) -> bool:
        """Check whether the pair is outside its cooldown.

        Args:
            alert_id: Alert id.
            recipient_id: Recipient id.

        Returns:
            True if the pair was never sent or the cooldown has elapsed.
        """
        with self._lock:
            return self._is_clear(alert_id, recipient_id, self._clock())

    def mark_sent(self, alert_id: str, recipient_id: str) -> None:
        """Record a send of the pair at the current time."""
        with self._lock:
            self._sent[(alert_id, recipient_id)] = self._clock()

    def reserve(self, alert_id: str, recipient_id: str) -> bool:
        """Atomically check the cooldown and record a send.

        Args:
            alert_id: Alert id.
            recipient_id: Recipient id.

        Returns:
            True if the caller now owns the send; False if the pair is
            still within its cooldown.
        """
        with self._lock:
            now = self._clock()
            if not self._is_clear(alert_id, recipient_id, now):
                return False
            self._sent[(alert_id, recipient_id)] = now
            return True

    def sweep(self) -> int:
        """Forget entries older than the retention window.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            cutoff = self._clock() - self.retention
            expired = [key for key, sent_at in self._sent.items() if sent_at < cutoff]
            for key in expired:
                del self._sent[key]

        if expired:
            logger.debug("Swept %d dedup entries", len(expired))
        return len(expired)

    def _is_clear(self, alert_id: str, recipient_id: str, now: datetime) -> bool:
        sent_at = self._sent.get((alert_id, recipient_id))
        return sent_at is None or now - sent_at >= self.cooldown
