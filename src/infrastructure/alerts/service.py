# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alert dispatch service.

Wires the watcher, eligibility verifier, deduplicator and dispatcher into
the per-candidate pipeline:

    Candidate -> Verifying -> Rejected
                           -> Eligible -> Deduped
                                       -> Sending -> Sent | Failed

Admin inbox candidates fan out to every admin account. Each
(alert, recipient) pair is processed in isolation: no failure in one pair
reaches the watcher or another pair.

Example:
    service = AlertDispatchService.create(
        store=store,
        feed=store,
        transport=FCMPushChannel.from_settings(settings.firebase),
        settings=settings.dispatch,
        scheduler=MaintenanceScheduler(),
    )
    await service.start()
    ...
    await service.stop()
"""

from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from src.core.config.settings import AlertDispatchSettings
from src.core.exceptions import StoreError
from src.domains.alerts.eligibility import EligibilityVerifier
from src.domains.alerts.models import AlertItem, RecipientRole
from src.domains.parent_relation.service import ParentLinkResolver
from src.domains.user.profiles import ProfileRepository, RecipientProfile
from src.infrastructure.alerts.watcher import DEFAULT_TARGETS, AlertWatcher, WatchSpec
from src.infrastructure.background.scheduler import MaintenanceScheduler
from src.infrastructure.notifications.channels.base import PushTransport, is_invalid_token_error
from src.infrastructure.notifications.dedup import Deduplicator
from src.infrastructure.notifications.dispatcher import AlertDispatcher, DispatchResult
from src.infrastructure.notifications.log_sink import NotificationLogSink
from src.infrastructure.store.base import ChangeFeed, DocumentStore
from src.utils.datetime import utc_now
from src.utils.logging import get_logger

logger = get_logger(__name__)

TOKEN_SOURCE_PROFILE = "profile"


class DispatchOutcome(str, Enum):
    """Terminal state of one (alert, recipient) pair."""

    REJECTED = "rejected"
    DEDUPED = "deduped"
    SENT = "sent"
    FAILED = "failed"


class AlertDispatchService:
    """Runs the alert dispatch pipeline.

    Attributes:
        clear_invalid_tokens: Clear a profile's push token when the push
            service reports it as unregistered.
        sweep_interval_seconds: Interval of the dedup sweep job.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        profiles: ProfileRepository,
        verifier: EligibilityVerifier,
        deduplicator: Deduplicator,
        dispatcher: AlertDispatcher,
        log_sink: NotificationLogSink | None = None,
        scheduler: MaintenanceScheduler | None = None,
        targets: Sequence[WatchSpec] = DEFAULT_TARGETS,
        clock: Callable[[], datetime] = utc_now,
        resubscribe_delay: float = 5.0,
        sweep_interval_seconds: float = 600,
        clear_invalid_tokens: bool = True,
    ) -> None:
        """Initialize the service.

        Args:
            feed: Change feed the watcher subscribes to.
            profiles: Profile repository (admin fan-out, token cleanup).
            verifier: Eligibility verifier.
            deduplicator: Send deduplicator.
            dispatcher: Push dispatcher.
            log_sink: Notification log sink, drained on stop.
            scheduler: Scheduler running the dedup sweep; None disables it.
            targets: Inbox locations to watch.
            clock: Source of the current time.
            resubscribe_delay: Delay before a failed subscription re-attaches.
            sweep_interval_seconds: Interval of the dedup sweep.
            clear_invalid_tokens: Enable invalid token cleanup.
        """
        self._profiles = profiles
        self._verifier = verifier
        self._deduplicator = deduplicator
        self._dispatcher = dispatcher
        self._log_sink = log_sink
        self._scheduler = scheduler
        self._clock = clock
        self.clear_invalid_tokens = clear_invalid_tokens
        self.sweep_interval_seconds = sweep_interval_seconds
        self._sweep_task_id: str | None = None
        self._outcomes: dict[DispatchOutcome, int] = {outcome: 0 for outcome in DispatchOutcome}
        self.watcher = AlertWatcher(
            feed=feed,
            handler=self.handle_candidate,
            targets=targets,
            clock=clock,
            resubscribe_delay=resubscribe_delay,
        )

    @classmethod
    def create(
        cls,
        store: DocumentStore,
        feed: ChangeFeed,
        transport: PushTransport,
        settings: AlertDispatchSettings | None = None,
        scheduler: MaintenanceScheduler | None = None,
        clock: Callable[[], datetime] = utc_now,
        targets: Sequence[WatchSpec] = DEFAULT_TARGETS,
    ) -> "AlertDispatchService":
        """Build a service and its collaborators from settings.

        Args:
            store: Document store for profiles, links and log records.
            feed: Change feed for the alert inboxes.
            transport: Push transport.
            settings: Dispatch settings; defaults when None.
            scheduler: Scheduler for the dedup sweep.
            clock: Source of the current time.
            targets: Inbox locations to watch.

        Returns:
            Configured AlertDispatchService.
        """
        settings = settings or AlertDispatchSettings()

        profiles = ProfileRepository(
            store,
            timeout=settings.store_timeout_seconds,
            admin_sentinel_id=settings.admin_sentinel_id,
        )
        links = ParentLinkResolver(store, timeout=settings.store_timeout_seconds)
        verifier = EligibilityVerifier(
            profiles,
            links,
            clock=clock,
            session_freshness=settings.session_freshness,
            reject_before_login=settings.reject_alerts_before_login,
        )
        deduplicator = Deduplicator(
            cooldown=settings.dedup_cooldown,
            retention=settings.dedup_retention,
            clock=clock,
        )
        log_sink = NotificationLogSink(store, collection=settings.notification_log_collection)
        dispatcher = AlertDispatcher(
            transport,
            deduplicator,
            log_sink=log_sink,
            timeout=settings.push_timeout_seconds,
            clock=clock,
        )

        return cls(
            feed=feed,
            profiles=profiles,
            verifier=verifier,
            deduplicator=deduplicator,
            dispatcher=dispatcher,
            log_sink=log_sink,
            scheduler=scheduler,
            targets=targets,
            clock=clock,
            resubscribe_delay=settings.resubscribe_delay_seconds,
            sweep_interval_seconds=settings.dedup_sweep_interval_seconds,
            clear_invalid_tokens=settings.clear_invalid_tokens,
        )

    @property
    def deduplicator(self) -> Deduplicator:
        """The service's deduplicator."""
        return self._deduplicator

    @property
    def is_running(self) -> bool:
        """Whether the watcher is attached."""
        return self.watcher.is_running

    def get_stats(self) -> dict[str, Any]:
        """Get pipeline statistics."""
        return {
            "is_running": self.is_running,
            "outcomes": {outcome.value: count for outcome, count in self._outcomes.items()},
            "dedup_entries": len(self._deduplicator),
            "targets": self.watcher.get_stats(),
        }

    async def start(self) -> None:
        """Register maintenance jobs and attach the watcher."""
        if self._scheduler is not None and self._sweep_task_id is None:
            task = self._scheduler.add_interval_task(
                name="Dedup Sweep",
                func=self._deduplicator.sweep,
                seconds=self.sweep_interval_seconds,
            )
            self._sweep_task_id = task.id

        await self.watcher.start()
        logger.info("alert_dispatch_started")

    async def stop(self) -> None:
        """Detach the watcher and flush pending log records."""
        await self.watcher.stop()

        if self._scheduler is not None and self._sweep_task_id is not None:
            self._scheduler.remove_task(self._sweep_task_id)
            self._sweep_task_id = None

        if self._log_sink is not None:
            await self._log_sink.drain()

        logger.info("alert_dispatch_stopped", **{o.value: c for o, c in self._outcomes.items()})

    async def handle_candidate(
        self,
        alert: AlertItem,
        role: RecipientRole,
        container_id: str,
    ) -> list[DispatchOutcome]:
        """Process a candidate alert from an inbox.

        Student and parent inboxes have exactly one recipient, the
        container id. The admin inbox fans out to every admin account,
        one recipient after another.

        Args:
            alert: Candidate alert.
            role: Inbox role.
            container_id: Inbox key.

        Returns:
            Outcome per recipient.
        """
        if role is not RecipientRole.ADMIN:
            return [await self.process(alert, role, container_id)]

        try:
            recipient_ids = await self._profiles.list_admin_recipient_ids()
        except StoreError as e:
            logger.error("admin_recipients_lookup_failed", alert_id=alert.id, error=str(e))
            return []

        if not recipient_ids:
            logger.warning("no_admin_recipients", alert_id=alert.id)
            return []

        outcomes = []
        for recipient_id in recipient_ids:
            outcomes.append(await self.process(alert, role, recipient_id))
        return outcomes

    async def process(
        self,
        alert: AlertItem,
        role: RecipientRole,
        recipient_id: str,
    ) -> DispatchOutcome:
        """Run one (alert, recipient) pair through the pipeline.

        Never raises.

        Args:
            alert: Candidate alert.
            role: Recipient role.
            recipient_id: Recipient id.

        Returns:
            Terminal state of the pair.
        """
        try:
            outcome = await self._process(alert, role, recipient_id)
        except Exception as e:
            logger.error(
                "alert_dispatch_failed",
                alert_id=alert.id,
                role=role.value,
                recipient_id=recipient_id,
                error=str(e),
                exc_info=True,
            )
            outcome = DispatchOutcome.FAILED

        self._outcomes[outcome] += 1
        return outcome

    async def _process(
        self,
        alert: AlertItem,
        role: RecipientRole,
        recipient_id: str,
    ) -> DispatchOutcome:
        eligibility = await self._verifier.verify(alert, role, recipient_id)
        if not eligibility.ok:
            logger.info(
                "alert_rejected",
                alert_id=alert.id,
                alert_type=alert.type,
                role=role.value,
                recipient_id=recipient_id,
                reason=eligibility.reason.value if eligibility.reason else None,
            )
            return DispatchOutcome.REJECTED

        if not self._deduplicator.reserve(alert.id, recipient_id):
            logger.info(
                "alert_deduped",
                alert_id=alert.id,
                role=role.value,
                recipient_id=recipient_id,
            )
            return DispatchOutcome.DEDUPED

        result = await self._dispatcher.dispatch(
            eligibility.alert or alert,
            eligibility.effective_token,
            role,
            recipient_id,
        )
        if result.success:
            logger.info(
                "alert_sent",
                alert_id=alert.id,
                role=role.value,
                recipient_id=recipient_id,
                token_source=eligibility.token_source,
                message_id=result.message_id,
            )
            return DispatchOutcome.SENT

        logger.warning(
            "alert_send_failed",
            alert_id=alert.id,
            role=role.value,
            recipient_id=recipient_id,
            error=result.error,
            error_code=result.error_code,
        )
        if eligibility.token_source == TOKEN_SOURCE_PROFILE and eligibility.profile is not None:
            await self._clear_invalid_token(eligibility.profile, result)
        return DispatchOutcome.FAILED

    async def _clear_invalid_token(self, profile: RecipientProfile, result: DispatchResult) -> None:
        if not self.clear_invalid_tokens or not is_invalid_token_error(
            result.error_code, result.error
        ):
            return

        try:
            await self._profiles.clear_push_token(
                profile.doc_id,
                reason=f"Token invalid ({result.error_code}); user needs to log in again",
                now=self._clock(),
            )
        except StoreError as e:
            logger.error("push_token_cleanup_failed", profile_id=profile.doc_id, error=str(e))
            return

        logger.info("push_token_cleared", profile_id=profile.doc_id, error_code=result.error_code)
