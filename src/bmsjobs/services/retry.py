"""Retry scheduler: drains due notifications through a dispatcher.

One call to process_due() is one dispatch tick:
1. fetch at most `batch_size` PENDING notifications with next_retry_at <= now
2. hand each to the dispatcher under a per-call timeout
3. record the outcome (SENT, retry with backoff, or FAILED) and commit

Each item is isolated: a dispatcher exception, a timeout or a failed outcome
write affects only that notification. Infrastructure failures while fetching
or committing propagate and end the tick.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bmsjobs.services.notification_store import (
    NotificationStore,
    NotificationStoreError,
)
from bmsjobs.services.outcomes import (
    DispatchOutcome,
    PermanentFailure,
    RetryableFailure,
    Success,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import NotificationSettings
    from bmsjobs.db.models.notifications import Notification
    from bmsjobs.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchTickResult:
    """Counters for one dispatch tick."""

    attempted: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "retried": self.retried,
            "failed": self.failed,
            "errors": self.errors,
        }


class RetryScheduler:
    """Attempts due notifications and writes back their outcomes."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        settings: NotificationSettings,
        dispatcher: Dispatcher,
    ) -> None:
        self.session = session
        self.settings = settings
        self.dispatcher = dispatcher
        self.store = NotificationStore(session, clock, settings)

    async def process_due(self, limit: int | None = None) -> DispatchTickResult:
        """Run one dispatch tick over at most `limit` notifications."""
        batch_size = self.settings.batch_size if limit is None else limit
        batch = await self.store.fetch_due_batch(batch_size)
        result = DispatchTickResult()
        if not batch:
            return result

        logger.info("Dispatching %d due notifications", len(batch))

        for notification in batch:
            result.attempted += 1
            outcome = await self.attempt(notification)

            try:
                async with self.session.begin_nested():
                    await self.store.record_outcome(notification, outcome)
            except NotificationStoreError:
                result.errors += 1
                logger.exception(
                    "Failed to record dispatch outcome: id=%s",
                    notification.id,
                )
                continue

            # Commit per item so a crash later in the batch cannot resend it
            await self.session.commit()
            self._count(result, notification, outcome)

        logger.info(
            "Dispatch tick complete: attempted=%d, sent=%d, retried=%d, failed=%d, errors=%d",
            result.attempted,
            result.sent,
            result.retried,
            result.failed,
            result.errors,
        )
        return result

    async def attempt(self, notification: Notification) -> DispatchOutcome:
        """Call the dispatcher once, turning timeouts and crashes into retryable failures."""
        timeout = self.settings.dispatch_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.dispatcher.send(
                    notification.recipient,
                    notification.template_kind,
                    dict(notification.payload or {}),
                    recipient_name=notification.recipient_name,
                    subject=notification.subject,
                ),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning(
                "Dispatch timed out: id=%s, timeout=%ss",
                notification.id,
                timeout,
            )
            return RetryableFailure(f"Dispatch timed out after {timeout}s")
        except Exception as e:
            logger.exception("Dispatcher raised: id=%s", notification.id)
            return RetryableFailure(f"Unexpected dispatcher error: {e!r}")

    @staticmethod
    def _count(
        result: DispatchTickResult,
        notification: Notification,
        outcome: DispatchOutcome,
    ) -> None:
        if isinstance(outcome, Success):
            result.sent += 1
        elif isinstance(outcome, PermanentFailure) or notification.is_terminal:
            result.failed += 1
        else:
            result.retried += 1


async def dispatch_due_notifications(
    session: AsyncSession,
    clock: Clock,
    settings: NotificationSettings,
    dispatcher: Dispatcher,
) -> dict[str, Any]:
    """Plain-function form of one dispatch tick."""
    scheduler = RetryScheduler(session, clock, settings, dispatcher)
    result = await scheduler.process_due()
    return result.as_dict()
