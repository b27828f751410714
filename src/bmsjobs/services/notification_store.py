"""Persisted queue of outbound notifications.

The store owns every status change of a Notification row:
- enqueue: new PENDING row, retry_count 0, next_retry_at = now
- fetch_due_batch: due rows oldest-first, bounded by `limit`
- record_outcome: SENT, or retry with backoff, or FAILED
- purge_older_than: delete terminal rows past the retention window

It performs no de-duplication; reminder idempotence is the ledger's job.

Usage:
    store = NotificationStore(session, clock, settings.notifications)
    await store.enqueue(
        recipient="tenant@example.com",
        template_kind=TemplateKind.INVOICE_GENERATED,
        payload={"invoice_number": "INV-2026-0042"},
    )
    await session.commit()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from bmsjobs.db.models.base import (
    TERMINAL_NOTIFICATION_STATUSES,
    NotificationStatus,
    TemplateKind,
)
from bmsjobs.db.models.notifications import Notification
from bmsjobs.services.outcomes import DispatchOutcome, PermanentFailure, Success
from bmsjobs.services.recipients import hash_recipient

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import NotificationSettings

logger = logging.getLogger(__name__)

# Error text is truncated before it is stored
MAX_ERROR_LENGTH = 2000


class NotificationStoreError(Exception):
    """Base exception for notification store operations."""

    pass


class NotificationNotFoundError(NotificationStoreError):
    """Raised when a notification cannot be found."""

    pass


class NotificationAlreadyFinalError(NotificationStoreError):
    """Raised when recording an outcome for a SENT or FAILED notification."""

    pass


class NotificationStore:
    """Notification queue backed by the notifications table.

    Attributes:
        session: SQLAlchemy async session for database operations.
        clock: Source of "now" for every timestamp the store writes.
        settings: Retry cap and backoff table.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        settings: NotificationSettings,
    ) -> None:
        self.session = session
        self.clock = clock
        self.settings = settings

    async def enqueue(
        self,
        recipient: str,
        template_kind: TemplateKind,
        payload: dict[str, Any] | None = None,
        *,
        recipient_name: str | None = None,
        subject: str | None = None,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
    ) -> Notification:
        """Insert a new PENDING notification, eligible immediately.

        Args:
            recipient: Email address of the recipient.
            template_kind: Template used to render the email.
            payload: Template variables (must be JSON-serializable).
            recipient_name: Display name for the greeting.
            subject: Subject override; the template subject is used otherwise.
            entity_type: Source entity type (e.g. "lease"), for tracing.
            entity_id: Source entity id, for tracing.

        Returns:
            The flushed Notification row.

        Raises:
            NotificationStoreError: If the insert fails.
        """
        now = self.clock.now()
        notification = Notification(
            recipient=recipient,
            recipient_name=recipient_name,
            template_kind=template_kind,
            subject=subject,
            payload=dict(payload or {}),
            status=NotificationStatus.PENDING,
            retry_count=0,
            next_retry_at=now,
            created_at=now,
            updated_at=now,
            entity_type=entity_type,
            entity_id=entity_id,
        )

        try:
            self.session.add(notification)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to enqueue notification: %s", str(e))
            raise NotificationStoreError(f"Failed to enqueue notification: {e}") from e

        logger.info(
            "Notification queued: id=%s, template=%s, recipient_hash=%s, entity=%s/%s",
            notification.id,
            template_kind.value,
            hash_recipient(recipient)[:16],
            entity_type,
            entity_id,
        )
        return notification

    async def get(self, notification_id: uuid.UUID) -> Notification:
        """Load one notification.

        Raises:
            NotificationNotFoundError: If no row has this id.
        """
        notification = await self.session.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(f"Notification not found: {notification_id}")
        return notification

    async def fetch_due_batch(
        self,
        limit: int,
        status: NotificationStatus = NotificationStatus.PENDING,
    ) -> list[Notification]:
        """Return at most `limit` notifications with `status` due now.

        Ordered by next_retry_at, then created_at, then id, so a backlog
        drains oldest-eligible-first and the order is stable across ticks.
        Rows locked by another worker are skipped on PostgreSQL.

        Raises:
            NotificationStoreError: If the query fails.
        """
        now = self.clock.now()
        stmt = (
            select(Notification)
            .where(
                Notification.status == status,
                Notification.next_retry_at <= now,
            )
            .order_by(
                Notification.next_retry_at,
                Notification.created_at,
                Notification.id,
            )
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch due notifications: %s", str(e))
            raise NotificationStoreError(f"Failed to fetch due notifications: {e}") from e
        return list(result.scalars().all())

    async def record_outcome(
        self,
        notification: Notification | uuid.UUID,
        outcome: DispatchOutcome,
    ) -> Notification:
        """Apply a dispatch outcome to a PENDING notification.

        - Success: status SENT.
        - RetryableFailure: retry_count + 1; FAILED once it reaches
          max_retry_count, otherwise next_retry_at = now + backoff(retry_count).
        - PermanentFailure: retry_count + 1 (capped), status FAILED.

        Raises:
            NotificationNotFoundError: If the notification does not exist.
            NotificationAlreadyFinalError: If it is already SENT or FAILED.
            NotificationStoreError: If the update fails.
        """
        if not isinstance(notification, Notification):
            notification = await self.get(notification)

        if notification.is_terminal:
            raise NotificationAlreadyFinalError(
                f"Notification {notification.id} is already {notification.status.value}"
            )

        now = self.clock.now()
        notification.last_attempt_at = now
        notification.updated_at = now
        max_retries = self.settings.max_retry_count

        if isinstance(outcome, Success):
            notification.status = NotificationStatus.SENT
            notification.sent_at = now
            notification.last_error = None
            logger.info(
                "Notification sent: id=%s, template=%s, attempt=%d",
                notification.id,
                notification.template_kind.value,
                notification.retry_count + 1,
            )
        else:
            notification.last_error = outcome.reason[:MAX_ERROR_LENGTH]
            notification.retry_count = min(notification.retry_count + 1, max_retries)

            if isinstance(outcome, PermanentFailure) or notification.retry_count >= max_retries:
                notification.status = NotificationStatus.FAILED
                logger.warning(
                    "Notification failed permanently: id=%s, template=%s, retry_count=%d, "
                    "permanent=%s, error=%s",
                    notification.id,
                    notification.template_kind.value,
                    notification.retry_count,
                    isinstance(outcome, PermanentFailure),
                    outcome.reason,
                )
            else:
                delay = self.settings.backoff(notification.retry_count)
                notification.next_retry_at = now + delay
                logger.info(
                    "Notification scheduled for retry: id=%s, retry_count=%d/%d, "
                    "next_retry_at=%s, error=%s",
                    notification.id,
                    notification.retry_count,
                    max_retries,
                    notification.next_retry_at.isoformat(),
                    outcome.reason,
                )

        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to record outcome for %s: %s", notification.id, str(e))
            raise NotificationStoreError(f"Failed to record outcome: {e}") from e
        return notification

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete SENT and FAILED notifications created before `cutoff`.

        Returns:
            Number of rows deleted.

        Raises:
            NotificationStoreError: If the delete fails.
        """
        stmt = delete(Notification).where(
            Notification.status.in_(TERMINAL_NOTIFICATION_STATUSES),
            Notification.created_at < cutoff,
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to purge notifications: %s", str(e))
            raise NotificationStoreError(f"Failed to purge notifications: {e}") from e

        count = result.rowcount or 0
        logger.info("Purged %d notifications created before %s", count, cutoff.isoformat())
        return count

    async def count_by_status(self) -> dict[NotificationStatus, int]:
        """Count notifications per status (every status present, zero if none)."""
        stmt = select(Notification.status, func.count()).group_by(Notification.status)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to count notifications: %s", str(e))
            raise NotificationStoreError(f"Failed to count notifications: {e}") from e

        counts = dict.fromkeys(NotificationStatus, 0)
        for status, count in result.all():
            counts[status] = count
        return counts
