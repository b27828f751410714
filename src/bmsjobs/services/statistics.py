"""Periodic notification counters.

Emits pending/sent/failed counts as one structured log record for the
metrics pipeline, and a warning when the backlog or the failure count
reaches its threshold. Advisory only: nothing is retried or changed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bmsjobs.db.models.base import NotificationStatus
from bmsjobs.services.notification_store import NotificationStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import NotificationSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationStatistics:
    pending: int
    sent: int
    failed: int
    backlog_warning: bool
    failure_warning: bool

    @property
    def total(self) -> int:
        return self.pending + self.sent + self.failed

    def as_dict(self) -> dict[str, Any]:
        return {
            "pending": self.pending,
            "sent": self.sent,
            "failed": self.failed,
            "total": self.total,
            "backlog_warning": self.backlog_warning,
            "failure_warning": self.failure_warning,
        }


async def collect_notification_statistics(
    session: AsyncSession,
    clock: Clock,
    settings: NotificationSettings,
) -> dict[str, Any]:
    """Count notifications by status and log threshold warnings."""
    counts = await NotificationStore(session, clock, settings).count_by_status()
    pending = counts[NotificationStatus.PENDING]
    failed = counts[NotificationStatus.FAILED]

    stats = NotificationStatistics(
        pending=pending,
        sent=counts[NotificationStatus.SENT],
        failed=failed,
        backlog_warning=pending >= settings.pending_warning_threshold,
        failure_warning=failed >= settings.failed_warning_threshold,
    )

    logger.info(
        "Notification statistics: pending=%d, sent=%d, failed=%d",
        stats.pending,
        stats.sent,
        stats.failed,
        extra={"notification_stats": stats.as_dict()},
    )
    if stats.backlog_warning:
        logger.warning(
            "Notification backlog high: pending=%d, threshold=%d",
            pending,
            settings.pending_warning_threshold,
        )
    if stats.failure_warning:
        logger.warning(
            "Notification failures high: failed=%d, threshold=%d",
            failed,
            settings.failed_warning_threshold,
        )
    return stats.as_dict()
