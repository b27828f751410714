"""Retention sweep for the notification queue."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from bmsjobs.services.notification_store import NotificationStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import NotificationSettings

logger = logging.getLogger(__name__)


async def purge_expired_notifications(
    session: AsyncSession,
    clock: Clock,
    settings: NotificationSettings,
) -> dict[str, Any]:
    """Delete SENT/FAILED notifications older than the retention window.

    PENDING rows are kept whatever their age; they are still owed a send.
    """
    cutoff = clock.now() - timedelta(days=settings.retention_days)
    store = NotificationStore(session, clock, settings)
    purged = await store.purge_older_than(cutoff)
    await session.commit()

    if purged:
        logger.info(
            "Notification retention sweep: purged=%d, retention_days=%d",
            purged,
            settings.retention_days,
        )
    return {"purged": purged, "cutoff": cutoff.isoformat()}
