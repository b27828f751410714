"""Notification retention handler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bmsjobs.services.retention import purge_expired_notifications

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.worker.handlers import JobContext


async def notification_retention_handler(
    session: AsyncSession,
    context: JobContext,
) -> dict[str, Any]:
    return await purge_expired_notifications(
        session,
        context.clock,
        context.settings.notifications,
    )
