"""Notification statistics handler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bmsjobs.services.statistics import collect_notification_statistics

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.worker.handlers import JobContext


async def notification_statistics_handler(
    session: AsyncSession,
    context: JobContext,
) -> dict[str, Any]:
    return await collect_notification_statistics(
        session,
        context.clock,
        context.settings.notifications,
    )
