"""Dispatch handler: sends due notifications through the dispatcher."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bmsjobs.services.retry import dispatch_due_notifications

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.worker.handlers import JobContext


async def dispatch_notifications_handler(
    session: AsyncSession,
    context: JobContext,
) -> dict[str, Any]:
    return await dispatch_due_notifications(
        session,
        context.clock,
        context.settings.notifications,
        context.dispatcher,
    )
