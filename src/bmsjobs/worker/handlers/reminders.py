"""Reminder scan handler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bmsjobs.services.reminders import scan_reminders

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.worker.handlers import JobContext


async def reminder_scan_handler(
    session: AsyncSession,
    context: JobContext,
) -> dict[str, Any]:
    return await scan_reminders(session, context.clock, context.settings)
