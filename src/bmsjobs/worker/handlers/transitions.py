"""Status transition handler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bmsjobs.services.lifecycle import apply_status_transitions

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.worker.handlers import JobContext


async def status_transitions_handler(
    session: AsyncSession,
    context: JobContext,
) -> dict[str, Any]:
    return await apply_status_transitions(session, context.clock, context.settings)
