"""Job handlers.

Every handler has the signature
    async def handler(session: AsyncSession, context: JobContext) -> dict
and delegates to an engine in bmsjobs.services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import Settings
    from bmsjobs.services.dispatcher import Dispatcher


@dataclass(frozen=True, slots=True)
class JobContext:
    """Collaborators shared by every tick."""

    clock: Clock
    settings: Settings
    dispatcher: Dispatcher
