"""Recipient resolution for threshold reminders."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from bmsjobs.db.models.staff import StaffMember

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def hash_recipient(email: str) -> str:
    """Hash an email address for logging.

    Raw addresses never reach the logs; the hash allows correlation.
    """
    return hashlib.sha256(email.lower().strip().encode()).hexdigest()


@dataclass(frozen=True, slots=True)
class Recipient:
    """Resolved email destination."""

    email: str
    name: str | None = None


class RecipientDirectory:
    """Looks up staff members holding manager roles.

    The manager list is loaded once per directory instance; a reminder scan
    creates one directory so every entity in the scan sees the same list.
    """

    def __init__(self, session: AsyncSession, manager_roles: Sequence[str]) -> None:
        self.session = session
        self.manager_roles = list(manager_roles)
        self._managers: list[Recipient] | None = None

    async def managers(self) -> list[Recipient]:
        if self._managers is None:
            stmt = (
                select(StaffMember)
                .where(
                    StaffMember.role.in_(self.manager_roles),
                    StaffMember.is_active.is_(True),
                )
                .order_by(StaffMember.email)
            )
            result = await self.session.execute(stmt)
            self._managers = [
                Recipient(email=member.email, name=member.full_name)
                for member in result.scalars().all()
            ]
            if not self._managers:
                logger.warning("No active staff with roles %s", self.manager_roles)
        return self._managers
