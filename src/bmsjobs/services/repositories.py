"""Date-driven queries over monitored entities.

One EntityRepository per monitored type, configured with the model, its
date column and its status column. Results are ordered by (date, id) and
paged with a keyset cursor so a scan makes progress even when some rows in
a page are skipped or fail.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import and_, or_, select

if TYPE_CHECKING:
    import enum
    import uuid
    from collections.abc import Collection

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

EntityT = TypeVar("EntityT")

Cursor = tuple[date, "uuid.UUID"]


@dataclass(frozen=True, slots=True)
class DateWindow:
    """Inclusive calendar date range."""

    start: date
    end: date

    @classmethod
    def for_threshold(cls, today: date, days: int, catch_up_days: int = 1) -> DateWindow:
        """Due dates that cross a `days` threshold on `today`.

        With catch_up_days=1 this is exactly today + days; wider values also
        cover thresholds crossed during missed runs, never reaching past today.
        """
        end = today + timedelta(days=days)
        start = max(today, end - timedelta(days=catch_up_days - 1))
        return cls(start=start, end=end)


class EntityRepository(Generic[EntityT]):
    """Persistence contract the engines need from the CRUD layer."""

    def __init__(
        self,
        session: AsyncSession,
        model: type[EntityT],
        date_column: InstrumentedAttribute[Any],
        status_column: InstrumentedAttribute[Any],
    ) -> None:
        self.session = session
        self.model = model
        self.date_column = date_column
        self.status_column = status_column
        self.id_column: InstrumentedAttribute[Any] = model.id  # type: ignore[attr-defined]

    async def find_active_approaching_threshold(
        self,
        window: DateWindow,
        active_statuses: Collection[enum.Enum],
        limit: int,
        after: Cursor | None = None,
    ) -> list[EntityT]:
        """Entities in an active status whose date falls inside `window`."""
        stmt = select(self.model).where(
            self.status_column.in_(list(active_statuses)),
            self.date_column.is_not(None),
            self.date_column >= window.start,
            self.date_column <= window.end,
        )
        return await self._page(stmt, limit, after)

    async def find_lifecycle_candidates(
        self,
        statuses: Collection[enum.Enum],
        date_cutoff: date,
        limit: int,
        after: Cursor | None = None,
        *,
        inclusive: bool = True,
    ) -> list[EntityT]:
        """Entities in one of `statuses` whose date is on/before `date_cutoff`."""
        date_condition = (
            self.date_column <= date_cutoff if inclusive else self.date_column < date_cutoff
        )
        stmt = select(self.model).where(
            self.status_column.in_(list(statuses)),
            self.date_column.is_not(None),
            date_condition,
        )
        return await self._page(stmt, limit, after)

    async def save(self, entity: EntityT) -> None:
        """Flush pending changes of `entity` (version-checked)."""
        self.session.add(entity)
        await self.session.flush()

    def cursor_of(self, entity: EntityT) -> Cursor:
        return (getattr(entity, self.date_column.key), getattr(entity, "id"))

    async def _page(self, stmt: Any, limit: int, after: Cursor | None) -> list[EntityT]:
        if after is not None:
            after_date, after_id = after
            stmt = stmt.where(
                or_(
                    self.date_column > after_date,
                    and_(self.date_column == after_date, self.id_column > after_id),
                )
            )
        stmt = stmt.order_by(self.date_column, self.id_column).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
