"""Date-driven status transitions for leases, cheques and compliance schedules.

Each entity type has a pure function next_*_status(status, date, today, ...)
that computes the target status from the calendar alone. The engine loads
candidates page by page, applies the function and writes only when the
target differs, so a second run over unchanged data writes nothing.

Transitions are monotonic: the engine can only move an entity forward
along VALID_TRANSITIONS; user-driven statuses are never touched.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm.exc import StaleDataError

from bmsjobs.db.models.base import ChequeStatus, ComplianceStatus, LeaseStatus
from bmsjobs.db.models.cheques import PostDatedCheque
from bmsjobs.db.models.compliance import ComplianceSchedule
from bmsjobs.db.models.leases import Lease
from bmsjobs.services.repositories import EntityRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import Settings, TransitionSettings

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: dict[enum.Enum, frozenset[enum.Enum]] = {
    LeaseStatus.ACTIVE: frozenset({LeaseStatus.EXPIRING_SOON, LeaseStatus.EXPIRED}),
    LeaseStatus.EXPIRING_SOON: frozenset({LeaseStatus.EXPIRED}),
    ChequeStatus.RECEIVED: frozenset({ChequeStatus.DUE}),
    ComplianceStatus.UPCOMING: frozenset({ComplianceStatus.DUE, ComplianceStatus.OVERDUE}),
    ComplianceStatus.DUE: frozenset({ComplianceStatus.OVERDUE}),
}


class InvalidTransitionError(Exception):
    """Raised when a transition would move a status backwards or sideways."""

    def __init__(self, from_state: enum.Enum, to_state: enum.Enum) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Cannot transition from {from_state.value} to {to_state.value}")


def can_transition(from_state: enum.Enum, to_state: enum.Enum) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


# =============================================================================
# Pure transition functions
# =============================================================================


def next_lease_status(
    status: LeaseStatus,
    end_date: date,
    today: date,
    horizon_days: int = 60,
) -> LeaseStatus:
    """ACTIVE -> EXPIRING_SOON within the horizon; ACTIVE/EXPIRING_SOON -> EXPIRED once ended."""
    if status not in (LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON):
        return status
    if end_date < today:
        return LeaseStatus.EXPIRED
    if status == LeaseStatus.ACTIVE and end_date <= today + timedelta(days=horizon_days):
        return LeaseStatus.EXPIRING_SOON
    return status


def next_cheque_status(
    status: ChequeStatus,
    cheque_date: date,
    today: date,
    window_days: int = 7,
) -> ChequeStatus:
    """RECEIVED -> DUE when the cheque date is between today and today + window."""
    if status == ChequeStatus.RECEIVED and today <= cheque_date <= today + timedelta(
        days=window_days
    ):
        return ChequeStatus.DUE
    return status


def next_compliance_status(
    status: ComplianceStatus,
    due_date: date,
    today: date,
    window_days: int = 30,
) -> ComplianceStatus:
    """UPCOMING -> DUE within the window; UPCOMING/DUE -> OVERDUE once past due."""
    if status not in (ComplianceStatus.UPCOMING, ComplianceStatus.DUE):
        return status
    if due_date < today:
        return ComplianceStatus.OVERDUE
    if status == ComplianceStatus.UPCOMING and due_date <= today + timedelta(days=window_days):
        return ComplianceStatus.DUE
    return status


# =============================================================================
# Engine
# =============================================================================


@dataclass(frozen=True, slots=True)
class LifecycleType:
    """How the engine reads and advances one entity type."""

    name: str
    model: type[Any]
    date_attr: str
    candidate_statuses: tuple[enum.Enum, ...]
    horizon: Callable[[TransitionSettings], int]
    next_status: Callable[[Any, date, date, int], Any]


LIFECYCLE_TYPES: tuple[LifecycleType, ...] = (
    LifecycleType(
        name="lease",
        model=Lease,
        date_attr="end_date",
        candidate_statuses=(LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON),
        horizon=lambda s: s.lease_expiring_horizon_days,
        next_status=next_lease_status,
    ),
    LifecycleType(
        name="cheque",
        model=PostDatedCheque,
        date_attr="cheque_date",
        candidate_statuses=(ChequeStatus.RECEIVED,),
        horizon=lambda s: s.cheque_due_window_days,
        next_status=next_cheque_status,
    ),
    LifecycleType(
        name="compliance",
        model=ComplianceSchedule,
        date_attr="due_date",
        candidate_statuses=(ComplianceStatus.UPCOMING, ComplianceStatus.DUE),
        horizon=lambda s: s.compliance_due_window_days,
        next_status=next_compliance_status,
    ),
)


@dataclass(slots=True)
class TransitionCounts:
    """Per-type counters for one transition tick."""

    examined: int = 0
    transitioned: int = 0
    errors: int = 0
    by_target: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "examined": self.examined,
            "transitioned": self.transitioned,
            "errors": self.errors,
            "by_target": dict(self.by_target),
        }


class StatusTransitionEngine:
    """Advances lifecycle statuses for every registered entity type."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        settings: Settings,
        lifecycle_types: tuple[LifecycleType, ...] = LIFECYCLE_TYPES,
    ) -> None:
        self.session = session
        self.clock = clock
        self.settings = settings
        self.lifecycle_types = lifecycle_types

    async def run(self) -> dict[str, dict[str, Any]]:
        """Run one transition pass over every entity type."""
        today = self.clock.today(self.settings.tzinfo)
        results: dict[str, dict[str, Any]] = {}
        for lifecycle_type in self.lifecycle_types:
            counts = await self.advance(lifecycle_type, today)
            results[lifecycle_type.name] = counts.as_dict()
            logger.info(
                "Status transitions complete: type=%s, examined=%d, transitioned=%d, errors=%d",
                lifecycle_type.name,
                counts.examined,
                counts.transitioned,
                counts.errors,
            )
        return results

    async def advance(self, lifecycle_type: LifecycleType, today: date) -> TransitionCounts:
        """Apply the transition function to every candidate of one type."""
        transitions = self.settings.transitions
        horizon = lifecycle_type.horizon(transitions)
        repo = EntityRepository(
            self.session,
            lifecycle_type.model,
            getattr(lifecycle_type.model, lifecycle_type.date_attr),
            lifecycle_type.model.status,
        )
        counts = TransitionCounts()
        cursor = None

        while True:
            page = await repo.find_lifecycle_candidates(
                lifecycle_type.candidate_statuses,
                today + timedelta(days=horizon),
                limit=transitions.batch_size,
                after=cursor,
            )
            if not page:
                break
            cursor = repo.cursor_of(page[-1])

            for entity in page:
                counts.examined += 1
                entity_id = entity.id
                current = entity.status
                try:
                    try:
                        target = await self.transition(lifecycle_type, entity, repo, today, horizon)
                    except StaleDataError:
                        # Another writer committed first; decide again from the current row
                        logger.info(
                            "Version moved during transition, retrying: type=%s, id=%s",
                            lifecycle_type.name,
                            entity_id,
                        )
                        await self.session.refresh(entity)
                        current = entity.status
                        target = await self.transition(lifecycle_type, entity, repo, today, horizon)
                except Exception:
                    counts.errors += 1
                    logger.exception(
                        "Failed to transition %s: id=%s, from=%s",
                        lifecycle_type.name,
                        entity_id,
                        current.value,
                    )
                    continue

                if target is None:
                    continue

                counts.transitioned += 1
                counts.by_target[target.value] = counts.by_target.get(target.value, 0) + 1
                logger.info(
                    "Status transition: type=%s, id=%s, %s -> %s",
                    lifecycle_type.name,
                    entity_id,
                    current.value,
                    target.value,
                )

            await self.session.commit()
            if len(page) < transitions.batch_size:
                break

        return counts

    async def transition(
        self,
        lifecycle_type: LifecycleType,
        entity: Any,
        repo: EntityRepository[Any],
        today: date,
        horizon: int,
    ) -> enum.Enum | None:
        """Write the calendar-derived status of one entity.

        Returns:
            The new status, or None when the entity is already where the
            calendar puts it.

        Raises:
            InvalidTransitionError: If the move is not a forward transition.
            StaleDataError: If the row's version changed since it was read.
        """
        current = entity.status
        target = lifecycle_type.next_status(
            current,
            getattr(entity, lifecycle_type.date_attr),
            today,
            horizon,
        )
        if target == current:
            return None
        if not can_transition(current, target):
            raise InvalidTransitionError(current, target)

        async with self.session.begin_nested():
            entity.status = target
            entity.updated_at = self.clock.now()
            await repo.save(entity)
        return target


async def apply_status_transitions(
    session: AsyncSession,
    clock: Clock,
    settings: Settings,
) -> dict[str, Any]:
    """Plain-function form of one status-transition tick."""
    engine = StatusTransitionEngine(session, clock, settings)
    return await engine.run()
