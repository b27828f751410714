"""Reminder ledger embedded in every monitored entity.

The ledger records which reminder thresholds already fired for an entity,
keyed by threshold identifier (e.g. "30d"). A key is added at most once and
never removed, which is what keeps reminder dispatch idempotent across ticks.

Stored as a JSON object {threshold_key: notified_at_iso8601} in the
entity's own row, next to a version column used for optimistic concurrency.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Integer
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from bmsjobs.db.models.base import JSONDocument


class LedgerKeyAlreadySetError(Exception):
    """Raised when marking a threshold that is already in the ledger."""


@dataclass(frozen=True, slots=True)
class ReminderLedger:
    """Immutable set of fired thresholds with the instant each one fired."""

    entries: tuple[tuple[str, datetime], ...] = ()

    def is_marked(self, key: str) -> bool:
        return any(k == key for k, _ in self.entries)

    def marked_at(self, key: str) -> datetime | None:
        for k, at in self.entries:
            if k == key:
                return at
        return None

    def mark(self, key: str, at: datetime) -> ReminderLedger:
        """Return a new ledger with `key` recorded.

        Raises:
            LedgerKeyAlreadySetError: If the key is already recorded.
        """
        if self.is_marked(key):
            raise LedgerKeyAlreadySetError(key)
        return ReminderLedger(tuple(sorted((*self.entries, (key, at)))))

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(k for k, _ in self.entries)

    def to_json(self) -> dict[str, str]:
        return {k: at.isoformat() for k, at in self.entries}

    @classmethod
    def from_json(cls, data: dict[str, str] | None) -> ReminderLedger:
        if not data:
            return cls()
        return cls(tuple(sorted((k, datetime.fromisoformat(v)) for k, v in data.items())))


class ReminderLedgerType(TypeDecorator[ReminderLedger]):
    """Maps ReminderLedger to a JSON column."""

    impl = JSONDocument
    cache_ok = True

    def process_bind_param(
        self, value: ReminderLedger | None, dialect: Dialect
    ) -> dict[str, str]:
        if value is None:
            return {}
        return value.to_json()

    def process_result_value(self, value: Any, dialect: Dialect) -> ReminderLedger:
        return ReminderLedger.from_json(value)


class ReminderTrackedMixin:
    """Columns shared by every entity the reminder engine monitors.

    Concrete models must also declare
    ``__mapper_args__ = {"version_id_col": version}`` so that concurrent
    ledger or status updates fail instead of overwriting each other.
    """

    reminder_ledger: Mapped[ReminderLedger] = mapped_column(
        ReminderLedgerType(),
        default=lambda: ReminderLedger(),
        nullable=False,
    )
