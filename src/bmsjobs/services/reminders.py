"""Threshold reminders, sent exactly once per entity and threshold.

For every monitored type and every configured ThresholdRule(days=T):

1. select entities in an active status whose due date falls in the window
   ending at today + T (see DateWindow.for_threshold)
2. skip entities whose ReminderLedger already holds the threshold key
3. in one savepoint: enqueue one notification per recipient and record the
   key in the ledger; the entity's version column makes the ledger write a
   compare-and-swap. A concurrent writer rolls the whole unit back, and the
   entity is reloaded and tried once more in the same scan

Ledger keys are never removed, even if the due date later moves.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect
from sqlalchemy.orm.exc import StaleDataError

from bmsjobs.core.config import RecipientClass
from bmsjobs.db.models.assets import Asset
from bmsjobs.db.models.base import (
    AssetStatus,
    ChequeStatus,
    ComplianceStatus,
    DocumentStatus,
    LeaseStatus,
    TemplateKind,
)
from bmsjobs.db.models.cheques import PostDatedCheque
from bmsjobs.db.models.compliance import ComplianceSchedule
from bmsjobs.db.models.documents import Document
from bmsjobs.db.models.leases import Lease
from bmsjobs.db.models.ledger import ReminderLedger
from bmsjobs.services.notification_store import NotificationStore
from bmsjobs.services.recipients import Recipient, RecipientDirectory
from bmsjobs.services.repositories import DateWindow, EntityRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from bmsjobs.core.clock import Clock
    from bmsjobs.core.config import ReminderSettings, Settings, ThresholdRule

logger = logging.getLogger(__name__)


# =============================================================================
# Monitored entity types
# =============================================================================


def _lease_payload(lease: Lease) -> dict[str, Any]:
    return {
        "lease_number": lease.lease_number,
        "tenant_name": lease.tenant_name,
        "property_name": lease.property_name,
        "unit_number": lease.unit_number,
    }


def _document_payload(document: Document) -> dict[str, Any]:
    return {
        "document_number": document.document_number,
        "title": document.title,
        "document_type": document.document_type,
        "owner_label": document.owner_label,
    }


def _asset_payload(asset: Asset) -> dict[str, Any]:
    return {
        "asset_number": asset.asset_number,
        "asset_name": asset.name,
        "property_name": asset.property_name,
    }


def _compliance_payload(schedule: ComplianceSchedule) -> dict[str, Any]:
    return {
        "schedule_number": schedule.schedule_number,
        "requirement_name": schedule.requirement_name,
        "property_name": schedule.property_name,
    }


def _cheque_payload(cheque: PostDatedCheque) -> dict[str, Any]:
    return {
        "cheque_number": cheque.cheque_number,
        "bank_name": cheque.bank_name,
        "amount": str(cheque.amount),
        "tenant_name": cheque.tenant_name,
    }


@dataclass(frozen=True, slots=True)
class MonitoredType:
    """How the reminder engine reads one entity type.

    Attributes:
        name: Entity type recorded on the notification (entity_type).
        model: ORM model.
        date_attr: Due-date attribute the thresholds count down to.
        active_statuses: Statuses in which reminders still make sense.
        template_kind: Email template for the reminder.
        rules: Threshold rules for this type, read from ReminderSettings.
        contact: The entity's own CONTACT recipient, if any.
        payload: Entity-specific template variables.
    """

    name: str
    model: type[Any]
    date_attr: str
    active_statuses: tuple[enum.Enum, ...]
    template_kind: TemplateKind
    rules: Callable[[ReminderSettings], list[ThresholdRule]]
    contact: Callable[[Any], Recipient | None]
    payload: Callable[[Any], dict[str, Any]]


def _contact(email_attr: str, name_attr: str | None = None) -> Callable[[Any], Recipient | None]:
    def resolve(entity: Any) -> Recipient | None:
        email = getattr(entity, email_attr)
        if not email:
            return None
        return Recipient(email=email, name=getattr(entity, name_attr) if name_attr else None)

    return resolve


MONITORED_TYPES: tuple[MonitoredType, ...] = (
    MonitoredType(
        name="lease",
        model=Lease,
        date_attr="end_date",
        active_statuses=(LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON),
        template_kind=TemplateKind.LEASE_EXPIRY_REMINDER,
        rules=lambda s: s.lease,
        contact=_contact("tenant_email", "tenant_name"),
        payload=_lease_payload,
    ),
    MonitoredType(
        name="document",
        model=Document,
        date_attr="expiry_date",
        active_statuses=(DocumentStatus.ACTIVE,),
        template_kind=TemplateKind.DOCUMENT_EXPIRY_REMINDER,
        rules=lambda s: s.document,
        contact=_contact("contact_email", "contact_name"),
        payload=_document_payload,
    ),
    MonitoredType(
        name="warranty",
        model=Asset,
        date_attr="warranty_expiry_date",
        active_statuses=(AssetStatus.ACTIVE,),
        template_kind=TemplateKind.WARRANTY_EXPIRY_REMINDER,
        rules=lambda s: s.warranty,
        contact=_contact("contact_email"),
        payload=_asset_payload,
    ),
    MonitoredType(
        name="compliance",
        model=ComplianceSchedule,
        date_attr="due_date",
        active_statuses=(ComplianceStatus.UPCOMING, ComplianceStatus.DUE),
        template_kind=TemplateKind.COMPLIANCE_DUE_REMINDER,
        rules=lambda s: s.compliance,
        contact=_contact("contact_email"),
        payload=_compliance_payload,
    ),
    MonitoredType(
        name="cheque",
        model=PostDatedCheque,
        date_attr="cheque_date",
        active_statuses=(ChequeStatus.RECEIVED, ChequeStatus.DUE),
        template_kind=TemplateKind.CHEQUE_DEPOSIT_REMINDER,
        rules=lambda s: s.cheque,
        contact=_contact("tenant_email", "tenant_name"),
        payload=_cheque_payload,
    ),
)


# =============================================================================
# Engine
# =============================================================================


@dataclass(slots=True)
class ThresholdScanCounts:
    """Counters for one (type, threshold) scan."""

    matched: int = 0
    reminded: int = 0
    already_notified: int = 0
    no_recipients: int = 0
    notifications: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "matched": self.matched,
            "reminded": self.reminded,
            "already_notified": self.already_notified,
            "no_recipients": self.no_recipients,
            "notifications": self.notifications,
            "errors": self.errors,
        }


class ReminderThresholdEngine:
    """Scans monitored entities and enqueues threshold reminders."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        settings: Settings,
        monitored_types: tuple[MonitoredType, ...] = MONITORED_TYPES,
    ) -> None:
        self.session = session
        self.clock = clock
        self.settings = settings
        self.monitored_types = monitored_types
        self.store = NotificationStore(session, clock, settings.notifications)
        self.directory = RecipientDirectory(session, settings.reminders.manager_roles)

    async def run(self) -> dict[str, dict[str, dict[str, int]]]:
        """Scan every type and threshold once.

        Returns:
            {type_name: {threshold_key: counters}}
        """
        today = self.clock.today(self.settings.tzinfo)
        results: dict[str, dict[str, dict[str, int]]] = {}
        for monitored in self.monitored_types:
            per_rule: dict[str, dict[str, int]] = {}
            for rule in monitored.rules(self.settings.reminders):
                counts = await self.scan_threshold(monitored, rule, today)
                per_rule[rule.key] = counts.as_dict()
                if counts.matched:
                    logger.info(
                        "Reminder scan: type=%s, threshold=%s, matched=%d, reminded=%d, "
                        "already_notified=%d, errors=%d",
                        monitored.name,
                        rule.key,
                        counts.matched,
                        counts.reminded,
                        counts.already_notified,
                        counts.errors,
                    )
            results[monitored.name] = per_rule
        return results

    async def scan_threshold(
        self,
        monitored: MonitoredType,
        rule: ThresholdRule,
        today: date,
    ) -> ThresholdScanCounts:
        """Remind every active entity crossing one threshold."""
        reminders = self.settings.reminders
        window = DateWindow.for_threshold(today, rule.days, reminders.catch_up_days)
        repo = EntityRepository(
            self.session,
            monitored.model,
            getattr(monitored.model, monitored.date_attr),
            monitored.model.status,
        )
        counts = ThresholdScanCounts()
        cursor = None

        while True:
            page = await repo.find_active_approaching_threshold(
                window,
                monitored.active_statuses,
                limit=reminders.scan_batch_size,
                after=cursor,
            )
            if not page:
                break
            cursor = repo.cursor_of(page[-1])

            for entity in page:
                counts.matched += 1
                entity_id = entity.id
                try:
                    sent = await self._remind_current(monitored, rule, entity, repo, today)
                except Exception:
                    counts.errors += 1
                    logger.exception(
                        "Failed to process reminder: type=%s, id=%s, threshold=%s",
                        monitored.name,
                        entity_id,
                        rule.key,
                    )
                    continue

                if sent is None:
                    counts.already_notified += 1
                elif sent == 0:
                    counts.no_recipients += 1
                else:
                    counts.reminded += 1
                    counts.notifications += sent

            await self.session.commit()
            if len(page) < reminders.scan_batch_size:
                break

        return counts

    async def remind(
        self,
        monitored: MonitoredType,
        rule: ThresholdRule,
        entity: Any,
        repo: EntityRepository[Any],
        today: date,
    ) -> int | None:
        """Enqueue the reminder for one entity and record it in the ledger.

        Returns:
            None if the threshold was already recorded, otherwise the number
            of notifications enqueued (0 when no recipient could be resolved,
            in which case the ledger is left untouched).
        """
        ledger: ReminderLedger = entity.reminder_ledger or ReminderLedger()
        if ledger.is_marked(rule.key):
            return None

        recipients = await self._recipients(monitored, rule, entity)
        if not recipients:
            logger.warning(
                "No recipients for reminder: type=%s, id=%s, threshold=%s",
                monitored.name,
                entity.id,
                rule.key,
            )
            return 0

        due_date: date = getattr(entity, monitored.date_attr)
        payload = {
            **monitored.payload(entity),
            "due_date": due_date.isoformat(),
            "days_remaining": (due_date - today).days,
            "threshold_days": rule.days,
        }

        async with self.session.begin_nested():
            for recipient in recipients:
                await self.store.enqueue(
                    recipient=recipient.email,
                    recipient_name=recipient.name,
                    template_kind=monitored.template_kind,
                    payload=payload,
                    entity_type=monitored.name,
                    entity_id=entity.id,
                )
            now = self.clock.now()
            entity.reminder_ledger = ledger.mark(rule.key, now)
            entity.updated_at = now
            await repo.save(entity)

        return len(recipients)

    async def _remind_current(
        self,
        monitored: MonitoredType,
        rule: ThresholdRule,
        entity: Any,
        repo: EntityRepository[Any],
        today: date,
    ) -> int | None:
        """remind(), repeated once against the current row if another writer got there first."""
        try:
            return await self.remind(monitored, rule, entity, repo, today)
        except StaleDataError:
            entity_id = inspect(entity).identity[0]
            logger.info(
                "Version moved during reminder, retrying: type=%s, id=%s, threshold=%s",
                monitored.name,
                entity_id,
                rule.key,
            )
            await self.session.refresh(entity)
            return await self.remind(monitored, rule, entity, repo, today)

    async def _recipients(
        self,
        monitored: MonitoredType,
        rule: ThresholdRule,
        entity: Any,
    ) -> list[Recipient]:
        recipients: list[Recipient] = []
        seen: set[str] = set()
        for recipient_class in rule.recipients:
            if recipient_class == RecipientClass.CONTACT:
                contact = monitored.contact(entity)
                candidates = [contact] if contact else []
            else:
                candidates = await self.directory.managers()
            for candidate in candidates:
                key = candidate.email.lower()
                if key not in seen:
                    seen.add(key)
                    recipients.append(candidate)
        return recipients


async def scan_reminders(
    session: AsyncSession,
    clock: Clock,
    settings: Settings,
) -> dict[str, Any]:
    """Plain-function form of one reminder-scan tick."""
    engine = ReminderThresholdEngine(session, clock, settings)
    return await engine.run()
