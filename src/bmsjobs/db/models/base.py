"""Base model definitions and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Portable column types (UUID, UTC timestamps, JSON)
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from sqlalchemy import JSON, DateTime, MetaData, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry
from sqlalchemy.types import TypeDecorator, TypeEngine

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime stored as UTC.

    PostgreSQL keeps the offset; SQLite hands back naive values, which are
    UTC by construction since every bound value is converted first.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            msg = "Naive datetime cannot be stored; attach a timezone first"
            raise ValueError(msg)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class JSONDocument(TypeDecorator[Any]):
    """JSONB on PostgreSQL, generic JSON elsewhere."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


# UUID primary key generated client-side so it is known before flush
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4),
]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(UTCDateTime(), server_default=func.now(), nullable=False),
]

# Optional timestamp with timezone
OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(UTCDateTime(), nullable=True),
]

ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]


class Base(DeclarativeBase):
    """Declarative base for all models."""

    metadata = metadata
    registry = type_registry


# =============================================================================
# Common Enums
# =============================================================================


class NotificationStatus(enum.Enum):
    """Delivery status of a queued notification.

    States:
        PENDING: Waiting for its first attempt or for a retry (see next_retry_at)
        SENT: Accepted by the dispatcher (terminal)
        FAILED: Retries exhausted or permanently rejected (terminal)
    """

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


TERMINAL_NOTIFICATION_STATUSES = (NotificationStatus.SENT, NotificationStatus.FAILED)


class TemplateKind(str, enum.Enum):
    """Email template used to render a notification."""

    LEASE_EXPIRY_REMINDER = "lease_expiry_reminder"
    DOCUMENT_EXPIRY_REMINDER = "document_expiry_reminder"
    WARRANTY_EXPIRY_REMINDER = "warranty_expiry_reminder"
    COMPLIANCE_DUE_REMINDER = "compliance_due_reminder"
    CHEQUE_DEPOSIT_REMINDER = "cheque_deposit_reminder"
    PASSWORD_RESET = "password_reset"
    INVOICE_GENERATED = "invoice_generated"
    PAYMENT_RECEIVED = "payment_received"


class LeaseStatus(enum.Enum):
    """Lease lifecycle.

    ACTIVE -> EXPIRING_SOON -> EXPIRED is driven by the calendar;
    PENDING and TERMINATED are set by users only.
    """

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class ChequeStatus(enum.Enum):
    """Post-dated cheque lifecycle.

    RECEIVED -> DUE is driven by the calendar; every other move
    (deposit, clearing, bounce, cancellation, replacement) is a user action.
    """

    RECEIVED = "received"
    DUE = "due"
    DEPOSITED = "deposited"
    CLEARED = "cleared"
    BOUNCED = "bounced"
    CANCELLED = "cancelled"
    WITHDRAWN = "withdrawn"
    REPLACED = "replaced"


class ComplianceStatus(enum.Enum):
    """Compliance schedule lifecycle.

    UPCOMING -> DUE -> OVERDUE is driven by the calendar;
    COMPLETED and EXEMPT are set by users only.
    """

    UPCOMING = "upcoming"
    DUE = "due"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    EXEMPT = "exempt"


class DocumentStatus(enum.Enum):
    """Document record state."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class AssetStatus(enum.Enum):
    """Asset operational state."""

    ACTIVE = "active"
    UNDER_MAINTENANCE = "under_maintenance"
    OUT_OF_SERVICE = "out_of_service"
    DISPOSED = "disposed"
