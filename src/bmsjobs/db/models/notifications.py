"""Outbound notification queue.

Each row is one email to one recipient. Rows move PENDING -> SENT, or
PENDING -> PENDING (retry_count + 1, later next_retry_at) -> ... -> FAILED.
SENT and FAILED rows are never modified again and are purged after the
retention window.
"""

from __future__ import annotations

import uuid
from datetime import datetime  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from typing import Any

from sqlalchemy import Enum, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import (
    Base,
    JSONDocument,
    NotificationStatus,
    OptionalTimestampTZ,
    TERMINAL_NOTIFICATION_STATUSES,
    TemplateKind,
    TimestampTZ,
    UTCDateTime,
    UUIDPrimaryKey,
)


class Notification(Base):
    """A queued transactional email."""

    __tablename__ = "notifications"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    template_kind: Mapped[TemplateKind] = mapped_column(
        Enum(TemplateKind, name="template_kind", native_enum=False, length=50),
        nullable=False,
    )
    # Explicit subject line; the template's subject is used when absent
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Opaque template variables handed to the dispatcher
    payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument(), nullable=False, default=dict)

    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus, name="notification_status", native_enum=False, length=20),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    retry_count: Mapped[int] = mapped_column(default=0, nullable=False)
    next_retry_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_attempt_at: Mapped[OptionalTimestampTZ]
    sent_at: Mapped[OptionalTimestampTZ]
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Source entity, for tracing a reminder back to the lease/document/etc.
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    __table_args__ = (
        # Dispatch query: due pending rows, oldest first
        Index("ix_notifications_status_next_retry_at", "status", "next_retry_at", "created_at"),
        # Retention sweep
        Index("ix_notifications_created_at", "created_at"),
        Index("ix_notifications_entity", "entity_type", "entity_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_NOTIFICATION_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Notification {self.id} {self.template_kind.value} "
            f"status={self.status.value} retry_count={self.retry_count}>"
        )
