"""Recurring compliance obligations (inspections, certificates, permits)."""

from __future__ import annotations

from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import Base, ComplianceStatus, TimestampTZ, UUIDPrimaryKey
from bmsjobs.db.models.ledger import ReminderTrackedMixin


class ComplianceSchedule(ReminderTrackedMixin, Base):
    """One scheduled occurrence of a compliance requirement for a property."""

    __tablename__ = "compliance_schedules"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    schedule_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    requirement_name: Mapped[str] = mapped_column(String(255), nullable=False)
    property_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ComplianceStatus] = mapped_column(
        Enum(ComplianceStatus, name="compliance_status", native_enum=False, length=20),
        nullable=False,
        default=ComplianceStatus.UPCOMING,
    )

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_compliance_schedules_status_due_date", "status", "due_date"),)
