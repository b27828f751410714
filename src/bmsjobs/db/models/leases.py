"""Lease records watched for expiry."""

from __future__ import annotations

from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import Base, LeaseStatus, TimestampTZ, UUIDPrimaryKey
from bmsjobs.db.models.ledger import ReminderTrackedMixin


class Lease(ReminderTrackedMixin, Base):
    """A tenant lease.

    Only `status` and `reminder_ledger` are written by the jobs; everything
    else belongs to the leasing screens.
    """

    __tablename__ = "leases"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    lease_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    tenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    property_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[LeaseStatus] = mapped_column(
        Enum(LeaseStatus, name="lease_status", native_enum=False, length=20),
        nullable=False,
        default=LeaseStatus.ACTIVE,
    )

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_leases_status_end_date", "status", "end_date"),)
