"""Post-dated cheques collected from tenants."""

from __future__ import annotations

from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from decimal import Decimal  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, Enum, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import Base, ChequeStatus, TimestampTZ, UUIDPrimaryKey
from bmsjobs.db.models.ledger import ReminderTrackedMixin


class PostDatedCheque(ReminderTrackedMixin, Base):
    """A post-dated cheque (PDC) held until its cheque date."""

    __tablename__ = "post_dated_cheques"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    cheque_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    cheque_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[ChequeStatus] = mapped_column(
        Enum(ChequeStatus, name="cheque_status", native_enum=False, length=20),
        nullable=False,
        default=ChequeStatus.RECEIVED,
    )

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_post_dated_cheques_status_cheque_date", "status", "cheque_date"),)
