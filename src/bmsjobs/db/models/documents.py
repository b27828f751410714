"""Documents with an expiry date (trade licences, insurance, vendor certificates)."""

from __future__ import annotations

from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import Base, DocumentStatus, TimestampTZ, UUIDPrimaryKey
from bmsjobs.db.models.ledger import ReminderTrackedMixin


class Document(ReminderTrackedMixin, Base):
    """An uploaded document.

    `contact_email` is the owner of the document (typically a vendor) and
    receives the CONTACT reminders; managers receive the rest.
    """

    __tablename__ = "documents"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    document_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    # Display label of the owning record, e.g. "Vendor: Acme Cooling"
    owner_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, name="document_status", native_enum=False, length=20),
        nullable=False,
        default=DocumentStatus.ACTIVE,
    )

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_documents_status_expiry_date", "status", "expiry_date"),)
