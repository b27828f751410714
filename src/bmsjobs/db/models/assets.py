"""Building assets with manufacturer warranties."""

from __future__ import annotations

from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Date, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import AssetStatus, Base, TimestampTZ, UUIDPrimaryKey
from bmsjobs.db.models.ledger import ReminderTrackedMixin


class Asset(ReminderTrackedMixin, Base):
    """An asset (chiller, lift, generator) tracked for warranty expiry."""

    __tablename__ = "assets"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    asset_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    property_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Warranty provider contact
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    warranty_expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[AssetStatus] = mapped_column(
        Enum(AssetStatus, name="asset_status", native_enum=False, length=20),
        nullable=False,
        default=AssetStatus.ACTIVE,
    )

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_assets_status_warranty_expiry_date", "status", "warranty_expiry_date"),)
