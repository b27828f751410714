"""Staff members who receive manager reminders."""

from __future__ import annotations

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bmsjobs.db.models.base import Base, TimestampTZ, UUIDPrimaryKey


class StaffMember(Base):
    """A back-office user. Read-only for the jobs."""

    __tablename__ = "staff_members"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # e.g. SUPER_ADMIN, PROPERTY_MANAGER, FINANCE_MANAGER
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("ix_staff_members_role_active", "role", "is_active"),)
