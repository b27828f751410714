"""Test data factories.

Each factory builds an unsaved model with valid defaults; the due date is
given relative to `today` so tests read in terms of thresholds. Callers add
the object to a session and commit.
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from itertools import count

from bmsjobs.db.models import (
    Asset,
    ComplianceSchedule,
    Document,
    Lease,
    PostDatedCheque,
    StaffMember,
)
from bmsjobs.db.models.base import (
    AssetStatus,
    ChequeStatus,
    ComplianceStatus,
    DocumentStatus,
    LeaseStatus,
)

_CREATED_AT = datetime(2025, 1, 1, tzinfo=UTC)
_sequence = count(1)


def _timestamps() -> dict:
    return {"created_at": _CREATED_AT, "updated_at": _CREATED_AT}


def create_lease(
    today: date,
    days_until_end: int = 30,
    status: LeaseStatus = LeaseStatus.ACTIVE,
    tenant_email: str | None = "tenant@example.com",
    tenant_name: str = "Aisha Rahman",
) -> Lease:
    """Create a lease ending `days_until_end` days after `today`.

    Args:
        today: Reference date.
        days_until_end: Offset of end_date from today (negative = already ended).
        status: Lease status.
        tenant_email: Tenant contact address, None for no contact.
        tenant_name: Tenant display name.
    """
    n = next(_sequence)
    return Lease(
        lease_number=f"LSE-2026-{n:04d}",
        tenant_name=tenant_name,
        tenant_email=tenant_email,
        property_name="Marina Heights",
        unit_number=f"{n:03d}",
        start_date=today - timedelta(days=365),
        end_date=today + timedelta(days=days_until_end),
        status=status,
        **_timestamps(),
    )


def create_cheque(
    today: date,
    days_until_date: int = 3,
    status: ChequeStatus = ChequeStatus.RECEIVED,
) -> PostDatedCheque:
    n = next(_sequence)
    return PostDatedCheque(
        cheque_number=f"{100000 + n}",
        bank_name="Emirates NBD",
        amount=Decimal("12500.00"),
        tenant_name="Omar Haddad",
        tenant_email="omar@example.com",
        cheque_date=today + timedelta(days=days_until_date),
        status=status,
        **_timestamps(),
    )


def create_compliance_schedule(
    today: date,
    days_until_due: int = 30,
    status: ComplianceStatus = ComplianceStatus.UPCOMING,
) -> ComplianceSchedule:
    n = next(_sequence)
    return ComplianceSchedule(
        schedule_number=f"CMP-2026-{n:04d}",
        requirement_name="Fire safety inspection",
        property_name="Marina Heights",
        contact_email=None,
        due_date=today + timedelta(days=days_until_due),
        status=status,
        **_timestamps(),
    )


def create_document(
    today: date,
    days_until_expiry: int | None = 30,
    status: DocumentStatus = DocumentStatus.ACTIVE,
    contact_email: str | None = "vendor@example.com",
) -> Document:
    """Create a document; days_until_expiry=None builds one that never expires."""
    n = next(_sequence)
    return Document(
        document_number=f"DOC-2026-{n:04d}",
        title="Trade licence",
        document_type="TRADE_LICENSE",
        owner_label="CoolAir Services LLC",
        contact_name="CoolAir Services",
        contact_email=contact_email,
        expiry_date=(
            today + timedelta(days=days_until_expiry) if days_until_expiry is not None else None
        ),
        status=status,
        **_timestamps(),
    )


def create_asset(
    today: date,
    days_until_warranty_end: int | None = 30,
    status: AssetStatus = AssetStatus.ACTIVE,
) -> Asset:
    n = next(_sequence)
    return Asset(
        asset_number=f"AST-2026-{n:04d}",
        name="Chiller unit 2",
        property_name="Marina Heights",
        contact_email=None,
        warranty_expiry_date=(
            today + timedelta(days=days_until_warranty_end)
            if days_until_warranty_end is not None
            else None
        ),
        status=status,
        **_timestamps(),
    )


def create_staff_member(
    email: str,
    role: str = "PROPERTY_MANAGER",
    is_active: bool = True,
) -> StaffMember:
    return StaffMember(
        email=email,
        full_name=email.split("@")[0].replace(".", " ").title(),
        role=role,
        is_active=is_active,
        created_at=_CREATED_AT,
    )
