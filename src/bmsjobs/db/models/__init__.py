"""SQLAlchemy ORM models.

- base: Common metadata, column types and enums
- ledger: ReminderLedger value embedded in monitored entities
- notifications: Outbound notification queue
- leases, cheques, compliance, documents, assets: Monitored entities
- staff: Recipients of manager reminders
"""

from bmsjobs.db.models.assets import Asset
from bmsjobs.db.models.base import Base, metadata
from bmsjobs.db.models.cheques import PostDatedCheque
from bmsjobs.db.models.compliance import ComplianceSchedule
from bmsjobs.db.models.documents import Document
from bmsjobs.db.models.leases import Lease
from bmsjobs.db.models.ledger import ReminderLedger
from bmsjobs.db.models.notifications import Notification
from bmsjobs.db.models.staff import StaffMember

__all__ = [
    "Asset",
    "Base",
    "ComplianceSchedule",
    "Document",
    "Lease",
    "Notification",
    "PostDatedCheque",
    "ReminderLedger",
    "StaffMember",
    "metadata",
]
