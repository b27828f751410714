"""Notifications queued directly by application events.

These are queued like reminders and go through the same retry scheduler;
the calling request only pays for one insert.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bmsjobs.db.models.base import TemplateKind

if TYPE_CHECKING:
    import uuid

    from bmsjobs.db.models.notifications import Notification
    from bmsjobs.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

# Password reset links are valid for this many minutes
PASSWORD_RESET_EXPIRY_MINUTES = 15


async def queue_password_reset(
    store: NotificationStore,
    email: str,
    first_name: str,
    reset_link: str,
) -> Notification:
    return await store.enqueue(
        recipient=email,
        recipient_name=first_name,
        template_kind=TemplateKind.PASSWORD_RESET,
        payload={
            "first_name": first_name,
            "reset_link": reset_link,
            "expiration_minutes": PASSWORD_RESET_EXPIRY_MINUTES,
        },
        entity_type="user",
    )


async def queue_invoice_generated(
    store: NotificationStore,
    email: str,
    tenant_name: str,
    invoice_number: str,
    due_date: str,
    total_amount: str,
    invoice_link: str,
    invoice_id: uuid.UUID | None = None,
) -> Notification:
    return await store.enqueue(
        recipient=email,
        recipient_name=tenant_name,
        template_kind=TemplateKind.INVOICE_GENERATED,
        subject=f"New Invoice: {invoice_number}",
        payload={
            "tenant_name": tenant_name,
            "invoice_number": invoice_number,
            "due_date": due_date,
            "total_amount": total_amount,
            "invoice_link": invoice_link,
        },
        entity_type="invoice",
        entity_id=invoice_id,
    )


async def queue_payment_received(
    store: NotificationStore,
    email: str,
    tenant_name: str,
    payment_amount: str,
    invoice_number: str,
    payment_date: str,
    payment_id: uuid.UUID | None = None,
) -> Notification:
    return await store.enqueue(
        recipient=email,
        recipient_name=tenant_name,
        template_kind=TemplateKind.PAYMENT_RECEIVED,
        subject=f"Payment Received - {invoice_number}",
        payload={
            "tenant_name": tenant_name,
            "payment_amount": payment_amount,
            "invoice_number": invoice_number,
            "payment_date": payment_date,
        },
        entity_type="payment",
        entity_id=payment_id,
    )
