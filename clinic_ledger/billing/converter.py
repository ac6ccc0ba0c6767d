"""Appointment -> invoice conversion.

Rolls every not-yet-invoiced billing item of one appointment into a single
new invoice. Creating the invoice and flagging the source items as billed
share one transaction: either the invoice exists and every item points at
it, or nothing changed. Items that another request already invoiced make
the whole conversion fail with ``ConflictError``.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from clinic_ledger.billing.audit import AuditAction, AuditTrail
from clinic_ledger.billing.errors import ConflictError, EmptyError, NotFoundError
from clinic_ledger.billing.ledger import InvoiceLedger, invoice_to_details
from clinic_ledger.core.models import AppointmentBillingItem, InvoiceLineItem
from clinic_ledger.core.repository import (
    AppointmentBillingRepository,
    AppointmentRepository,
    PatientRepository,
)
from clinic_ledger.core.schemas import InvoiceDetails

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)


def _line_from_item(item: AppointmentBillingItem, position: int) -> InvoiceLineItem:
    code = item.billing_code
    return InvoiceLineItem(
        billing_code=code,
        position=position,
        description=f"{code.code} - {code.description}",
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_price=item.total_price,
        tax_rate=code.tax_rate,
    )


class AppointmentInvoiceConverter:
    def __init__(self, store: LedgerStore, audit: AuditTrail, ledger: InvoiceLedger, due_days: int = 30):
        self.store = store
        self.audit = audit
        self.ledger = ledger
        self.due_days = due_days

    async def generate_invoice_from_appointment(
        self, appointment_id: uuid.UUID, *, actor_id: Optional[str]
    ) -> InvoiceDetails:
        async with self.store.write() as session:
            appointment = await AppointmentRepository(session).get_by_id(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found")

            billing = AppointmentBillingRepository(session)
            items = await billing.list_unbilled(appointment.id)
            if not items:
                raise EmptyError(f"No unbilled items found for appointment {appointment_id}")

            invoice = await self.ledger.insert_invoice(
                session,
                patient_id=appointment.patient_id,
                appointment_id=appointment.id,
                due_date=self.ledger.today() + timedelta(days=self.due_days),
                notes=f"Invoice for appointment on {appointment.appointment_date:%Y-%m-%d}",
                lines=[_line_from_item(item, pos) for pos, item in enumerate(items)],
            )

            item_ids = [item.id for item in items]
            marked = await billing.mark_billed(item_ids, invoice.id)
            if marked != len(item_ids):
                raise ConflictError(
                    f"Billing items for appointment {appointment_id} were invoiced concurrently",
                    {"expected": len(item_ids), "marked": marked},
                )

            patient = await PatientRepository(session).get_by_id(appointment.patient_id)
            created = invoice_to_details(invoice, patient)

        logger.info(
            "Generated invoice %s from appointment %s (%d items, total %s)",
            created.invoice_number, appointment_id, len(item_ids), created.total_amount,
        )
        await self.audit.record(actor_id, AuditAction.create_invoice, "invoice", created.id, None, created)
        await self.audit.record(
            actor_id,
            AuditAction.mark_appointment_billed,
            "appointment",
            appointment_id,
            {"item_ids": [str(i) for i in item_ids], "billed": False, "invoice_id": None},
            {"item_ids": [str(i) for i in item_ids], "billed": True, "invoice_id": str(created.id)},
        )
        return created
