"""Appointment billing tracker.

Records the billable charges produced by a clinical appointment. Each item
copies the unit price when it is created and stays ``billed=False`` until the
converter rolls it into an invoice.
"""
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Optional

from clinic_ledger.billing.audit import AuditAction, AuditTrail
from clinic_ledger.billing.errors import NotFoundError, ValidationError
from clinic_ledger.billing.tax import line_total, to_money
from clinic_ledger.core.models import AppointmentBillingItem
from clinic_ledger.core.repository import (
    AppointmentBillingRepository,
    AppointmentRepository,
    BillingCodeRepository,
)
from clinic_ledger.core.schemas import AppointmentBillingItemCreate, AppointmentBillingItemRead

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)


def item_to_read(item: AppointmentBillingItem) -> AppointmentBillingItemRead:
    read = AppointmentBillingItemRead.model_validate(item)
    if item.billing_code is not None:
        read.code = item.billing_code.code
        read.description = item.billing_code.description
        read.category = item.billing_code.category
    return read


class AppointmentBillingTracker:
    def __init__(self, store: LedgerStore, audit: AuditTrail):
        self.store = store
        self.audit = audit

    async def create_appointment_billing_item(
        self, data: AppointmentBillingItemCreate, *, actor_id: Optional[str]
    ) -> AppointmentBillingItemRead:
        if data.quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got {data.quantity}")
        unit_price = None
        if data.unit_price is not None:
            try:
                unit_price = to_money(data.unit_price)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            if unit_price < 0:
                raise ValidationError(f"Unit price cannot be negative, got {unit_price}")

        async with self.store.write() as session:
            appointment = await AppointmentRepository(session).get_by_id(data.appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {data.appointment_id} not found")
            code = await BillingCodeRepository(session).get_by_id(data.billing_code_id)
            if code is None:
                raise NotFoundError(f"Billing code {data.billing_code_id} not found")
            if not code.active:
                raise ValidationError(f"Billing code {code.code} is inactive")

            if unit_price is None:
                unit_price = code.default_price
            item = await AppointmentBillingRepository(session).create(
                appointment_id=appointment.id,
                billing_code=code,
                quantity=data.quantity,
                unit_price=unit_price,
                total_price=line_total(data.quantity, unit_price),
                billed=False,
                invoice_id=None,
            )
            created = item_to_read(item)

        logger.info(
            "Recorded %s x%d (%s) against appointment %s",
            created.code, created.quantity, created.total_price, created.appointment_id,
        )
        await self.audit.record(
            actor_id, AuditAction.create_appointment_billing, "appointment_billing_item", created.id, None, created
        )
        return created

    async def list_appointment_billing_items(self, appointment_id: uuid.UUID) -> list[AppointmentBillingItemRead]:
        async with self.store.read() as session:
            items = await AppointmentBillingRepository(session).list_by_appointment(appointment_id)
            return [item_to_read(i) for i in items]
