"""Invoice ledger: invoices, their line items and derived totals.

An invoice header and its line items are written in one ``LedgerStore``
transaction, so readers either see the invoice with all of its items or do
not see it at all. Updating an invoice replaces the whole item set
(delete-all, insert-all) inside the same transaction as the header change.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_ledger.billing.audit import AuditAction, AuditTrail
from clinic_ledger.billing.errors import ConflictError, NotFoundError, ValidationError
from clinic_ledger.billing.numbering import InvoiceNumberGenerator
from clinic_ledger.billing.status import apply_status, sum_payments
from clinic_ledger.billing.tax import TaxPolicy, compute_totals, line_total, to_money
from clinic_ledger.core.models import Invoice, InvoiceLineItem, InvoiceStatus, Patient
from clinic_ledger.core.repository import BillingCodeRepository, InvoiceRepository, PatientRepository
from clinic_ledger.core.schemas import (
    InvoiceCreate,
    InvoiceDetails,
    InvoiceFilter,
    InvoiceRead,
    InvoiceUpdate,
    LineItemInput,
    LineItemRead,
    PaymentRead,
)

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ORM -> schema helpers
# ---------------------------------------------------------------------------

def invoice_to_read(invoice: Invoice, patient: Optional[Patient] = None) -> InvoiceRead:
    read = InvoiceRead.model_validate(invoice)
    if patient is not None:
        read.patient_name = patient.full_name
    return read


def invoice_to_details(invoice: Invoice, patient: Optional[Patient] = None) -> InvoiceDetails:
    header = invoice_to_read(invoice, patient)
    items = []
    for line in invoice.items:
        item = LineItemRead.model_validate(line)
        if line.billing_code is not None:
            item.code = line.billing_code.code
            item.category = line.billing_code.category
        items.append(item)
    payments = []
    for p in invoice.payments:
        payment = PaymentRead.model_validate(p)
        payment.invoice_number = invoice.invoice_number
        payments.append(payment)
    paid = sum_payments(p.amount for p in payments)
    return InvoiceDetails(
        **header.model_dump(),
        items=items,
        payments=payments,
        amount_paid=paid,
        balance_due=max(header.total_amount - paid, Decimal("0.00")),
    )


def _validate_line_inputs(items: list[LineItemInput]) -> None:
    """Reject malformed lines before any write begins."""
    if not items:
        raise ValidationError("An invoice needs at least one line item")
    for pos, item in enumerate(items, start=1):
        if item.quantity <= 0:
            raise ValidationError(f"Line {pos}: quantity must be positive, got {item.quantity}")
        if item.unit_price is not None:
            try:
                price = to_money(item.unit_price)
            except ValueError as exc:
                raise ValidationError(f"Line {pos}: {exc}") from exc
            if price < 0:
                raise ValidationError(f"Line {pos}: unit price cannot be negative")
        elif item.billing_code_id is None:
            raise ValidationError(f"Line {pos}: unit price is required for lines without a billing code")
        if item.tax_rate is not None and not (Decimal("0") <= item.tax_rate <= Decimal("1")):
            raise ValidationError(f"Line {pos}: tax rate must be between 0 and 1")
        if item.billing_code_id is None and not (item.description and item.description.strip()):
            raise ValidationError(f"Line {pos}: description is required for lines without a billing code")


class InvoiceLedger:
    def __init__(
        self,
        store: LedgerStore,
        audit: AuditTrail,
        *,
        tax_policy: TaxPolicy = "per_line",
        default_tax_rate: Decimal = Decimal("0.15"),
        numbers: Optional[InvoiceNumberGenerator] = None,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.audit = audit
        self.tax_policy = tax_policy
        self.default_tax_rate = default_tax_rate
        self.numbers = numbers or InvoiceNumberGenerator()
        self.today = today

    # -- building blocks shared with the appointment converter ---------------

    async def build_lines(self, session: AsyncSession, items: list[LineItemInput]) -> list[InvoiceLineItem]:
        """Resolve code-derived defaults and price each submitted line."""
        code_ids = {i.billing_code_id for i in items if i.billing_code_id is not None}
        codes = await BillingCodeRepository(session).get_many(code_ids)
        missing = code_ids - codes.keys()
        if missing:
            raise NotFoundError(
                "Billing code not found", {"billing_code_ids": sorted(str(m) for m in missing)}
            )
        inactive = sorted(code.code for code in codes.values() if not code.active)
        if inactive:
            raise ValidationError(f"Billing code {', '.join(inactive)} is inactive", {"codes": inactive})

        lines = []
        for pos, item in enumerate(items):
            code = codes.get(item.billing_code_id) if item.billing_code_id else None
            unit_price = to_money(item.unit_price) if item.unit_price is not None else code.default_price
            if item.description and item.description.strip():
                description = item.description.strip()
            else:
                description = f"{code.code} - {code.description}"
            if item.tax_rate is not None:
                rate = item.tax_rate
            elif code is not None:
                rate = code.tax_rate
            else:
                rate = self.default_tax_rate
            lines.append(
                InvoiceLineItem(
                    billing_code=code,
                    position=pos,
                    description=description,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    total_price=line_total(item.quantity, unit_price),
                    tax_rate=rate,
                )
            )
        return lines

    def totals_for(self, lines: list[InvoiceLineItem]):
        return compute_totals(
            ((line.total_price, line.tax_rate) for line in lines),
            policy=self.tax_policy,
            default_rate=self.default_tax_rate,
        )

    async def insert_invoice(
        self,
        session: AsyncSession,
        *,
        patient_id: uuid.UUID,
        due_date: date,
        notes: Optional[str],
        lines: list[InvoiceLineItem],
        appointment_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """Add an invoice and its lines to the open transaction."""
        if not lines:
            raise ValidationError("An invoice needs at least one line item")
        totals = self.totals_for(lines)
        invoice = Invoice(
            patient_id=patient_id,
            appointment_id=appointment_id,
            invoice_number=self.numbers.next(),
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            status=InvoiceStatus.unpaid.value,
            due_date=due_date,
            notes=notes,
            items=lines,
            payments=[],
        )
        session.add(invoice)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Invoice number {invoice.invoice_number} is already taken; retry the request",
                {"invoice_number": invoice.invoice_number},
            ) from exc
        return invoice

    # -- public operations ---------------------------------------------------

    async def create_invoice(self, data: InvoiceCreate, *, actor_id: Optional[str]) -> InvoiceDetails:
        _validate_line_inputs(data.items)

        async with self.store.write() as session:
            patient = await PatientRepository(session).get_by_id(data.patient_id)
            if patient is None:
                raise NotFoundError(f"Patient {data.patient_id} not found")
            lines = await self.build_lines(session, data.items)
            invoice = await self.insert_invoice(
                session,
                patient_id=patient.id,
                due_date=data.due_date,
                notes=data.notes,
                lines=lines,
            )
            created = invoice_to_details(invoice, patient)

        logger.info(
            "Created invoice %s for patient %s: %d items, total %s",
            created.invoice_number, created.patient_id, len(created.items), created.total_amount,
        )
        await self.audit.record(actor_id, AuditAction.create_invoice, "invoice", created.id, None, created)
        return created

    async def update_invoice(
        self, invoice_id: uuid.UUID, data: InvoiceUpdate, *, actor_id: Optional[str]
    ) -> InvoiceDetails:
        _validate_line_inputs(data.items)

        async with self.store.write() as session:
            invoice = await InvoiceRepository(session).get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            patient = invoice.patient
            before = invoice_to_details(invoice, patient)

            lines = await self.build_lines(session, data.items)
            invoice.items.clear()
            await session.flush()
            invoice.items.extend(lines)

            totals = self.totals_for(lines)
            invoice.subtotal = totals.subtotal
            invoice.tax_amount = totals.tax_amount
            invoice.total_amount = totals.total_amount
            invoice.due_date = data.due_date
            invoice.notes = data.notes
            apply_status(invoice, self.today())
            invoice.updated_at = datetime.now(timezone.utc)
            await session.flush()
            after = invoice_to_details(invoice, patient)

        logger.info(
            "Updated invoice %s: %d -> %d items, total %s -> %s",
            after.invoice_number, len(before.items), len(after.items), before.total_amount, after.total_amount,
        )
        await self.audit.record(actor_id, AuditAction.update_invoice, "invoice", after.id, before, after)
        return after

    async def get_invoice_with_details(self, invoice_id: uuid.UUID) -> InvoiceDetails:
        async with self.store.read() as session:
            invoice = await InvoiceRepository(session).get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            return invoice_to_details(invoice, invoice.patient)

    async def list_invoices(
        self, filters: Optional[InvoiceFilter] = None, limit: int = 50, offset: int = 0
    ) -> list[InvoiceRead]:
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        async with self.store.read() as session:
            invoices = await InvoiceRepository(session).list(filters or InvoiceFilter(), limit=limit, offset=offset)
            return [invoice_to_read(i, i.patient) for i in invoices]

    async def cancel_invoice(
        self, invoice_id: uuid.UUID, *, actor_id: Optional[str], reason: Optional[str] = None
    ) -> InvoiceDetails:
        """Move an invoice to the terminal ``cancelled`` state."""
        async with self.store.write() as session:
            invoice = await InvoiceRepository(session).get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if invoice.status == InvoiceStatus.cancelled.value:
                return invoice_to_details(invoice, invoice.patient)
            if invoice.status == InvoiceStatus.paid.value:
                raise ConflictError(f"Invoice {invoice.invoice_number} is paid and cannot be cancelled")

            before = invoice_to_details(invoice, invoice.patient)
            invoice.status = InvoiceStatus.cancelled.value
            invoice.updated_at = datetime.now(timezone.utc)
            await session.flush()
            after = invoice_to_details(invoice, invoice.patient)

        logger.info("Cancelled invoice %s", after.invoice_number)
        await self.audit.record(
            actor_id,
            AuditAction.cancel_invoice,
            "invoice",
            after.id,
            before,
            {**after.model_dump(mode="json"), "cancel_reason": reason},
        )
        return after
