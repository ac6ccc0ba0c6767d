"""Payment recorder.

Payments are append-only. Appending a payment and re-deriving the invoice
status happen in the same transaction, so no reader sees a payment next to
a stale status.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel

from clinic_ledger.billing.audit import AuditAction, AuditTrail
from clinic_ledger.billing.errors import NotFoundError, ValidationError
from clinic_ledger.billing.ledger import invoice_to_read
from clinic_ledger.billing.status import apply_status, sum_payments
from clinic_ledger.billing.tax import to_money
from clinic_ledger.core.models import Invoice, InvoiceStatus, Payment
from clinic_ledger.core.repository import InvoiceRepository, PaymentRepository
from clinic_ledger.core.schemas import InvoiceRead, PaymentCreate, PaymentFilter, PaymentRead

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)


class PaymentReceipt(BaseModel):
    """A stored payment and the invoice state it produced."""

    payment: PaymentRead
    invoice_number: str
    invoice_status: InvoiceStatus
    amount_paid: Decimal
    balance_due: Decimal


class PaymentRecorder:
    def __init__(self, store: LedgerStore, audit: AuditTrail, today: Callable[[], date] = date.today):
        self.store = store
        self.audit = audit
        self.today = today

    async def record_payment(self, data: PaymentCreate, *, actor_id: Optional[str]) -> PaymentReceipt:
        try:
            amount = to_money(data.amount)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if amount <= 0:
            raise ValidationError(f"Payment amount must be positive, got {amount}")

        async with self.store.write() as session:
            invoice = await InvoiceRepository(session).get_by_id(data.invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {data.invoice_id} not found")
            if invoice.status == InvoiceStatus.cancelled.value:
                raise ValidationError(f"Invoice {invoice.invoice_number} is cancelled; payments are not accepted")

            payment = Payment(
                amount=amount,
                payment_date=data.payment_date,
                payment_method=data.payment_method.value,
                reference_number=data.reference_number,
                notes=data.notes,
            )
            invoice.payments.append(payment)
            status = apply_status(invoice, self.today(), settling=payment)
            invoice.updated_at = datetime.now(timezone.utc)
            await session.flush()

            paid = sum_payments(p.amount for p in invoice.payments)
            stored = PaymentRead.model_validate(payment)
            stored.invoice_number = invoice.invoice_number
            receipt = PaymentReceipt(
                payment=stored,
                invoice_number=invoice.invoice_number,
                invoice_status=status,
                amount_paid=paid,
                balance_due=max(invoice.total_amount - paid, Decimal("0.00")),
            )

        logger.info(
            "Recorded %s payment of %s on invoice %s -> %s",
            receipt.payment.payment_method.value, amount, receipt.invoice_number, status.value,
        )
        await self.audit.record(actor_id, AuditAction.record_payment, "payment", stored.id, None, receipt)
        return receipt

    async def list_payments(self, filters: Optional[PaymentFilter] = None) -> list[PaymentRead]:
        async with self.store.read() as session:
            rows = await PaymentRepository(session).list(filters or PaymentFilter())
            payments = []
            for payment, invoice_number in rows:
                read = PaymentRead.model_validate(payment)
                read.invoice_number = invoice_number
                payments.append(read)
            return payments

    get_payments = list_payments

    async def refresh_invoice_status(self, invoice_id: uuid.UUID, *, actor_id: Optional[str]) -> InvoiceStatus:
        """Re-derive one invoice's status from its payments and due date."""
        async with self.store.write() as session:
            invoice = await InvoiceRepository(session).get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            previous = InvoiceStatus(invoice.status)
            before = invoice_to_read(invoice, invoice.patient)
            status = apply_status(invoice, self.today())
            if status == previous:
                return status
            invoice.updated_at = datetime.now(timezone.utc)
            await session.flush()
            after = invoice_to_read(invoice, invoice.patient)

        logger.info("Invoice %s status %s -> %s", after.invoice_number, previous.value, status.value)
        await self.audit.record(actor_id, AuditAction.update_invoice_status, "invoice", after.id, before, after)
        return status

    async def refresh_overdue_statuses(self, *, actor_id: Optional[str]) -> list[InvoiceRead]:
        """Mark every open invoice whose due date has passed as overdue."""
        today = self.today()
        touched: list[tuple[InvoiceRead, Invoice]] = []
        async with self.store.write() as session:
            for invoice in await InvoiceRepository(session).list_open_past_due(today):
                before = invoice_to_read(invoice, invoice.patient)
                if apply_status(invoice, today) == InvoiceStatus(before.status):
                    continue
                invoice.updated_at = datetime.now(timezone.utc)
                touched.append((before, invoice))
            await session.flush()
            changes = [(before, invoice_to_read(invoice, invoice.patient)) for before, invoice in touched]

        for before, after in changes:
            await self.audit.record(actor_id, AuditAction.update_invoice_status, "invoice", after.id, before, after)
        if changes:
            logger.info("Marked %d invoice(s) overdue", len(changes))
        return [after for _, after in changes]
