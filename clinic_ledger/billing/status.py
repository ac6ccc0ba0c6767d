"""Invoice status engine.

Status is a pure function of the invoice total, the sum of its payments and
its due date. It is re-evaluated from scratch after every change, so the
result never depends on the order in which payments arrived.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Optional

from clinic_ledger.billing.tax import ZERO
from clinic_ledger.core.models import Invoice, InvoiceStatus, Payment

OPEN_STATUSES = (InvoiceStatus.unpaid, InvoiceStatus.partial, InvoiceStatus.overdue)


def compute_status(
    total_amount: Decimal,
    paid_sum: Decimal,
    due_date: Optional[date],
    today: date,
    current: Optional[InvoiceStatus | str] = None,
) -> InvoiceStatus:
    """Derive the invoice status.

    ``cancelled`` is a manual terminal state: if it is the current status it
    is returned unchanged.
    """
    if current is not None and InvoiceStatus(current) == InvoiceStatus.cancelled:
        return InvoiceStatus.cancelled

    if paid_sum >= total_amount:
        status = InvoiceStatus.paid
    elif paid_sum > ZERO:
        status = InvoiceStatus.partial
    else:
        status = InvoiceStatus.unpaid

    if status != InvoiceStatus.paid and due_date is not None and today > due_date:
        status = InvoiceStatus.overdue
    return status


def sum_payments(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def apply_status(invoice: Invoice, today: date, settling: Optional[Payment] = None) -> InvoiceStatus:
    """Re-derive ``invoice.status`` and keep its settlement fields in line.

    ``payment_date`` and ``payment_method`` are only set while the invoice
    is ``paid``. They come from ``settling`` when given, otherwise from the
    latest payment on the invoice.
    """
    paid = sum_payments(p.amount for p in invoice.payments)
    status = compute_status(invoice.total_amount, paid, invoice.due_date, today, current=invoice.status)
    invoice.status = status.value
    if status != InvoiceStatus.paid:
        invoice.payment_date = None
        invoice.payment_method = None
    elif invoice.payment_date is None:
        if settling is None and invoice.payments:
            settling = max(invoice.payments, key=lambda p: p.payment_date)
        if settling is not None:
            invoice.payment_date = settling.payment_date
            invoice.payment_method = settling.payment_method
    return status
