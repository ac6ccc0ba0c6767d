"""Tests for payment recording and invoice status refresh."""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from clinic_ledger.billing.errors import NotFoundError, ValidationError
from clinic_ledger.core.models import InvoiceStatus, PaymentMethod
from clinic_ledger.core.schemas import InvoiceCreate, LineItemInput, PaymentCreate, PaymentFilter


@pytest.fixture
async def invoice(service, seed, codes, today):
    """A 115.00 invoice (100.00 + 15% tax) due in 30 days."""
    return await service.ledger.create_invoice(
        InvoiceCreate(
            patient_id=seed["patient_id"],
            due_date=today + timedelta(days=30),
            items=[LineItemInput(billing_code_id=codes["CONSULT"].id)],
        ),
        actor_id="desk-1",
    )


@pytest.fixture
async def past_due_invoice(service, seed, codes, today):
    return await service.ledger.create_invoice(
        InvoiceCreate(
            patient_id=seed["patient_id"],
            due_date=today - timedelta(days=1),
            items=[LineItemInput(billing_code_id=codes["CONSULT"].id)],
        ),
        actor_id="desk-1",
    )


def _pay(invoice_id, amount, method=PaymentMethod.cash, on=date(2026, 3, 15)) -> PaymentCreate:
    return PaymentCreate(invoice_id=invoice_id, amount=Decimal(amount), payment_method=method, payment_date=on)


class TestRecordPayment:
    async def test_partial_then_paid(self, service, invoice):
        first = await service.payments.record_payment(_pay(invoice.id, "50.00"), actor_id="desk-1")
        assert first.invoice_status == InvoiceStatus.partial
        assert first.amount_paid == Decimal("50.00")
        assert first.balance_due == Decimal("65.00")

        second = await service.payments.record_payment(
            _pay(invoice.id, "65.00", PaymentMethod.card), actor_id="desk-1"
        )
        assert second.invoice_status == InvoiceStatus.paid
        assert second.balance_due == Decimal("0.00")

        details = await service.ledger.get_invoice_with_details(invoice.id)
        assert details.status == InvoiceStatus.paid
        assert details.payment_date == date(2026, 3, 15)
        assert details.payment_method == "card"
        assert len(details.payments) == 2

    async def test_overpayment_settles_invoice(self, service, invoice):
        receipt = await service.payments.record_payment(_pay(invoice.id, "200.00"), actor_id="desk-1")
        assert receipt.invoice_status == InvoiceStatus.paid
        assert receipt.balance_due == Decimal("0.00")

    @pytest.mark.parametrize("amount", ["0", "-10.00"])
    async def test_non_positive_amount(self, service, invoice, amount):
        with pytest.raises(ValidationError):
            await service.payments.record_payment(_pay(invoice.id, amount), actor_id="desk-1")
        assert await service.payments.list_payments() == []

    async def test_unknown_invoice(self, service, seed):
        with pytest.raises(NotFoundError):
            await service.payments.record_payment(_pay(uuid.uuid4(), "10.00"), actor_id="desk-1")

    async def test_order_does_not_matter(self, service, seed, codes, today):
        async def settle(amounts):
            inv = await service.ledger.create_invoice(
                InvoiceCreate(
                    patient_id=seed["patient_id"],
                    due_date=today + timedelta(days=30),
                    items=[LineItemInput(billing_code_id=codes["CONSULT"].id)],
                ),
                actor_id="desk-1",
            )
            for amount in amounts:
                receipt = await service.payments.record_payment(_pay(inv.id, amount), actor_id="desk-1")
            return receipt

        forward = await settle(["50.00", "40.00"])
        backward = await settle(["40.00", "50.00"])
        assert forward.invoice_status == backward.invoice_status == InvoiceStatus.partial
        assert forward.balance_due == backward.balance_due == Decimal("25.00")

    async def test_payment_is_audited(self, service, invoice, read_audit):
        receipt = await service.payments.record_payment(_pay(invoice.id, "50.00"), actor_id="cashier-7")
        entries = await read_audit("payment", receipt.payment.id)
        assert [e.action for e in entries] == ["RECORD_PAYMENT"]
        assert entries[0].actor_id == "cashier-7"
        assert entries[0].new_value["invoice_status"] == "partial"


class TestOverdue:
    async def test_refresh_marks_past_due_invoice(self, service, past_due_invoice):
        assert past_due_invoice.status == InvoiceStatus.unpaid

        changed = await service.payments.refresh_overdue_statuses(actor_id="scheduler")
        assert [i.id for i in changed] == [past_due_invoice.id]
        assert changed[0].status == InvoiceStatus.overdue

        assert await service.payments.refresh_overdue_statuses(actor_id="scheduler") == []

    async def test_not_yet_due_is_untouched(self, service, invoice):
        assert await service.payments.refresh_overdue_statuses(actor_id="scheduler") == []

    async def test_partial_payment_stays_overdue_full_payment_settles(self, service, past_due_invoice):
        receipt = await service.payments.record_payment(_pay(past_due_invoice.id, "50.00"), actor_id="desk-1")
        assert receipt.invoice_status == InvoiceStatus.overdue

        receipt = await service.payments.record_payment(_pay(past_due_invoice.id, "65.00"), actor_id="desk-1")
        assert receipt.invoice_status == InvoiceStatus.paid

    async def test_refresh_single_invoice_is_idempotent(self, service, past_due_invoice, read_audit):
        first = await service.payments.refresh_invoice_status(past_due_invoice.id, actor_id="desk-1")
        second = await service.payments.refresh_invoice_status(past_due_invoice.id, actor_id="desk-1")
        assert first == second == InvoiceStatus.overdue

        entries = [
            e for e in await read_audit("invoice", past_due_invoice.id) if e.action == "UPDATE_INVOICE_STATUS"
        ]
        assert len(entries) == 1
        assert entries[0].old_value["status"] == "unpaid"
        assert entries[0].new_value["status"] == "overdue"

    async def test_cancelled_invoice_is_never_overdue(self, service, past_due_invoice):
        await service.ledger.cancel_invoice(past_due_invoice.id, actor_id="desk-1")
        assert await service.payments.refresh_overdue_statuses(actor_id="scheduler") == []
        status = await service.payments.refresh_invoice_status(past_due_invoice.id, actor_id="desk-1")
        assert status == InvoiceStatus.cancelled

    async def test_refresh_unknown_invoice(self, service):
        with pytest.raises(NotFoundError):
            await service.payments.refresh_invoice_status(uuid.uuid4(), actor_id="desk-1")


class TestListPayments:
    async def test_filters(self, service, invoice, past_due_invoice):
        await service.payments.record_payment(_pay(invoice.id, "20.00"), actor_id="desk-1")
        await service.payments.record_payment(
            _pay(invoice.id, "30.00", PaymentMethod.card, on=date(2026, 3, 1)), actor_id="desk-1"
        )
        await service.payments.record_payment(_pay(past_due_invoice.id, "10.00"), actor_id="desk-1")

        everything = await service.payments.list_payments()
        assert len(everything) == 3
        assert everything[-1].payment_date == date(2026, 3, 1)

        by_invoice = await service.payments.get_payments(PaymentFilter(invoice_id=invoice.id))
        assert {p.invoice_number for p in by_invoice} == {invoice.invoice_number}
        assert len(by_invoice) == 2

        cards = await service.payments.list_payments(PaymentFilter(payment_method=PaymentMethod.card))
        assert [p.amount for p in cards] == [Decimal("30.00")]

        march_10_on = await service.payments.list_payments(PaymentFilter(date_from=date(2026, 3, 10)))
        assert len(march_10_on) == 2
