"""Tests for the ledger store unit of work and repositories."""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from clinic_ledger.billing.errors import ConflictError
from clinic_ledger.core.database import LedgerStore, create_engine_from_settings
from clinic_ledger.core.models import BillingCode, Invoice, Payment
from clinic_ledger.core.repository import (
    AppointmentBillingRepository,
    BillingCodeRepository,
    ExpenseRepository,
    InvoiceRepository,
    PaymentRepository,
)


async def _add_code(store, code="CONSULT"):
    async with store.write() as session:
        return await BillingCodeRepository(session).create(
            code=code, description="General Consultation", category="Consultation",
            default_price=Decimal("100.00"), tax_rate=Decimal("0.15"),
        )


async def test_write_commits(store):
    created = await _add_code(store)
    async with store.read() as session:
        fetched = await BillingCodeRepository(session).get_by_id(created.id)
    assert fetched is not None
    assert fetched.default_price == Decimal("100.00")


async def test_write_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        async with store.write() as session:
            await BillingCodeRepository(session).create(
                code="XRAY", description="X-Ray", category="Diagnostic", default_price=Decimal("200.00")
            )
            raise RuntimeError("boom")

    async with store.read() as session:
        assert await BillingCodeRepository(session).count() == 0


async def test_unique_violation_becomes_conflict(store):
    await _add_code(store)
    with pytest.raises(ConflictError):
        await _add_code(store)


async def test_payment_amount_must_be_positive(store, seed):
    async with store.write() as session:
        invoice = Invoice(
            patient_id=seed["patient_id"], invoice_number="INV-1", subtotal=Decimal("10.00"),
            tax_amount=Decimal("0.00"), total_amount=Decimal("10.00"), due_date=date(2026, 4, 1),
        )
        session.add(invoice)
    with pytest.raises(ConflictError):
        async with store.write() as session:
            session.add(Payment(
                invoice_id=invoice.id, amount=Decimal("0.00"), payment_date=date(2026, 3, 15), payment_method="cash",
            ))

    async with store.read() as session:
        assert await PaymentRepository(session).total_for_invoice(invoice.id) == Decimal("0.00")


async def test_invoice_status_is_constrained(store, seed):
    with pytest.raises(ConflictError):
        async with store.write() as session:
            session.add(Invoice(
                patient_id=seed["patient_id"], invoice_number="INV-2", subtotal=Decimal("1.00"),
                tax_amount=Decimal("0.00"), total_amount=Decimal("1.00"), due_date=date(2026, 4, 1),
                status="draft",
            ))


async def test_mark_billed_skips_already_billed(store, seed):
    code = await _add_code(store)
    async with store.write() as session:
        repo = AppointmentBillingRepository(session)
        item = await repo.create(
            appointment_id=seed["appointment_id"], billing_code_id=code.id, quantity=1,
            unit_price=Decimal("100.00"), total_price=Decimal("100.00"),
        )
        target = uuid.uuid4()
        assert await repo.mark_billed([item.id], target) == 1
        assert await repo.mark_billed([item.id], uuid.uuid4()) == 0

    async with store.read() as session:
        unbilled = await AppointmentBillingRepository(session).list_unbilled(seed["appointment_id"])
        assert unbilled == []


async def test_get_many_and_by_code(store):
    consult = await _add_code(store)
    xray = await _add_code(store, "XRAY")
    async with store.read() as session:
        repo = BillingCodeRepository(session)
        found = await repo.get_many({consult.id, xray.id, uuid.uuid4()})
        assert set(found) == {consult.id, xray.id}
        assert (await repo.get_by_code("XRAY")).id == xray.id
        assert await repo.get_by_code("NOPE") is None
        result = await session.execute(select(BillingCode.code).order_by(BillingCode.code))
        assert result.scalars().all() == ["CONSULT", "XRAY"]


async def test_invoice_lookup_by_number(store, seed):
    async with store.write() as session:
        session.add(Invoice(
            patient_id=seed["patient_id"], invoice_number="INV-3", subtotal=Decimal("1.00"),
            tax_amount=Decimal("0.00"), total_amount=Decimal("1.00"), due_date=date(2026, 4, 1),
        ))
    async with store.read() as session:
        invoice = await InvoiceRepository(session).get_by_number("INV-3")
        assert invoice.patient.full_name == "Jane Doe"
        assert invoice.items == []


async def test_expense_totals_are_cents(store):
    async with store.write() as session:
        repo = ExpenseRepository(session)
        for amount, day in (("0.10", date(2026, 3, 1)), ("0.20", date(2026, 3, 2)), ("5.00", date(2026, 2, 1))):
            await repo.create(description="Gloves", category="Supplies", amount=Decimal(amount), expense_date=day)
    async with store.read() as session:
        repo = ExpenseRepository(session)
        assert await repo.total() == Decimal("5.30")
        march = await repo.total(date_from=date(2026, 3, 1), date_to=date(2026, 3, 31))
        assert march == Decimal("0.30")
        assert str(march) == "0.30"
        assert await repo.total(date_from=date(2027, 1, 1)) == Decimal("0.00")


async def test_file_engine_creates_parent_dir(tmp_path):
    path = tmp_path / "data" / "ledger.db"
    file_store = LedgerStore(create_engine_from_settings(f"sqlite+aiosqlite:///{path}"))
    try:
        await file_store.create_all()
        async with file_store.read() as session:
            assert (await session.execute(select(func.count()).select_from(BillingCode))).scalar_one() == 0
    finally:
        await file_store.dispose()
    assert path.exists()
