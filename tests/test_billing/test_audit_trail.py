"""Tests for the audit trail and its file fallback."""

import json
from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from clinic_ledger.billing.audit import AuditAction, DatabaseAuditTrail, snapshot
from clinic_ledger.billing.errors import PersistenceError, ValidationError
from clinic_ledger.billing.service import BillingService
from clinic_ledger.core.schemas import (
    AppointmentBillingItemCreate,
    BillingCodeCreate,
    InvoiceCreate,
    LineItemInput,
    PaymentCreate,
)


class UnavailableStore:
    """Store stand-in whose every write fails."""

    @asynccontextmanager
    async def write(self):
        raise PersistenceError("Ledger store unavailable; nothing was saved")
        yield


@pytest.fixture
def fallback_trail(tmp_path):
    return DatabaseAuditTrail(UnavailableStore(), fallback_dir=tmp_path)


def _fallback_lines(tmp_path) -> list[dict]:
    path = tmp_path / "audit_failures.jsonl"
    return [json.loads(line) for line in path.read_text().splitlines()]


async def test_record_stores_snapshot(store, audit, read_audit):
    await audit.record("desk-1", AuditAction.create_expense, "expense", "e-1", None, {"amount": Decimal("9.50")})
    entries = await read_audit("expense", "e-1")
    assert len(entries) == 1
    assert entries[0].action == "CREATE_EXPENSE"
    assert entries[0].new_value == {"amount": "9.50"}


async def test_log_is_an_alias_for_record(store, audit, read_audit):
    await audit.log("desk-1", "CUSTOM", "thing", 7, None, None)
    entries = await read_audit("thing", 7)
    assert entries[0].entity_id == "7"


async def test_failed_write_goes_to_fallback_file(tmp_path, fallback_trail, caplog):
    await fallback_trail.record("desk-1", AuditAction.record_payment, "payment", "p-1", None, {"amount": "5.00"})

    lines = _fallback_lines(tmp_path)
    assert len(lines) == 1
    assert lines[0]["action"] == "RECORD_PAYMENT"
    assert lines[0]["actor_id"] == "desk-1"
    assert lines[0]["new_value"] == {"amount": "5.00"}
    assert "unavailable" in lines[0]["error"]
    assert any("Audit entry not stored" in r.message for r in caplog.records)


async def test_audit_failure_does_not_undo_mutation(tmp_path, store, settings, seed, today):
    broken = DatabaseAuditTrail(UnavailableStore(), fallback_dir=tmp_path)
    service = BillingService(store, broken, settings, today=lambda: today)

    code = await service.registry.create_billing_code(
        BillingCodeCreate(code="VACCINE", description="Vaccination", category="Preventive", default_price="50.00"),
        actor_id="admin",
    )
    assert [c.code for c in await service.registry.list_billing_codes()] == ["VACCINE"]
    assert _fallback_lines(tmp_path)[0]["entity_id"] == str(code.id)


async def test_one_entry_per_mutation(service, seed, today, read_audit):
    code = await service.registry.create_billing_code(
        BillingCodeCreate(code="CONSULT", description="Consult", category="Consultation", default_price="100.00"),
        actor_id="admin",
    )
    await service.tracker.create_appointment_billing_item(
        AppointmentBillingItemCreate(appointment_id=seed["appointment_id"], billing_code_id=code.id),
        actor_id="dr-lee",
    )
    invoice = await service.converter.generate_invoice_from_appointment(seed["appointment_id"], actor_id="desk-1")
    await service.payments.record_payment(
        PaymentCreate(invoice_id=invoice.id, amount=Decimal("115.00")), actor_id="desk-1"
    )

    entries = await read_audit()
    assert sorted(e.action for e in entries) == sorted([
        "CREATE_BILLING_CODE",
        "CREATE_APPOINTMENT_BILLING",
        "CREATE_INVOICE",
        "MARK_APPOINTMENT_BILLED",
        "RECORD_PAYMENT",
    ])
    assert all(e.new_value is not None for e in entries)
    assert {e.actor_id for e in entries} == {"admin", "dr-lee", "desk-1"}


async def test_failed_mutation_is_not_audited(store, settings, seed, today):
    trail = AsyncMock()
    service = BillingService(store, trail, settings, today=lambda: today)
    with pytest.raises(ValidationError):
        await service.ledger.create_invoice(
            InvoiceCreate(patient_id=seed["patient_id"], due_date=today, items=[LineItemInput(description="x")]),
            actor_id="desk-1",
        )
    trail.record.assert_not_awaited()


def test_snapshot_handles_none_and_dicts():
    assert snapshot(None) is None
    assert snapshot({"when": Decimal("1.10")}) == {"when": "1.10"}
