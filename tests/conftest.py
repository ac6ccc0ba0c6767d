"""Pytest configuration and fixtures."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from clinic_ledger.billing.audit import DatabaseAuditTrail
from clinic_ledger.billing.service import BillingService
from clinic_ledger.config import Settings
from clinic_ledger.core.database import LedgerStore
from clinic_ledger.core.models import Appointment, Patient
from clinic_ledger.core.repository import AuditRepository
from clinic_ledger.core.schemas import BillingCodeCreate

TODAY = date(2026, 3, 15)

PATIENT_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
APPOINTMENT_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite+aiosqlite://",
        audit_fallback_dir=tmp_path / "logs",
        default_tax_rate=Decimal("0.15"),
        tax_policy="per_line",
        invoice_due_days=30,
        clinic_name="Test Clinic",
    )


@pytest.fixture
async def store():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    ledger_store = LedgerStore(engine)
    await ledger_store.create_all()
    yield ledger_store
    await ledger_store.dispose()


@pytest.fixture
def audit(store, settings):
    return DatabaseAuditTrail(store, fallback_dir=settings.audit_fallback_dir)


@pytest.fixture
def service(store, audit, settings):
    return BillingService(store, audit, settings, today=lambda: TODAY)


@pytest.fixture
async def seed(store):
    """A patient with one appointment."""
    async with store.write() as session:
        patient = Patient(id=PATIENT_ID, patient_number="P-0001", first_name="Jane", last_name="Doe")
        appointment = Appointment(
            id=APPOINTMENT_ID,
            patient_id=PATIENT_ID,
            appointment_date=datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc),
            appointment_type="consultation",
            status="completed",
        )
        session.add_all([patient, appointment])
    return {"patient_id": PATIENT_ID, "appointment_id": APPOINTMENT_ID}


@pytest.fixture
async def codes(service):
    """Two billing codes: CONSULT at 100.00 and XRAY at 200.00, both taxed 15%."""
    consult = await service.registry.create_billing_code(
        BillingCodeCreate(
            code="CONSULT",
            description="General Consultation",
            category="Consultation",
            default_price=Decimal("100.00"),
            tax_rate=Decimal("0.15"),
        ),
        actor_id="setup",
    )
    xray = await service.registry.create_billing_code(
        BillingCodeCreate(
            code="XRAY",
            description="X-Ray Examination",
            category="Diagnostic",
            default_price=Decimal("200.00"),
        ),
        actor_id="setup",
    )
    return {"CONSULT": consult, "XRAY": xray}


async def audit_entries(store, entity_type=None, entity_id=None):
    """Stored audit entries, newest first."""
    async with store.read() as session:
        repo = AuditRepository(session)
        if entity_type is not None:
            return list(await repo.get_by_entity(entity_type, str(entity_id)))
        return list(await repo.list_recent())


@pytest.fixture
def read_audit(store):
    async def _read(entity_type=None, entity_id=None):
        return await audit_entries(store, entity_type, entity_id)

    return _read


@pytest.fixture
def today():
    return TODAY
