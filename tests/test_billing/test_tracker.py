"""Tests for appointment billing items."""

import uuid
from decimal import Decimal

import pytest

from clinic_ledger.billing.errors import NotFoundError, ValidationError
from clinic_ledger.core.schemas import AppointmentBillingItemCreate, BillingCodeUpdate


async def test_price_defaults_to_code_price(service, seed, codes):
    item = await service.tracker.create_appointment_billing_item(
        AppointmentBillingItemCreate(
            appointment_id=seed["appointment_id"], billing_code_id=codes["XRAY"].id, quantity=2
        ),
        actor_id="dr-lee",
    )
    assert item.unit_price == Decimal("200.00")
    assert item.total_price == Decimal("400.00")
    assert item.billed is False
    assert item.invoice_id is None
    assert item.code == "XRAY"


async def test_explicit_price_is_kept(service, seed, codes):
    item = await service.tracker.create_appointment_billing_item(
        AppointmentBillingItemCreate(
            appointment_id=seed["appointment_id"],
            billing_code_id=codes["CONSULT"].id,
            unit_price=Decimal("80.00"),
        ),
        actor_id="dr-lee",
    )
    assert item.total_price == Decimal("80.00")


async def test_later_code_price_change_does_not_touch_item(service, seed, codes):
    await service.tracker.create_appointment_billing_item(
        AppointmentBillingItemCreate(appointment_id=seed["appointment_id"], billing_code_id=codes["CONSULT"].id),
        actor_id="dr-lee",
    )
    await service.registry.update_billing_code(
        codes["CONSULT"].id, BillingCodeUpdate(default_price=Decimal("999.00")), actor_id="admin"
    )
    items = await service.tracker.list_appointment_billing_items(seed["appointment_id"])
    assert items[0].unit_price == Decimal("100.00")


@pytest.mark.parametrize("quantity", [0, -1])
async def test_non_positive_quantity(service, seed, codes, quantity):
    with pytest.raises(ValidationError):
        await service.tracker.create_appointment_billing_item(
            AppointmentBillingItemCreate(
                appointment_id=seed["appointment_id"], billing_code_id=codes["CONSULT"].id, quantity=quantity
            ),
            actor_id="dr-lee",
        )


async def test_unknown_appointment(service, seed, codes):
    with pytest.raises(NotFoundError):
        await service.tracker.create_appointment_billing_item(
            AppointmentBillingItemCreate(appointment_id=uuid.uuid4(), billing_code_id=codes["CONSULT"].id),
            actor_id="dr-lee",
        )


async def test_unknown_code(service, seed):
    with pytest.raises(NotFoundError):
        await service.tracker.create_appointment_billing_item(
            AppointmentBillingItemCreate(appointment_id=seed["appointment_id"], billing_code_id=uuid.uuid4()),
            actor_id="dr-lee",
        )


async def test_inactive_code(service, seed, codes):
    await service.registry.update_billing_code(codes["XRAY"].id, BillingCodeUpdate(active=False), actor_id="admin")
    with pytest.raises(ValidationError):
        await service.tracker.create_appointment_billing_item(
            AppointmentBillingItemCreate(appointment_id=seed["appointment_id"], billing_code_id=codes["XRAY"].id),
            actor_id="dr-lee",
        )
    assert await service.tracker.list_appointment_billing_items(seed["appointment_id"]) == []


async def test_item_creation_is_audited(service, seed, codes, read_audit):
    item = await service.tracker.create_appointment_billing_item(
        AppointmentBillingItemCreate(appointment_id=seed["appointment_id"], billing_code_id=codes["CONSULT"].id),
        actor_id="dr-lee",
    )
    entries = await read_audit("appointment_billing_item", item.id)
    assert [e.action for e in entries] == ["CREATE_APPOINTMENT_BILLING"]
    assert entries[0].actor_id == "dr-lee"
