"""Appointment billing items and appointment -> invoice conversion."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from clinic_ledger.api.dependencies import get_actor_id, get_service
from clinic_ledger.billing.service import BillingService
from clinic_ledger.core.schemas import AppointmentBillingItemCreate, AppointmentBillingItemRead, InvoiceDetails

router = APIRouter(prefix="/appointments", tags=["appointment-billing"])


@router.get("/{appointment_id}/billing-items", response_model=list[AppointmentBillingItemRead])
async def list_billing_items(appointment_id: uuid.UUID, service: BillingService = Depends(get_service)):
    return await service.tracker.list_appointment_billing_items(appointment_id)


@router.post("/billing-items", response_model=AppointmentBillingItemRead, status_code=201)
async def create_billing_item(
    data: AppointmentBillingItemCreate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.tracker.create_appointment_billing_item(data, actor_id=actor_id)


@router.post("/{appointment_id}/invoice", response_model=InvoiceDetails, status_code=201)
async def generate_invoice(
    appointment_id: uuid.UUID,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    """Roll every unbilled item of the appointment into one invoice."""
    return await service.converter.generate_invoice_from_appointment(appointment_id, actor_id=actor_id)
