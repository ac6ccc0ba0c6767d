"""Payment routes."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_ledger.api.dependencies import get_actor_id, get_service
from clinic_ledger.billing.payments import PaymentReceipt
from clinic_ledger.billing.service import BillingService
from clinic_ledger.core.models import PaymentMethod
from clinic_ledger.core.schemas import PaymentCreate, PaymentFilter, PaymentRead

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=list[PaymentRead])
async def list_payments(
    invoice_id: Optional[uuid.UUID] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    service: BillingService = Depends(get_service),
):
    filters = PaymentFilter(
        invoice_id=invoice_id, payment_method=payment_method, date_from=date_from, date_to=date_to
    )
    return await service.payments.list_payments(filters)


@router.post("", response_model=PaymentReceipt, status_code=201)
async def record_payment(
    data: PaymentCreate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.payments.record_payment(data, actor_id=actor_id)
