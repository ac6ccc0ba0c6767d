"""Billing code catalog routes."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_ledger.api.dependencies import get_actor_id, get_service
from clinic_ledger.billing.service import BillingService
from clinic_ledger.core.schemas import BillingCodeCreate, BillingCodeRead, BillingCodeUpdate

router = APIRouter(prefix="/billing-codes", tags=["billing-codes"])


@router.get("", response_model=list[BillingCodeRead])
async def list_billing_codes(
    category: Optional[str] = Query(None),
    active_only: bool = Query(False),
    service: BillingService = Depends(get_service),
):
    return await service.registry.list_billing_codes(category=category, active_only=active_only)


@router.get("/{code_id}", response_model=BillingCodeRead)
async def get_billing_code(code_id: uuid.UUID, service: BillingService = Depends(get_service)):
    return await service.registry.get_billing_code(code_id)


@router.post("", response_model=BillingCodeRead, status_code=201)
async def create_billing_code(
    data: BillingCodeCreate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.registry.create_billing_code(data, actor_id=actor_id)


@router.patch("/{code_id}", response_model=BillingCodeRead)
async def update_billing_code(
    code_id: uuid.UUID,
    data: BillingCodeUpdate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.registry.update_billing_code(code_id, data, actor_id=actor_id)
