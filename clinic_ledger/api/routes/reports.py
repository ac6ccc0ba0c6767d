"""Financial statistics and expenses."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from clinic_ledger.api.dependencies import get_actor_id, get_service
from clinic_ledger.billing.service import BillingService
from clinic_ledger.core.schemas import ExpenseCreate, ExpenseRead, ExpenseUpdate, FinancialStats

router = APIRouter(tags=["reports"])


@router.get("/reports/stats", response_model=FinancialStats)
async def financial_stats(service: BillingService = Depends(get_service)):
    return await service.reports.get_financial_stats()


@router.get("/expenses", response_model=list[ExpenseRead])
async def list_expenses(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: BillingService = Depends(get_service),
):
    return await service.reports.list_expenses(date_from, date_to, limit=limit, offset=offset)


@router.post("/expenses", response_model=ExpenseRead, status_code=201)
async def record_expense(
    data: ExpenseCreate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.reports.record_expense(data, actor_id=actor_id)


@router.patch("/expenses/{expense_id}", response_model=ExpenseRead)
async def update_expense(
    expense_id: uuid.UUID,
    data: ExpenseUpdate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.reports.update_expense(expense_id, data, actor_id=actor_id)
