"""Invoice routes, including PDF export."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel

from clinic_ledger.api.dependencies import get_actor_id, get_service
from clinic_ledger.billing.service import BillingService
from clinic_ledger.core.models import InvoiceStatus
from clinic_ledger.core.schemas import InvoiceCreate, InvoiceDetails, InvoiceFilter, InvoiceRead, InvoiceUpdate
from clinic_ledger.export.pdf_generator import generate_invoice_pdf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class StatusResponse(BaseModel):
    invoice_id: uuid.UUID
    status: InvoiceStatus


def _safe_filename(raw: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_\-.]", "_", raw)


@router.get("", response_model=list[InvoiceRead])
async def list_invoices(
    patient_id: Optional[uuid.UUID] = Query(None),
    status: Optional[InvoiceStatus] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: BillingService = Depends(get_service),
):
    filters = InvoiceFilter(patient_id=patient_id, status=status, date_from=date_from, date_to=date_to)
    return await service.ledger.list_invoices(filters, limit=limit, offset=offset)


@router.get("/{invoice_id}", response_model=InvoiceDetails)
async def get_invoice(invoice_id: uuid.UUID, service: BillingService = Depends(get_service)):
    return await service.ledger.get_invoice_with_details(invoice_id)


@router.post("", response_model=InvoiceDetails, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.ledger.create_invoice(data, actor_id=actor_id)


@router.put("/{invoice_id}", response_model=InvoiceDetails)
async def update_invoice(
    invoice_id: uuid.UUID,
    data: InvoiceUpdate,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.ledger.update_invoice(invoice_id, data, actor_id=actor_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceDetails)
async def cancel_invoice(
    invoice_id: uuid.UUID,
    data: Optional[CancelRequest] = None,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    reason = data.reason if data else None
    return await service.ledger.cancel_invoice(invoice_id, actor_id=actor_id, reason=reason)


@router.post("/{invoice_id}/refresh-status", response_model=StatusResponse)
async def refresh_status(
    invoice_id: uuid.UUID,
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    status = await service.payments.refresh_invoice_status(invoice_id, actor_id=actor_id)
    return StatusResponse(invoice_id=invoice_id, status=status)


@router.post("/refresh-overdue", response_model=list[InvoiceRead])
async def refresh_overdue(
    actor_id: str = Depends(get_actor_id),
    service: BillingService = Depends(get_service),
):
    return await service.payments.refresh_overdue_statuses(actor_id=actor_id)


@router.get("/{invoice_id}/pdf")
async def export_invoice_pdf(invoice_id: uuid.UUID, service: BillingService = Depends(get_service)):
    """Render the invoice as a PDF document."""
    details = await service.ledger.get_invoice_with_details(invoice_id)
    try:
        pdf_bytes = generate_invoice_pdf(details, clinic_name=service.settings.clinic_name)
    except Exception as e:
        logger.exception(f"PDF generation failed for invoice {invoice_id}: {e}")
        raise HTTPException(status_code=500, detail="PDF generation failed")

    filename = _safe_filename(f"{details.invoice_number}.pdf")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
