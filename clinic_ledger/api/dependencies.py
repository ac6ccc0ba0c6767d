"""FastAPI dependencies: the billing service and the acting user."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from clinic_ledger.billing.service import BillingService


def get_service(request: Request) -> BillingService:
    """Billing service created by the application lifespan."""
    return request.app.state.service


async def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> str:
    """Identify who performs a mutation.

    Every write is attributed in the audit trail, so mutating routes refuse
    requests that do not name an actor.
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return x_actor_id.strip()
