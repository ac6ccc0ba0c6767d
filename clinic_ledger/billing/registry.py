"""Billing code registry: the catalog of billable services.

Codes are never deleted; retiring a service means ``active=False``. Invoice
and appointment lines copy the price and rate at creation time, so editing a
code never changes an issued invoice.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from clinic_ledger.billing.audit import AuditAction, AuditTrail
from clinic_ledger.billing.errors import NotFoundError, ValidationError
from clinic_ledger.billing.tax import to_money
from clinic_ledger.core.models import BillingCode
from clinic_ledger.core.repository import BillingCodeRepository
from clinic_ledger.core.schemas import BillingCodeCreate, BillingCodeRead, BillingCodeUpdate

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)

# Default catalog installed by ``clinic-ledger seed-codes``.
DEFAULT_BILLING_CODES: list[dict] = [
    {"code": "CONSULT", "description": "General Consultation", "category": "Consultation", "default_price": "150.00"},
    {"code": "FOLLOWUP", "description": "Follow-up Visit", "category": "Consultation", "default_price": "100.00"},
    {"code": "XRAY", "description": "X-Ray Examination", "category": "Diagnostic", "default_price": "200.00"},
    {"code": "BLOOD_TEST", "description": "Blood Test", "category": "Diagnostic", "default_price": "75.00"},
    {"code": "ULTRASOUND", "description": "Ultrasound", "category": "Diagnostic", "default_price": "300.00"},
    {"code": "PHYSIO", "description": "Physiotherapy Session", "category": "Therapy", "default_price": "120.00"},
    {"code": "SURGERY_CONSULT", "description": "Surgical Consultation", "category": "Consultation", "default_price": "250.00"},
    {"code": "EMERGENCY", "description": "Emergency Visit", "category": "Emergency", "default_price": "300.00"},
    {"code": "VACCINE", "description": "Vaccination", "category": "Preventive", "default_price": "50.00"},
    {"code": "PRESCRIPTION", "description": "Prescription Fee", "category": "Medication", "default_price": "25.00"},
]


def _validate_rate(rate: Decimal) -> Decimal:
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError(f"Tax rate must be a fraction between 0 and 1, got {rate}")
    return rate


def _validate_price(price: Decimal) -> Decimal:
    try:
        amount = to_money(price)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if amount < 0:
        raise ValidationError(f"Price cannot be negative, got {amount}")
    return amount


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


class BillingCodeRegistry:
    def __init__(self, store: LedgerStore, audit: AuditTrail, default_tax_rate: Decimal = Decimal("0.15")):
        self.store = store
        self.audit = audit
        self.default_tax_rate = default_tax_rate

    async def create_billing_code(self, data: BillingCodeCreate, *, actor_id: Optional[str]) -> BillingCodeRead:
        fields = {
            "code": _require_text(data.code, "code"),
            "description": _require_text(data.description, "description"),
            "category": _require_text(data.category, "category"),
            "default_price": _validate_price(data.default_price),
            "tax_rate": _validate_rate(data.tax_rate if data.tax_rate is not None else self.default_tax_rate),
            "active": data.active,
        }

        async with self.store.write() as session:
            repo = BillingCodeRepository(session)
            if await repo.get_by_code(fields["code"]):
                raise ValidationError(f"Billing code {fields['code']!r} already exists")
            code = await repo.create(**fields)
            created = BillingCodeRead.model_validate(code)

        logger.info("Created billing code %s (%s)", created.code, created.id)
        await self.audit.record(actor_id, AuditAction.create_billing_code, "billing_code", created.id, None, created)
        return created

    async def list_billing_codes(
        self, category: Optional[str] = None, active_only: bool = False
    ) -> list[BillingCodeRead]:
        async with self.store.read() as session:
            codes = await BillingCodeRepository(session).list(category=category, active_only=active_only)
            return [BillingCodeRead.model_validate(c) for c in codes]

    async def get_billing_code(self, code_id: uuid.UUID) -> BillingCodeRead:
        async with self.store.read() as session:
            code = await BillingCodeRepository(session).get_by_id(code_id)
            if code is None:
                raise NotFoundError(f"Billing code {code_id} not found")
            return BillingCodeRead.model_validate(code)

    async def update_billing_code(
        self, code_id: uuid.UUID, data: BillingCodeUpdate, *, actor_id: Optional[str]
    ) -> BillingCodeRead:
        """Merge the provided fields into the code; omitted fields are kept."""
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        for field in ("code", "description", "category"):
            if field in changes:
                changes[field] = _require_text(changes[field], field)
        if "default_price" in changes:
            changes["default_price"] = _validate_price(changes["default_price"])
        if "tax_rate" in changes:
            changes["tax_rate"] = _validate_rate(changes["tax_rate"])

        async with self.store.write() as session:
            repo = BillingCodeRepository(session)
            code = await repo.get_by_id(code_id)
            if code is None:
                raise NotFoundError(f"Billing code {code_id} not found")
            before = BillingCodeRead.model_validate(code)
            if not changes:
                return before

            if "code" in changes and changes["code"] != code.code:
                if await repo.get_by_code(changes["code"]):
                    raise ValidationError(f"Billing code {changes['code']!r} already exists")

            _apply(code, changes)
            await session.flush()
            after = BillingCodeRead.model_validate(code)

        logger.info("Updated billing code %s: %s", after.code, ", ".join(sorted(changes)))
        await self.audit.record(actor_id, AuditAction.update_billing_code, "billing_code", after.id, before, after)
        return after

    async def seed_defaults(self, *, actor_id: Optional[str]) -> int:
        """Install the default catalog into an empty registry."""
        async with self.store.read() as session:
            if await BillingCodeRepository(session).count():
                return 0
        for entry in DEFAULT_BILLING_CODES:
            await self.create_billing_code(BillingCodeCreate.model_validate(entry), actor_id=actor_id)
        return len(DEFAULT_BILLING_CODES)


def _apply(code: BillingCode, changes: dict) -> None:
    for k, v in changes.items():
        setattr(code, k, v)
    code.updated_at = datetime.now(timezone.utc)
