"""Billing module: code registry, invoice ledger, payments and audit trail."""

from clinic_ledger.billing.errors import (
    ConflictError,
    EmptyError,
    LedgerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from clinic_ledger.billing.status import compute_status
from clinic_ledger.billing.tax import InvoiceTotals, compute_totals
from clinic_ledger.billing.audit import AuditAction, AuditTrail, DatabaseAuditTrail
from clinic_ledger.billing.service import BillingService

__all__ = [
    "AuditAction",
    "AuditTrail",
    "BillingService",
    "ConflictError",
    "DatabaseAuditTrail",
    "EmptyError",
    "InvoiceTotals",
    "LedgerError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "compute_status",
    "compute_totals",
]
