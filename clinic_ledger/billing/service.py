"""Billing service: wires the ledger components to one store and audit trail.

Callers (API routes, CLI) talk to the components through this object:

    service = BillingService.from_settings(store)
    invoice = await service.ledger.create_invoice(data, actor_id="frontdesk-1")
    await service.payments.record_payment(payment, actor_id="frontdesk-1")
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import TYPE_CHECKING, Optional

from clinic_ledger.billing.audit import AuditTrail, DatabaseAuditTrail
from clinic_ledger.billing.converter import AppointmentInvoiceConverter
from clinic_ledger.billing.ledger import InvoiceLedger
from clinic_ledger.billing.numbering import InvoiceNumberGenerator
from clinic_ledger.billing.payments import PaymentRecorder
from clinic_ledger.billing.registry import BillingCodeRegistry
from clinic_ledger.billing.reports import FinancialReporter
from clinic_ledger.billing.tracker import AppointmentBillingTracker
from clinic_ledger.config import Settings, get_settings

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore


class BillingService:
    def __init__(
        self,
        store: LedgerStore,
        audit: AuditTrail,
        settings: Settings,
        *,
        numbers: Optional[InvoiceNumberGenerator] = None,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.audit = audit
        self.settings = settings

        self.registry = BillingCodeRegistry(store, audit, default_tax_rate=settings.default_tax_rate)
        self.tracker = AppointmentBillingTracker(store, audit)
        self.ledger = InvoiceLedger(
            store,
            audit,
            tax_policy=settings.tax_policy,
            default_tax_rate=settings.default_tax_rate,
            numbers=numbers or InvoiceNumberGenerator(prefix=settings.invoice_number_prefix),
            today=today,
        )
        self.payments = PaymentRecorder(store, audit, today=today)
        self.converter = AppointmentInvoiceConverter(store, audit, self.ledger, due_days=settings.invoice_due_days)
        self.reports = FinancialReporter(store, audit, today=today)

    @classmethod
    def from_settings(cls, store: LedgerStore, settings: Optional[Settings] = None, **kwargs) -> "BillingService":
        settings = settings or get_settings()
        audit = DatabaseAuditTrail(store, fallback_dir=settings.audit_fallback_dir)
        return cls(store, audit, settings, **kwargs)
