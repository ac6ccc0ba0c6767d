"""Pydantic schemas for ledger I/O and audit snapshots."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from clinic_ledger.core.models import InvoiceStatus, PaymentMethod


# --- Billing Code ---

class BillingCodeCreate(BaseModel):
    code: str
    description: str
    category: str
    default_price: Decimal
    tax_rate: Optional[Decimal] = None
    active: bool = True


class BillingCodeUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    default_price: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    active: Optional[bool] = None


class BillingCodeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    description: str
    category: str
    default_price: Decimal
    tax_rate: Decimal
    active: bool
    created_at: datetime
    updated_at: datetime


# --- Appointment Billing ---

class AppointmentBillingItemCreate(BaseModel):
    appointment_id: uuid.UUID
    billing_code_id: uuid.UUID
    quantity: int = 1
    unit_price: Optional[Decimal] = None


class AppointmentBillingItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    appointment_id: uuid.UUID
    billing_code_id: uuid.UUID
    code: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    billed: bool
    invoice_id: Optional[uuid.UUID] = None
    created_at: datetime


# --- Invoice ---

class LineItemInput(BaseModel):
    """One submitted invoice line; code-derived fields are filled when omitted."""

    billing_code_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None


class InvoiceCreate(BaseModel):
    patient_id: uuid.UUID
    due_date: date
    notes: Optional[str] = None
    items: list[LineItemInput] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    due_date: date
    notes: Optional[str] = None
    items: list[LineItemInput] = Field(default_factory=list)


class LineItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    billing_code_id: Optional[uuid.UUID] = None
    code: Optional[str] = None
    category: Optional[str] = None
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    tax_rate: Decimal


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    appointment_id: Optional[uuid.UUID] = None
    patient_name: Optional[str] = None
    invoice_number: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: InvoiceStatus
    due_date: date
    payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_id: uuid.UUID
    invoice_number: Optional[str] = None
    amount: Decimal
    payment_date: date
    payment_method: PaymentMethod
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class InvoiceDetails(InvoiceRead):
    """Invoice header with its line items and payments, for presentation."""

    items: list[LineItemRead] = Field(default_factory=list)
    payments: list[PaymentRead] = Field(default_factory=list)
    amount_paid: Decimal = Decimal("0.00")
    balance_due: Decimal = Decimal("0.00")


class InvoiceFilter(BaseModel):
    patient_id: Optional[uuid.UUID] = None
    status: Optional[InvoiceStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


# --- Payment ---

class PaymentCreate(BaseModel):
    invoice_id: uuid.UUID
    amount: Decimal
    payment_date: date = Field(default_factory=date.today)
    payment_method: PaymentMethod = PaymentMethod.cash
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentFilter(BaseModel):
    invoice_id: Optional[uuid.UUID] = None
    payment_method: Optional[PaymentMethod] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


# --- Expense ---

class ExpenseCreate(BaseModel):
    description: str
    category: str
    amount: Decimal
    expense_date: date = Field(default_factory=date.today)
    vendor: Optional[str] = None
    notes: Optional[str] = None
    receipt_path: Optional[str] = None


class ExpenseUpdate(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[Decimal] = None
    expense_date: Optional[date] = None
    vendor: Optional[str] = None
    notes: Optional[str] = None
    receipt_path: Optional[str] = None


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    description: str
    category: str
    amount: Decimal
    expense_date: date
    vendor: Optional[str] = None
    notes: Optional[str] = None
    receipt_path: Optional[str] = None
    created_at: datetime


# --- Reports ---

class FinancialStats(BaseModel):
    total_revenue: Decimal = Decimal("0.00")
    pending_revenue: Decimal = Decimal("0.00")
    pending_invoice_count: int = 0
    total_expenses: Decimal = Decimal("0.00")
    monthly_revenue: Decimal = Decimal("0.00")
    monthly_expenses: Decimal = Decimal("0.00")
    net_profit: Decimal = Decimal("0.00")
    monthly_net: Decimal = Decimal("0.00")


# --- Audit ---

class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    old_value: Optional[dict] = None
    new_value: Optional[dict] = None
    timestamp: datetime
