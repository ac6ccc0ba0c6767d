"""Query repositories for the ledger tables.

Repositories never commit; the caller's ``LedgerStore`` unit of work owns
the transaction boundary.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_ledger.core.money import to_money
from clinic_ledger.core.models import (
    Appointment,
    AppointmentBillingItem,
    AuditLog,
    BillingCode,
    Expense,
    Invoice,
    InvoiceLineItem,
    Patient,
    Payment,
)
from clinic_ledger.core.schemas import InvoiceFilter, PaymentFilter


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class PatientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, patient_id: uuid.UUID) -> Optional[Patient]:
        return await self.session.get(Patient, patient_id)


class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        return await self.session.get(Appointment, appointment_id)


class BillingCodeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> BillingCode:
        code = BillingCode(**kwargs)
        self.session.add(code)
        await self.session.flush()
        return code

    async def get_by_id(self, code_id: uuid.UUID) -> Optional[BillingCode]:
        return await self.session.get(BillingCode, code_id)

    async def get_by_code(self, code: str) -> Optional[BillingCode]:
        result = await self.session.execute(select(BillingCode).where(BillingCode.code == code))
        return result.scalar_one_or_none()

    async def get_many(self, code_ids: set[uuid.UUID]) -> dict[uuid.UUID, BillingCode]:
        if not code_ids:
            return {}
        result = await self.session.execute(select(BillingCode).where(BillingCode.id.in_(code_ids)))
        return {code.id: code for code in result.scalars().all()}

    async def list(self, category: Optional[str] = None, active_only: bool = False) -> Sequence[BillingCode]:
        stmt = select(BillingCode)
        if category:
            stmt = stmt.where(BillingCode.category == category)
        if active_only:
            stmt = stmt.where(BillingCode.active.is_(True))
        stmt = stmt.order_by(BillingCode.category, BillingCode.code)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(BillingCode))
        return result.scalar_one()


class AppointmentBillingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> AppointmentBillingItem:
        item = AppointmentBillingItem(**kwargs)
        self.session.add(item)
        await self.session.flush()
        return item

    async def list_by_appointment(self, appointment_id: uuid.UUID) -> Sequence[AppointmentBillingItem]:
        stmt = (
            select(AppointmentBillingItem)
            .where(AppointmentBillingItem.appointment_id == appointment_id)
            .order_by(AppointmentBillingItem.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_unbilled(self, appointment_id: uuid.UUID) -> Sequence[AppointmentBillingItem]:
        stmt = (
            select(AppointmentBillingItem)
            .where(
                AppointmentBillingItem.appointment_id == appointment_id,
                AppointmentBillingItem.billed.is_(False),
            )
            .order_by(AppointmentBillingItem.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def mark_billed(self, item_ids: list[uuid.UUID], invoice_id: uuid.UUID) -> int:
        """Flag unbilled items as invoiced; returns how many rows changed."""
        stmt = (
            update(AppointmentBillingItem)
            .where(
                AppointmentBillingItem.id.in_(item_ids),
                AppointmentBillingItem.billed.is_(False),
            )
            .values(billed=True, invoice_id=invoice_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount


class InvoiceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, invoice_id: uuid.UUID) -> Optional[Invoice]:
        return await self.session.get(Invoice, invoice_id)

    async def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        result = await self.session.execute(select(Invoice).where(Invoice.invoice_number == invoice_number))
        return result.scalar_one_or_none()

    async def count_items(self, invoice_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(InvoiceLineItem).where(InvoiceLineItem.invoice_id == invoice_id)
        )
        return result.scalar_one()

    async def list(self, filters: InvoiceFilter, limit: int = 50, offset: int = 0) -> Sequence[Invoice]:
        stmt = select(Invoice)
        if filters.patient_id:
            stmt = stmt.where(Invoice.patient_id == filters.patient_id)
        if filters.status:
            stmt = stmt.where(Invoice.status == filters.status.value)
        if filters.date_from:
            stmt = stmt.where(Invoice.created_at >= _day_start(filters.date_from))
        if filters.date_to:
            stmt = stmt.where(Invoice.created_at < _day_start(filters.date_to + timedelta(days=1)))
        stmt = stmt.order_by(Invoice.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_open_past_due(self, today: date) -> Sequence[Invoice]:
        stmt = select(Invoice).where(
            Invoice.due_date < today,
            Invoice.status.in_(("unpaid", "partial")),
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_by_status(self, statuses: tuple[str, ...]) -> Sequence[Invoice]:
        result = await self.session.execute(select(Invoice).where(Invoice.status.in_(statuses)))
        return result.scalars().all()


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def total_for_invoice(self, invoice_id: uuid.UUID) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.invoice_id == invoice_id)
        )
        return to_money(result.scalar_one())

    async def list(self, filters: PaymentFilter) -> Sequence[tuple[Payment, str]]:
        stmt = select(Payment, Invoice.invoice_number).join(Invoice, Payment.invoice_id == Invoice.id)
        if filters.invoice_id:
            stmt = stmt.where(Payment.invoice_id == filters.invoice_id)
        if filters.payment_method:
            stmt = stmt.where(Payment.payment_method == filters.payment_method.value)
        if filters.date_from:
            stmt = stmt.where(Payment.payment_date >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(Payment.payment_date <= filters.date_to)
        stmt = stmt.order_by(Payment.payment_date.desc(), Payment.created_at.desc())
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]


class ExpenseRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Expense:
        expense = Expense(**kwargs)
        self.session.add(expense)
        await self.session.flush()
        return expense

    async def get_by_id(self, expense_id: uuid.UUID) -> Optional[Expense]:
        return await self.session.get(Expense, expense_id)

    async def list(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Expense]:
        stmt = select(Expense)
        if date_from:
            stmt = stmt.where(Expense.expense_date >= date_from)
        if date_to:
            stmt = stmt.where(Expense.expense_date <= date_to)
        stmt = stmt.order_by(Expense.expense_date.desc()).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def total(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> Decimal:
        stmt = select(func.coalesce(func.sum(Expense.amount), 0))
        if date_from:
            stmt = stmt.where(Expense.expense_date >= date_from)
        if date_to:
            stmt = stmt.where(Expense.expense_date <= date_to)
        result = await self.session.execute(stmt)
        return to_money(result.scalar_one())


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        actor_id: Optional[str] = None,
        old_value: Optional[dict] = None,
        new_value: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            old_value=old_value,
            new_value=new_value,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_entity(self, entity_type: str, entity_id: str, limit: int = 50) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_recent(self, limit: int = 100) -> Sequence[AuditLog]:
        stmt = select(AuditLog).order_by(AuditLog.timestamp.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()
