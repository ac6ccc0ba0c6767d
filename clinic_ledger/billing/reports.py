"""Financial aggregates and clinic expenses."""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from clinic_ledger.billing.audit import AuditAction, AuditTrail
from clinic_ledger.billing.errors import NotFoundError, ValidationError
from clinic_ledger.billing.status import OPEN_STATUSES, sum_payments
from clinic_ledger.billing.tax import ZERO, to_money
from clinic_ledger.core.models import InvoiceStatus
from clinic_ledger.core.repository import ExpenseRepository, InvoiceRepository
from clinic_ledger.core.schemas import ExpenseCreate, ExpenseRead, ExpenseUpdate, FinancialStats

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)


def _validate_amount(value) -> Decimal:
    try:
        amount = to_money(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if amount <= 0:
        raise ValidationError(f"Expense amount must be positive, got {amount}")
    return amount


def _month_bounds(today: date) -> tuple[date, date]:
    start = today.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class FinancialReporter:
    def __init__(self, store: LedgerStore, audit: AuditTrail, today: Callable[[], date] = date.today):
        self.store = store
        self.audit = audit
        self.today = today

    async def get_financial_stats(self) -> FinancialStats:
        """Revenue, receivables and expenses; ``monthly_*`` cover the current month."""
        month_start, next_month = _month_bounds(self.today())

        async with self.store.read() as session:
            invoices = InvoiceRepository(session)
            paid = await invoices.list_by_status((InvoiceStatus.paid.value,))
            open_invoices = await invoices.list_by_status(tuple(s.value for s in OPEN_STATUSES))
            expenses = ExpenseRepository(session)
            total_expenses = await expenses.total()
            monthly_expenses = await expenses.total(date_from=month_start, date_to=next_month - timedelta(days=1))

            total_revenue = sum((i.total_amount for i in paid), ZERO)
            monthly_revenue = sum(
                (i.total_amount for i in paid if i.payment_date and month_start <= i.payment_date < next_month),
                ZERO,
            )
            pending = sum(
                (max(i.total_amount - sum_payments(p.amount for p in i.payments), ZERO) for i in open_invoices),
                ZERO,
            )

        return FinancialStats(
            total_revenue=total_revenue,
            pending_revenue=pending,
            pending_invoice_count=len(open_invoices),
            total_expenses=total_expenses,
            monthly_revenue=monthly_revenue,
            monthly_expenses=monthly_expenses,
            net_profit=total_revenue - total_expenses,
            monthly_net=monthly_revenue - monthly_expenses,
        )

    async def record_expense(self, data: ExpenseCreate, *, actor_id: Optional[str]) -> ExpenseRead:
        amount = _validate_amount(data.amount)
        if not data.description.strip() or not data.category.strip():
            raise ValidationError("Expense description and category are required")

        async with self.store.write() as session:
            expense = await ExpenseRepository(session).create(
                description=data.description.strip(),
                category=data.category.strip(),
                amount=amount,
                expense_date=data.expense_date,
                vendor=data.vendor,
                notes=data.notes,
                receipt_path=data.receipt_path,
            )
            created = ExpenseRead.model_validate(expense)

        logger.info("Recorded expense %s (%s) of %s", created.id, created.category, created.amount)
        await self.audit.record(actor_id, AuditAction.create_expense, "expense", created.id, None, created)
        return created

    async def update_expense(
        self, expense_id: uuid.UUID, data: ExpenseUpdate, *, actor_id: Optional[str]
    ) -> ExpenseRead:
        """Merge the provided fields into the expense; omitted fields are kept."""
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        for field in ("description", "category"):
            if field in changes:
                changes[field] = changes[field].strip()
                if not changes[field]:
                    raise ValidationError(f"Expense {field} cannot be blank")
        if "amount" in changes:
            changes["amount"] = _validate_amount(changes["amount"])

        async with self.store.write() as session:
            expense = await ExpenseRepository(session).get_by_id(expense_id)
            if expense is None:
                raise NotFoundError(f"Expense {expense_id} not found")
            before = ExpenseRead.model_validate(expense)
            if not changes:
                return before
            for k, v in changes.items():
                setattr(expense, k, v)
            await session.flush()
            after = ExpenseRead.model_validate(expense)

        logger.info("Updated expense %s: %s", after.id, ", ".join(sorted(changes)))
        await self.audit.record(actor_id, AuditAction.update_expense, "expense", after.id, before, after)
        return after

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExpenseRead]:
        async with self.store.read() as session:
            rows = await ExpenseRepository(session).list(date_from, date_to, limit=limit, offset=offset)
            return [ExpenseRead.model_validate(e) for e in rows]

