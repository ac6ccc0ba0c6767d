"""Money arithmetic and invoice tax policy.

All amounts are ``Decimal`` quantized to cents with ROUND_HALF_UP. Each line
carries its own point-in-time tax rate; the policy decides whether those
rates are honoured (``per_line``) or replaced by the system default
(``flat``).
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from clinic_ledger.core.money import ZERO, to_money

TaxPolicy = Literal["per_line", "flat"]


class InvoiceTotals(BaseModel):
    """Subtotal, tax and total for one set of invoice lines."""

    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO


def line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return to_money(Decimal(quantity) * unit_price)


def compute_totals(
    lines: Iterable[tuple[Decimal, Decimal]],
    policy: TaxPolicy = "per_line",
    default_rate: Decimal = Decimal("0.15"),
) -> InvoiceTotals:
    """Compute invoice totals from ``(line_total, tax_rate)`` pairs.

    Under ``per_line`` the lines are grouped by rate and each group is taxed
    once, so an invoice whose lines share one rate is taxed exactly
    ``round(subtotal * rate)``.
    """
    by_rate: dict[Decimal, Decimal] = defaultdict(lambda: ZERO)
    subtotal = ZERO
    for amount, rate in lines:
        subtotal += amount
        by_rate[Decimal(rate)] += amount

    if policy == "flat":
        tax = to_money(subtotal * default_rate)
    else:
        tax = sum((to_money(group * rate) for rate, group in by_rate.items()), ZERO)

    subtotal = to_money(subtotal)
    return InvoiceTotals(subtotal=subtotal, tax_amount=tax, total_amount=subtotal + tax)
