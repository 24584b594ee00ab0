"""Invoice amounts: line totals, VAT and German currency formatting."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple, Optional, Protocol

CENT = Decimal("0.01")
DEFAULT_TAX_RATE = 19.0
DEFAULT_UNIT = "Stk."
PAYMENT_DAYS = 14


class InvoiceLine(Protocol):
    quantity: float
    price_per_unit: float
    tax_rate: float


class InvoiceTotals(NamedTuple):
    subtotal: float
    tax_amount: float
    total: float


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: float, price_per_unit: float) -> float:
    return float(_cents(_decimal(quantity) * _decimal(price_per_unit)))


def calculate_totals(lines: Iterable[InvoiceLine]) -> InvoiceTotals:
    """Net sum, VAT and gross sum of the given lines, rounded to cents.

    VAT is summed unrounded per line and rounded once at the end, so the
    gross total always equals net plus VAT.
    """
    subtotal = Decimal(0)
    tax = Decimal(0)
    for line in lines:
        net = _decimal(line.quantity) * _decimal(line.price_per_unit)
        subtotal += net
        tax += net * _decimal(line.tax_rate) / 100
    subtotal, tax = _cents(subtotal), _cents(tax)
    return InvoiceTotals(float(subtotal), float(tax), float(subtotal + tax))


def default_due_date(issue_date: date) -> date:
    return issue_date + timedelta(days=PAYMENT_DAYS)


def resolve_dates(
    issue_date: Optional[date], due_date: Optional[date], today: Optional[date] = None
) -> tuple[date, date]:
    issue = issue_date or today or date.today()
    return issue, due_date or default_due_date(issue)


def format_currency(value: float) -> str:
    """``1234.5`` -> ``1.234,50 €``"""
    text = f"{_cents(_decimal(value)):,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".") + " €"


def format_quantity(value: float) -> str:
    return f"{_decimal(value):.2f}".replace(".", ",")
