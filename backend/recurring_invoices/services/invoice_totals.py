"""Subtotal, tax and total for invoice or template line items."""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


class PricedLine(Protocol):
    quantity: object
    price: object
    tax_rate: object


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def _to_decimal(value: object) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def calculate_totals(lines: Iterable[PricedLine]) -> InvoiceTotals:
    """Sum ``price x quantity`` and its tax (``tax_rate`` is a percentage)."""
    subtotal = Decimal("0")
    tax = Decimal("0")
    for line in lines:
        amount = _to_decimal(line.price) * _to_decimal(line.quantity)
        subtotal += amount
        tax += amount * _to_decimal(line.tax_rate) / _HUNDRED

    subtotal = subtotal.quantize(_CENT, rounding=ROUND_HALF_UP)
    tax = tax.quantize(_CENT, rounding=ROUND_HALF_UP)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)
