"""
Line-item pricing -- pure computation of document lines and totals.

Responsibility:
    Validates the line items of an estimation, invoice or credit note and
    computes per-line and document totals.  The server is the source of
    truth for every amount; client-supplied totals are never trusted.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    DocumentFactory BEFORE any database write, so a rejected document
    never allocates a number or opens a ledger scope.

Rounding policy:
    Amounts are rounded to two places at the line level before summation:

        gross    = round2(quantity * unit_price)
        discount = round2(gross * discount_percent / 100)
        net      = round2(gross - discount)

    Document totals are sums of the rounded line values, so the stored
    lines add up exactly to the stored header.

Failure modes:
    - EmptyDocumentError: no items.
    - InvalidLineItemError: blank description, non-integer or non-positive
      quantity, negative or non-numeric unit price / discount, or a unit
      price / discount finer than the stored 4 decimal places.
    - NonPositiveTotalError: net total <= 0.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from billing_kernel.domain.money import HUNDRED, ZERO, clamp, round2, to_decimal
from billing_kernel.exceptions import (
    EmptyDocumentError,
    InvalidLineItemError,
    NonPositiveTotalError,
)

# Decimal places stored for unit_price and discount_percent
STORED_PLACES = 4


def _exceeds_stored_places(value: Decimal) -> bool:
    return value.normalize().as_tuple().exponent < -STORED_PLACES


@dataclass(frozen=True)
class LineItemInput:
    """One line as submitted by the caller."""

    description: str
    quantity: int
    unit_price: Decimal | int | str
    discount_percent: Decimal | int | str = ZERO
    class_name: str | None = None
    company_name: str | None = None
    textbook_id: str | None = None


@dataclass(frozen=True)
class ComputedLine:
    """A validated line with server-computed amounts."""

    description: str
    class_name: str | None
    company_name: str | None
    textbook_id: str | None
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    """Validated lines and their header totals."""

    lines: tuple[ComputedLine, ...]
    total_quantity: int
    gross_amount: Decimal
    total_discount: Decimal
    net_amount: Decimal


def compute_line(index: int, item: LineItemInput) -> ComputedLine:
    """Validate and price a single line.  ``index`` is zero-based."""
    description = (item.description or "").strip()
    if not description:
        raise InvalidLineItemError(index, "Description is required")

    quantity = item.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidLineItemError(index, "Quantity must be a whole number")
    if quantity <= 0:
        raise InvalidLineItemError(index, "Quantity must be at least 1")

    try:
        unit_price = to_decimal(item.unit_price)
    except ValueError:
        raise InvalidLineItemError(index, "Invalid rate") from None
    if unit_price < 0:
        raise InvalidLineItemError(index, "Invalid rate")
    if _exceeds_stored_places(unit_price):
        raise InvalidLineItemError(index, "Rate allows at most 4 decimal places")

    try:
        raw_discount = to_decimal(item.discount_percent if item.discount_percent is not None else ZERO)
    except ValueError:
        raise InvalidLineItemError(index, "Invalid discount") from None
    discount_percent = clamp(raw_discount, ZERO, HUNDRED)
    if _exceeds_stored_places(discount_percent):
        raise InvalidLineItemError(index, "Discount allows at most 4 decimal places")

    gross = round2(quantity * unit_price)
    discount = round2(gross * discount_percent / HUNDRED)
    net = round2(gross - discount)

    return ComputedLine(
        description=description,
        class_name=item.class_name or None,
        company_name=item.company_name or None,
        textbook_id=item.textbook_id or None,
        quantity=quantity,
        unit_price=unit_price,
        discount_percent=discount_percent,
        gross_amount=gross,
        discount_amount=discount,
        net_amount=net,
    )


def compute_totals(items: Iterable[LineItemInput]) -> DocumentTotals:
    """
    Validate all lines and accumulate the document totals.

    Raises:
        EmptyDocumentError, InvalidLineItemError, NonPositiveTotalError
    """
    lines = tuple(compute_line(i, item) for i, item in enumerate(items))
    if not lines:
        raise EmptyDocumentError()

    total_quantity = sum(line.quantity for line in lines)
    gross_amount = round2(sum((line.gross_amount for line in lines), ZERO))
    total_discount = round2(sum((line.discount_amount for line in lines), ZERO))
    net_amount = round2(gross_amount - total_discount)

    if net_amount <= 0:
        raise NonPositiveTotalError(str(net_amount))

    return DocumentTotals(
        lines=lines,
        total_quantity=total_quantity,
        gross_amount=gross_amount,
        total_discount=total_discount,
        net_amount=net_amount,
    )
