"""
Line pricing and document totals.

Verifies:
- Per-line gross/discount/net rounding (half-up, two places)
- Discount clamping to [0, 100]
- Line validation messages
- Header totals equal the sum of the lines and net stays positive
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from billing_kernel.domain.line_items import LineItemInput, compute_line, compute_totals
from billing_kernel.domain.money import round2, to_decimal
from billing_kernel.exceptions import (
    EmptyDocumentError,
    InvalidLineItemError,
    NonPositiveTotalError,
)


def _item(quantity=1, unit_price="100", discount="0", description="Class 5 textbooks"):
    return LineItemInput(
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        discount_percent=discount,
    )


class TestMoney:
    def test_round2_is_half_up(self):
        assert round2("2.345") == Decimal("2.35")
        assert round2("2.344") == Decimal("2.34")
        assert round2("-2.345") == Decimal("-2.35")

    def test_float_goes_through_str(self):
        assert round2(0.1 + 0.2) == Decimal("0.30")
        assert to_decimal(1.1) == Decimal("1.1")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestComputeLine:
    def test_plain_line(self):
        line = compute_line(0, _item(quantity=3, unit_price="250"))

        assert line.gross_amount == Decimal("750.00")
        assert line.discount_amount == Decimal("0.00")
        assert line.net_amount == Decimal("750.00")

    def test_discount_rounding(self):
        # 3 x 33.33 = 99.99; 12.5% of that is 12.49875 -> 12.50
        line = compute_line(0, _item(quantity=3, unit_price="33.33", discount="12.5"))

        assert line.gross_amount == Decimal("99.99")
        assert line.discount_amount == Decimal("12.50")
        assert line.net_amount == Decimal("87.49")

    def test_discount_above_hundred_is_clamped(self):
        line = compute_line(0, _item(unit_price="80", discount="150"))

        assert line.discount_percent == Decimal("100")
        assert line.net_amount == Decimal("0.00")

    def test_negative_discount_is_clamped_to_zero(self):
        line = compute_line(0, _item(unit_price="80", discount="-5"))

        assert line.discount_percent == Decimal("0.00")
        assert line.net_amount == Decimal("80.00")

    def test_missing_discount_means_zero(self):
        line = compute_line(0, _item(discount=None))
        assert line.discount_amount == Decimal("0.00")

    def test_description_is_trimmed(self):
        assert compute_line(0, _item(description="  Atlas  ")).description == "Atlas"

    @pytest.mark.parametrize(
        "item, reason",
        [
            (_item(description="   "), "Description is required"),
            (_item(quantity=0), "Quantity must be at least 1"),
            (_item(quantity=-2), "Quantity must be at least 1"),
            (_item(quantity=1.5), "Quantity must be a whole number"),
            (_item(quantity=True), "Quantity must be a whole number"),
            (_item(unit_price="-1"), "Invalid rate"),
            (_item(unit_price="ten"), "Invalid rate"),
            (_item(discount="lots"), "Invalid discount"),
            (_item(unit_price="10.00001"), "Rate allows at most 4 decimal places"),
            (_item(discount="12.34567"), "Discount allows at most 4 decimal places"),
        ],
    )
    def test_invalid_lines(self, item, reason):
        with pytest.raises(InvalidLineItemError) as exc_info:
            compute_line(2, item)

        assert exc_info.value.reason == reason
        assert exc_info.value.index == 2
        assert str(exc_info.value) == f"Item 3: {reason}"

    def test_stored_precision_reproduces_amounts(self):
        line = compute_line(0, _item(quantity=3, unit_price="33.3333", discount="12.5000"))

        assert line.unit_price == Decimal("33.3333")
        assert line.gross_amount == Decimal("100.00")
        assert line.discount_amount == Decimal("12.50")

    def test_trailing_zeros_beyond_four_places_accepted(self):
        assert compute_line(0, _item(unit_price="19.990000")).gross_amount == Decimal("19.99")


class TestComputeTotals:
    def test_totals_sum_the_lines(self):
        totals = compute_totals([
            _item(quantity=2, unit_price="150", discount="10"),
            _item(quantity=5, unit_price="40"),
        ])

        assert totals.total_quantity == 7
        assert totals.gross_amount == Decimal("500.00")
        assert totals.total_discount == Decimal("30.00")
        assert totals.net_amount == Decimal("470.00")

    def test_empty_document_rejected(self):
        with pytest.raises(EmptyDocumentError):
            compute_totals([])

    def test_zero_total_rejected(self):
        with pytest.raises(NonPositiveTotalError):
            compute_totals([_item(unit_price="0")])

    def test_fully_discounted_document_rejected(self):
        with pytest.raises(NonPositiveTotalError):
            compute_totals([_item(unit_price="99", discount="100")])

    def test_first_invalid_line_reported(self):
        with pytest.raises(InvalidLineItemError) as exc_info:
            compute_totals([_item(), _item(quantity=0), _item(description="")])
        assert exc_info.value.index == 1


_prices = st.decimals(min_value=Decimal("1.00"), max_value=Decimal("99999"), places=2)
_discounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("99"), places=2)
_lines = st.lists(
    st.builds(
        _item,
        quantity=st.integers(min_value=1, max_value=500),
        unit_price=_prices,
        discount=_discounts,
    ),
    min_size=1,
    max_size=8,
)


class TestTotalsProperties:
    @given(items=_lines)
    @settings(max_examples=200, deadline=None)
    def test_net_equals_gross_minus_discount(self, items):
        totals = compute_totals(items)

        assert totals.net_amount == round2(totals.gross_amount - totals.total_discount)
        assert totals.net_amount > 0

    @given(items=_lines)
    @settings(max_examples=200, deadline=None)
    def test_header_matches_lines(self, items):
        totals = compute_totals(items)

        assert totals.gross_amount == sum(line.gross_amount for line in totals.lines)
        assert totals.total_discount == sum(line.discount_amount for line in totals.lines)
        assert totals.net_amount == sum(line.net_amount for line in totals.lines)
        assert all(line.net_amount.as_tuple().exponent == -2 for line in totals.lines)
