from decimal import Decimal

from agency_billing.models.billing import DiscountType
from agency_billing.services.billing_calculator import balance_due, line_amount, money, recompute


def _items(*pairs):
    return [{"quantity": quantity, "rate": rate} for quantity, rate in pairs]


def test_percentage_discount_then_tax():
    totals = recompute(
        _items((1, 10000)),
        discount_type=DiscountType.PERCENTAGE,
        discount_value=10,
        tax_percentage=18,
    )

    assert totals.subtotal == Decimal("10000.00")
    assert totals.discount_amount == Decimal("1000.00")
    assert totals.taxable_amount == Decimal("9000.00")
    assert totals.tax_amount == Decimal("1620.00")
    assert totals.grand_total == Decimal("10620.00")


def test_fixed_discount_is_taken_as_is():
    totals = recompute(
        _items((2, 2500), (1, 1000)),
        discount_type="fixed",
        discount_value=1500,
        tax_percentage=18,
    )

    assert totals.subtotal == Decimal("6000.00")
    assert totals.discount_amount == Decimal("1500.00")
    assert totals.taxable_amount == Decimal("4500.00")
    assert totals.tax_amount == Decimal("810.00")
    assert totals.grand_total == Decimal("5310.00")


def test_disabled_discount_and_tax_contribute_nothing():
    totals = recompute(
        _items((2, 2500)),
        discount_type=DiscountType.PERCENTAGE,
        discount_value=50,
        discount_enabled=False,
        tax_percentage=18,
        tax_enabled=False,
    )

    assert totals.discount_amount == Decimal("0.00")
    assert totals.tax_amount == Decimal("0.00")
    assert totals.grand_total == totals.subtotal == Decimal("5000.00")


def test_derived_amounts_are_consistent():
    totals = recompute(
        _items((3, "333.33"), (7, "12.49")),
        discount_value="7.5",
        tax_percentage="12.5",
    )

    assert totals.taxable_amount == totals.subtotal - totals.discount_amount
    assert totals.grand_total == totals.taxable_amount + totals.tax_amount
    assert totals.balance_due is None
    assert "balance_due" not in totals.as_dict()


def test_stored_amount_is_preferred_over_quantity_times_rate():
    totals = recompute([{"quantity": 1, "rate": 100, "amount": "150"}], tax_percentage=0)
    assert totals.subtotal == Decimal("150.00")


def test_rounding_is_half_up_to_two_places():
    assert money("0.125") == Decimal("0.13")
    assert money("2.675") == Decimal("2.68")
    assert line_amount(3, "0.335") == Decimal("1.01")


def test_balance_due_never_negative():
    assert balance_due(5900, 1000) == Decimal("4900.00")
    assert balance_due(5900, 10000) == Decimal("0.00")

    totals = recompute(_items((1, 100)), tax_percentage=0, amount_paid=250)
    assert totals.balance_due == Decimal("0.00")
    assert totals.as_dict()["balance_due"] == Decimal("0.00")


def test_empty_items_total_zero():
    totals = recompute([], tax_percentage=18)
    assert totals.grand_total == Decimal("0.00")
