"""
Billing calculator.

Derives every amount on a quotation or invoice from its line items and
pricing options. All money is Decimal, rounded half-up to two places at
each step, so stored values, rendered values and recomputed values agree.

    subtotal        = sum(quantity * rate)
    discount_amount = subtotal * value / 100   (percentage)
                    = value                     (fixed)
                    = 0                         (discount disabled)
    taxable_amount  = subtotal - discount_amount
    tax_amount      = taxable_amount * tax_percentage / 100   (0 if tax disabled)
    grand_total     = taxable_amount + tax_amount
    balance_due     = max(0, grand_total - amount_paid)
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Union

from agency_billing.models.billing import DiscountType


TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise in
    return Decimal(str(value))


def money(value: Optional[Number]) -> Decimal:
    """Round to 2 decimals, half-up."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def line_amount(quantity: Number, rate: Number) -> Decimal:
    """Amount of a single line: quantity x rate."""
    return money(to_decimal(quantity) * to_decimal(rate))


def _item_amount(item: Any) -> Decimal:
    if isinstance(item, dict):
        if item.get("amount") is not None:
            return money(item["amount"])
        return line_amount(item["quantity"], item["rate"])
    amount = getattr(item, "amount", None)
    if amount is not None:
        return money(amount)
    return line_amount(item.quantity, item.rate)


@dataclass(frozen=True)
class Totals:
    """Derived amounts for one document."""
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal
    balance_due: Optional[Decimal] = None

    def as_dict(self) -> dict:
        values = {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "taxable_amount": self.taxable_amount,
            "tax_amount": self.tax_amount,
            "grand_total": self.grand_total,
        }
        if self.balance_due is not None:
            values["balance_due"] = self.balance_due
        return values


def discount_for(
    subtotal: Decimal,
    discount_type: Union[DiscountType, str],
    discount_value: Number,
    discount_enabled: bool = True,
) -> Decimal:
    if not discount_enabled:
        return ZERO
    value = to_decimal(discount_value)
    if DiscountType(discount_type) == DiscountType.PERCENTAGE:
        return money(subtotal * value / HUNDRED)
    return money(value)


def balance_due(grand_total: Number, amount_paid: Number) -> Decimal:
    """Outstanding amount, never negative."""
    return max(ZERO, money(to_decimal(grand_total) - to_decimal(amount_paid)))


def recompute(
    items: Iterable[Any],
    discount_type: Union[DiscountType, str] = DiscountType.PERCENTAGE,
    discount_value: Number = 0,
    tax_percentage: Number = 0,
    tax_enabled: bool = True,
    discount_enabled: bool = True,
    amount_paid: Optional[Number] = None,
) -> Totals:
    """
    Compute all derived amounts for a set of line items.

    Items may be mappings or objects exposing quantity/rate (or amount).
    balance_due is only filled in when amount_paid is given.
    """
    subtotal = money(sum((_item_amount(item) for item in items), ZERO))
    discount_amount = discount_for(subtotal, discount_type, discount_value, discount_enabled)
    taxable_amount = money(subtotal - discount_amount)
    if tax_enabled:
        tax_amount = money(taxable_amount * to_decimal(tax_percentage) / HUNDRED)
    else:
        tax_amount = ZERO
    grand_total = money(taxable_amount + tax_amount)

    return Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        grand_total=grand_total,
        balance_due=balance_due(grand_total, amount_paid) if amount_paid is not None else None,
    )
