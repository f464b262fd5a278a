"""
Pure order pricing.

Catalog prices are tax-inclusive, so subtotal and tax are derived by division
from the items total instead of being added on top.

Percentage coupons are always taken over `items_total + shipping_cost`
(see `discount_base`). Every caller (checkout commit, coupon preview, order
summaries) goes through this module so the base cannot drift between them.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from apps.utils.utils import to_money

ZERO = Decimal("0.00")
PERCENTAGE = "percentage"
FIXED = "fixed"


@dataclass(frozen=True)
class PriceQuote:
    items_total: Decimal
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount_base: Decimal
    coupon_discount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {k: str(v) for k, v in self.__dict__.items()}


def items_total(lines: Iterable) -> Decimal:
    """Sum of unit_price * qty over cart lines (tax-inclusive)."""
    return to_money(sum((Decimal(line.unit_price) * line.qty for line in lines), ZERO))


def split_tax(total_incl_tax, rate) -> Tuple[Decimal, Decimal]:
    """
    (subtotal, tax) from a tax-inclusive amount. Tax is the remainder,
    so subtotal + tax == total exactly after rounding.
    """
    total_incl_tax = to_money(total_incl_tax)
    rate = Decimal(rate)
    if rate <= 0:
        raise ValueError("Tax rate must be positive.")

    subtotal = to_money(total_incl_tax / (Decimal("1") + rate))
    return subtotal, total_incl_tax - subtotal


def discount_base(items_total_amount, shipping_cost) -> Decimal:
    return to_money(items_total_amount) + to_money(shipping_cost)


def coupon_discount(coupon_type: Optional[str], value, base) -> Decimal:
    if not coupon_type:
        return ZERO

    value = Decimal(value)
    if coupon_type == PERCENTAGE:
        discount = to_money(to_money(base) * value / Decimal("100"))
    elif coupon_type == FIXED:
        discount = to_money(value)
    else:
        raise ValueError(f"Unknown coupon type: {coupon_type}")

    return max(discount, ZERO)


def order_total(items_total_amount, shipping_cost, discount) -> Decimal:
    total = to_money(items_total_amount) + to_money(shipping_cost) - to_money(discount)
    return max(total, ZERO)


def quote(items_total_amount, rate, shipping_cost=ZERO, coupon=None) -> PriceQuote:
    """
    Full price breakdown. `coupon` is anything with `.type` and `.value`
    (a Coupon row) or None.
    """
    items_total_amount = to_money(items_total_amount)
    shipping_cost = to_money(shipping_cost)

    subtotal, tax = split_tax(items_total_amount, rate)
    base = discount_base(items_total_amount, shipping_cost)
    discount = coupon_discount(coupon.type, coupon.value, base) if coupon else ZERO

    return PriceQuote(
        items_total=items_total_amount,
        subtotal=subtotal,
        tax_rate=Decimal(rate),
        tax=tax,
        shipping_cost=shipping_cost,
        discount_base=base,
        coupon_discount=discount,
        total=order_total(items_total_amount, shipping_cost, discount),
    )
