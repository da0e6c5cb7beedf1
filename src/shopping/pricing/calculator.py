"""Discount calculation for a validated coupon."""

from decimal import Decimal

from shopping.coupon.coupon import DiscountType
from shopping.pricing.validation import DiscountTerms
from shopping.shared.money import round_money, to_decimal


def compute(terms: DiscountTerms, subtotal, scoped_subtotal) -> Decimal:
    """Return the discount ``terms`` give on a basket.

    ``scoped_subtotal`` is the part of ``subtotal`` the coupon's scope covers
    (the whole subtotal for a global coupon). A flat discount never exceeds
    the items it applies to, and no discount exceeds the subtotal. Rounding
    happens once, at the end.
    """
    subtotal = to_decimal(subtotal, field="subtotal")
    scoped = to_decimal(scoped_subtotal, field="scoped_subtotal")

    if terms.kind.type is DiscountType.PERCENTAGE_OFF:
        discount = scoped * terms.kind.value / Decimal(100)
    else:
        discount = min(terms.kind.value, scoped)

    discount = max(min(discount, subtotal), Decimal("0"))
    return round_money(discount)
