"""Cart payment summary builder.

``rebuild`` is the single place a cart's discount is derived. It is pure:
given the same basket, applied terms, coupon record and delivery fee it
returns the same ``Repricing``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from shopping.coupon.coupon import Coupon
from shopping.pricing.basket import Basket
from shopping.pricing.calculator import compute
from shopping.pricing.validation import DiscountTerms, ValidationFailure, validate
from shopping.shared.money import ZERO, round_money


@dataclass(frozen=True)
class PaymentSummary:
    subtotal: Decimal
    bag_discount: Decimal
    delivery_fee: Decimal
    amount_payable: Decimal
    item_count: int = 0
    coupon_code: str | None = None


@dataclass(frozen=True)
class Detachment:
    """A previously applied coupon was dropped because the cart no longer qualifies."""

    code: str
    reason: ValidationFailure

    @property
    def message(self) -> str:
        return f"Coupon {self.code} was removed from your cart: {self.reason.message}"


@dataclass(frozen=True)
class Repricing:
    summary: PaymentSummary
    terms: DiscountTerms | None = None
    detachment: Detachment | None = None

    @property
    def discount_amount(self) -> Decimal:
        return self.summary.bag_discount


def summarize(subtotal, discount, delivery_fee, item_count: int = 0, coupon_code: str | None = None) -> PaymentSummary:
    subtotal = round_money(subtotal)
    discount = round_money(discount)
    delivery_fee = round_money(delivery_fee)
    return PaymentSummary(
        subtotal=subtotal,
        bag_discount=discount,
        delivery_fee=delivery_fee,
        amount_payable=max(subtotal - discount, ZERO) + delivery_fee,
        item_count=item_count,
        coupon_code=coupon_code,
    )


def rebuild(
    basket: Basket,
    applied: DiscountTerms | None,
    coupon: Coupon | None,
    delivery_fee,
    today: date | None = None,
) -> Repricing:
    """Recompute the payment summary for a cart.

    Args:
        basket: The cart's current lines.
        applied: Terms of the coupon currently on the cart, if any.
        coupon: The current record for ``applied.code`` (None if it no longer
            resolves). Ignored when nothing is applied.
        delivery_fee: The cart's delivery fee.
        today: Date used for the expiration check.

    When the applied coupon no longer validates, the result carries no terms,
    a zero discount and a ``Detachment`` explaining why.
    """
    subtotal = basket.subtotal
    item_count = basket.item_count

    if applied is None:
        return Repricing(summary=summarize(subtotal, ZERO, delivery_fee, item_count))

    outcome = validate(coupon, basket, today=today, check_usage=False)
    if not outcome.valid:
        return Repricing(
            summary=summarize(subtotal, ZERO, delivery_fee, item_count),
            detachment=Detachment(code=applied.code, reason=outcome.failure),
        )

    terms = outcome.terms
    discount = compute(terms, subtotal, basket.scoped_subtotal(terms.scope))
    return Repricing(
        summary=summarize(subtotal, discount, delivery_fee, item_count, coupon_code=terms.code),
        terms=terms,
    )
