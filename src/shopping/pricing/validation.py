"""Coupon validation against a basket.

Checks run in a fixed order and the first failure wins, so callers always
see the most specific reason:

1. NotFound            - no such coupon, or it was deactivated
2. Expired             - today is after the expiration date
3. UsageLimitExceeded  - the coupon has been redeemed ``usage_limit`` times
4. ScopeMismatch       - nothing in the basket is covered by the coupon
5. BelowMinimumOrder   - subtotal, rounded to cents, is under the minimum
                         (equal passes)

Failures are returned, never raised: they are expected, user-facing outcomes.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum

from shopping.coupon.coupon import Coupon, CouponScope, DiscountKind
from shopping.shared.money import round_money


class ValidationFailure(Enum):
    NOT_FOUND = "NotFound"
    EXPIRED = "Expired"
    USAGE_LIMIT_EXCEEDED = "UsageLimitExceeded"
    SCOPE_MISMATCH = "ScopeMismatch"
    BELOW_MINIMUM_ORDER = "BelowMinimumOrder"

    @property
    def message(self) -> str:
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES = {
    ValidationFailure.NOT_FOUND: "Invalid coupon code",
    ValidationFailure.EXPIRED: "Coupon has expired",
    ValidationFailure.USAGE_LIMIT_EXCEEDED: "Coupon usage limit reached",
    ValidationFailure.SCOPE_MISMATCH: "This coupon is not valid for the items in your cart",
    ValidationFailure.BELOW_MINIMUM_ORDER: "Order does not meet the coupon's minimum amount",
}


@dataclass(frozen=True)
class DiscountTerms:
    """Immutable copy of the discount-relevant part of a coupon."""

    code: str
    kind: DiscountKind
    scope: CouponScope

    @classmethod
    def of(cls, coupon: Coupon) -> "DiscountTerms":
        return cls(code=coupon.code, kind=coupon.kind, scope=coupon.scope)


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    terms: DiscountTerms | None = None
    failure: ValidationFailure | None = None

    @classmethod
    def accepted(cls, terms: DiscountTerms) -> "ValidationOutcome":
        return cls(valid=True, terms=terms)

    @classmethod
    def rejected(cls, failure: ValidationFailure) -> "ValidationOutcome":
        return cls(valid=False, failure=failure)


def current_date() -> date:
    return datetime.now(UTC).date()


def validate(coupon: Coupon | None, basket, today: date | None = None, check_usage: bool = True) -> ValidationOutcome:
    """Decide whether ``coupon`` can discount ``basket``.

    Args:
        coupon: The coupon record, or None when the code did not resolve.
        basket: A ``Basket`` or ``OrderOutline``.
        today: Date to check expiration against. Defaults to the UTC date.
        check_usage: False when re-validating a coupon the cart has already
            redeemed; its own redemption must not count against it.
    """
    today = today or current_date()

    if coupon is None or not coupon.is_active:
        return ValidationOutcome.rejected(ValidationFailure.NOT_FOUND)
    if coupon.is_expired(today):
        return ValidationOutcome.rejected(ValidationFailure.EXPIRED)
    if check_usage and coupon.is_usage_limit_reached():
        return ValidationOutcome.rejected(ValidationFailure.USAGE_LIMIT_EXCEEDED)
    if not basket.matches(coupon.scope):
        return ValidationOutcome.rejected(ValidationFailure.SCOPE_MISMATCH)
    if coupon.minimum_order_amount is not None and round_money(basket.subtotal) < coupon.minimum_order_amount:
        return ValidationOutcome.rejected(ValidationFailure.BELOW_MINIMUM_ORDER)

    return ValidationOutcome.accepted(DiscountTerms.of(coupon))
