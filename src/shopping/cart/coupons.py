"""Cart coupon management: commands and handler.

Applying a coupon validates it against the cart, prices it, and counts the
redemption in the coupon store before the cart changes. A rejected coupon
leaves the cart exactly as it was. Applying the code already on the cart
re-validates and reprices it without counting another use.
"""

from datetime import UTC, datetime
from uuid import uuid4

import structlog
from protean import handle
from protean.fields import Identifier, String

from shopping.cart.cart import Cart
from shopping.cart.handling import CouponApplication, load_cart, save_cart
from shopping.coupon.coupon import normalize_code
from shopping.coupon.store import get_coupon_store
from shopping.coupon.store.port import Redemption
from shopping.domain import shopping
from shopping.pricing.calculator import compute
from shopping.pricing.policy import refund_usage_on_removal
from shopping.pricing.summary import PaymentSummary
from shopping.pricing.validation import ValidationFailure, current_date, validate

logger = structlog.get_logger(__name__)


@shopping.command(part_of="Cart")
class ApplyCouponToCart:
    """Apply a coupon code to a shopping cart."""

    cart_id = Identifier(required=True)
    coupon_code = String(required=True, max_length=100)
    redemption_id = Identifier()  # Ledger id for the use this application counts


@shopping.command(part_of="Cart")
class RemoveCouponFromCart:
    cart_id = Identifier(required=True)


def _release_if_refunded(snapshot) -> None:
    if snapshot is not None and refund_usage_on_removal(snapshot):
        get_coupon_store().release(snapshot.code)


@shopping.command_handler(part_of=Cart)
class ApplyCouponHandler:
    @handle(ApplyCouponToCart)
    def apply_coupon(self, command) -> CouponApplication:
        code = normalize_code(command.coupon_code)
        cart = load_cart(command.cart_id)
        store = get_coupon_store()
        today = current_date()

        if cart.coupon_code == code:
            return self._reapply(cart, store.get(code), today)
        cart.check_coupon_applicable()

        coupon = store.get(code)
        basket = cart.basket()
        outcome = validate(coupon, basket, today=today)
        if not outcome.valid:
            logger.info("coupon_rejected", cart_id=str(cart.id), coupon_code=code, reason=outcome.failure.value)
            return CouponApplication(applied=False, summary=cart.payment_summary(), failure=outcome.failure)

        discount = compute(outcome.terms, basket.subtotal, basket.scoped_subtotal(outcome.terms.scope))
        redemption = Redemption(
            id=str(command.redemption_id or uuid4()),
            code=code,
            cart_id=str(cart.id),
            customer_id=str(cart.customer_id) if cart.customer_id else None,
            order_amount=basket.subtotal,
            discount_amount=discount,
            redeemed_at=datetime.now(UTC),
        )
        if not store.redeem(code, redemption):
            # Another cart took the last use, or the coupon was withdrawn, since validation.
            failure = ValidationFailure.NOT_FOUND if store.get(code) is None else ValidationFailure.USAGE_LIMIT_EXCEEDED
            logger.info("coupon_rejected", cart_id=str(cart.id), coupon_code=code, reason=failure.value)
            return CouponApplication(applied=False, summary=cart.payment_summary(), failure=failure)

        _release_if_refunded(cart.applied_coupon)
        repricing = cart.apply_coupon(coupon, today=today)
        save_cart(cart)
        return CouponApplication(applied=True, summary=repricing.summary)

    def _reapply(self, cart, coupon, today) -> CouponApplication:
        repricing = cart.reprice(coupon=coupon, today=today)
        save_cart(cart)
        if repricing.detachment is not None:
            failure = repricing.detachment.reason
            logger.info(
                "coupon_rejected",
                cart_id=str(cart.id),
                coupon_code=repricing.detachment.code,
                reason=failure.value,
            )
            return CouponApplication(applied=False, summary=repricing.summary, failure=failure)
        return CouponApplication(applied=True, summary=repricing.summary)

    @handle(RemoveCouponFromCart)
    def remove_coupon(self, command) -> PaymentSummary:
        cart = load_cart(command.cart_id)
        removed = cart.remove_coupon()
        _release_if_refunded(removed)
        save_cart(cart)
        return cart.payment_summary()
