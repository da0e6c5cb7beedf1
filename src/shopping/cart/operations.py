"""Request-facing cart and coupon operations.

Transport-agnostic entry points used by the HTTP routes. Mutations go
through ``process`` so they run under the cart's lock; reads go straight
to the repositories.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import uuid4

import structlog

from shopping.cart.cart import Cart
from shopping.cart.conversion import CheckoutCart
from shopping.cart.coupons import ApplyCouponToCart, RemoveCouponFromCart
from shopping.cart.handling import CartUpdate, CouponApplication, load_cart, process
from shopping.cart.items import AddToCart, RemoveFromCart, UpdateCartQuantity
from shopping.cart.management import ClearCart, CreateCart, SetDeliveryFee
from shopping.coupon.coupon import normalize_code
from shopping.coupon.store import get_coupon_store
from shopping.coupon.store.port import UsageStats
from shopping.pricing.basket import OrderOutline
from shopping.pricing.calculator import compute
from shopping.pricing.summary import PaymentSummary
from shopping.pricing.validation import ValidationFailure, validate
from shopping.shared.money import ZERO, round_money

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CartDetails:
    cart: Cart
    summary: PaymentSummary


@dataclass(frozen=True)
class CouponCheck:
    code: str
    valid: bool
    discount_amount: Decimal = ZERO
    final_amount: Decimal = ZERO
    failure: ValidationFailure | None = None

    @property
    def failure_reason(self) -> str | None:
        return self.failure.value if self.failure else None

    @property
    def message(self) -> str | None:
        return self.failure.message if self.failure else None


def create_cart(customer_id=None) -> str:
    command = CreateCart(customer_id=str(customer_id) if customer_id is not None else None)
    lock_key = f"customer:{command.customer_id}" if command.customer_id else "cart:new"
    return process(command, lock_key)


def add_item(
    cart_id=None,
    product_id=None,
    quantity=None,
    unit_price=None,
    unit_discount_percent=0.0,
    collection_id=None,
    customer_id=None,
) -> CartUpdate:
    """Add an item to ``cart_id``, or to the customer's active cart when no cart is named.

    A customer without an active cart gets a new one.
    """
    if cart_id is None:
        cart_id = create_cart(customer_id)

    command = AddToCart(
        cart_id=str(cart_id),
        product_id=str(product_id),
        quantity=quantity,
        unit_price=unit_price,
        unit_discount_percent=unit_discount_percent or 0.0,
        collection_id=str(collection_id) if collection_id is not None else None,
    )
    return process(command, command.cart_id)


def update_item_quantity(cart_id, item_id, new_quantity) -> CartUpdate:
    return process(UpdateCartQuantity(cart_id=str(cart_id), item_id=str(item_id), new_quantity=new_quantity), cart_id)


def remove_item(cart_id, item_id) -> CartUpdate:
    return process(RemoveFromCart(cart_id=str(cart_id), item_id=str(item_id)), cart_id)


def set_delivery_fee(cart_id, delivery_fee) -> CartUpdate:
    return process(SetDeliveryFee(cart_id=str(cart_id), delivery_fee=delivery_fee), cart_id)


def clear_cart(cart_id) -> CartUpdate:
    return process(ClearCart(cart_id=str(cart_id)), cart_id)


def checkout(cart_id) -> CartUpdate:
    return process(CheckoutCart(cart_id=str(cart_id)), cart_id)


def apply_coupon(cart_id, code: str) -> CouponApplication:
    """Apply ``code`` to the cart. Rejections come back as ``failure``, never as exceptions.

    If the cart cannot be saved after its redemption was counted, the
    redemption is revoked before the error propagates.
    """
    redemption_id = str(uuid4())
    command = ApplyCouponToCart(cart_id=str(cart_id), coupon_code=code, redemption_id=redemption_id)
    try:
        return process(command, cart_id)
    except Exception:
        if get_coupon_store().revoke(redemption_id):
            logger.warning("coupon_redemption_revoked", cart_id=str(cart_id), coupon_code=normalize_code(code))
        raise


def remove_coupon(cart_id) -> PaymentSummary:
    return process(RemoveCouponFromCart(cart_id=str(cart_id)), cart_id)


def get_cart(cart_id) -> CartDetails:
    cart = load_cart(cart_id)
    return CartDetails(cart=cart, summary=cart.payment_summary())


def validate_coupon(code: str, order_amount, product_ids=(), collection_ids=()) -> CouponCheck:
    """Check a coupon against an order outside any cart. Never touches the usage count.

    Empty ``product_ids`` / ``collection_ids`` mean the order's contents are
    unknown, and a product or collection coupon is not rejected for scope.
    """
    code = normalize_code(code)
    outline = OrderOutline.of(order_amount, product_ids, collection_ids)
    outcome = validate(get_coupon_store().get(code), outline)
    if not outcome.valid:
        return CouponCheck(code=code, valid=False, final_amount=outline.subtotal, failure=outcome.failure)

    discount = compute(outcome.terms, outline.subtotal, outline.scoped_subtotal(outcome.terms.scope))
    return CouponCheck(
        code=code,
        valid=True,
        discount_amount=discount,
        final_amount=max(round_money(outline.subtotal) - discount, ZERO),
    )


def coupon_usage(code: str) -> UsageStats:
    return get_coupon_store().usage_stats(code)
