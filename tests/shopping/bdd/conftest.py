"""Shared BDD fixtures and step definitions for the Shopping domain."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then
from shopping.cart import operations
from shopping.cart.cart import Cart
from shopping.coupon import management
from shopping.coupon.store import get_coupon_store


def _next_month():
    return datetime.now(UTC).date() + timedelta(days=30)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a coupon "{code}" for {percent:d} percent off'))
def percentage_coupon(code, percent):
    management.create_coupon(
        code,
        discount_type="percentage_off",
        discount_value=percent,
        expiration_date=_next_month(),
    )


@given(parsers.cfparse('a coupon "{code}" for {percent:d} percent off with a minimum order of {minimum:d}'))
def percentage_coupon_with_minimum(code, percent, minimum):
    management.create_coupon(
        code,
        discount_type="percentage_off",
        discount_value=percent,
        expiration_date=_next_month(),
        minimum_order_amount=minimum,
    )


@given(parsers.cfparse('a cart with {quantity:d} units of "{product_id}" at {price:f}'), target_fixture="cart_id")
def cart_with_items(quantity, product_id, price):
    cart_id = operations.create_cart(customer_id="cust-bdd-001")
    operations.add_item(cart_id, product_id, quantity, price)
    return cart_id


@given(
    parsers.cfparse(
        'a cart with {quantity:d} units of "{product_id}" at {price:f} with {percent:d} percent item discount'
    ),
    target_fixture="cart_id",
)
def cart_with_discounted_items(quantity, product_id, price, percent):
    cart_id = operations.create_cart(customer_id="cust-bdd-001")
    operations.add_item(cart_id, product_id, quantity, price, unit_discount_percent=float(percent))
    return cart_id


@given("an empty cart", target_fixture="cart_id")
def empty_cart():
    return operations.create_cart(customer_id="cust-bdd-001")


@given(parsers.cfparse("a delivery fee of {fee:f}"))
def delivery_fee(cart_id, fee):
    operations.set_delivery_fee(cart_id, fee)


@given(parsers.cfparse('coupon "{code}" is applied to the cart'))
def coupon_is_applied(cart_id, code):
    assert operations.apply_coupon(cart_id, code).applied


@given(parsers.cfparse('coupon "{code}" is deactivated'))
def coupon_is_deactivated(code):
    management.deactivate_coupon(code)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the usage count of coupon "{code}" is {count:d}'))
def usage_count_is(code, count):
    assert get_coupon_store().find(code).usage_count == count


@then("the request is refused")
def request_is_refused(error):
    assert isinstance(error["exc"], ValidationError)


@then("the cart has no coupon")
def cart_has_no_coupon(cart_id):
    cart = current_domain.repository_for(Cart).get(cart_id)
    assert cart.applied_coupon is None
    assert cart.discount_amount == 0.0


@then(parsers.cfparse("the amount payable is {amount}"))
def amount_payable_is(cart_id, amount):
    assert operations.get_cart(cart_id).summary.amount_payable == Decimal(amount)


@then(parsers.cfparse("the bag discount is {amount}"))
def bag_discount_is(cart_id, amount):
    assert operations.get_cart(cart_id).summary.bag_discount == Decimal(amount)


@then(parsers.cfparse("the subtotal is {amount}"))
def subtotal_is(cart_id, amount):
    assert operations.get_cart(cart_id).summary.subtotal == Decimal(amount)
