"""BDD tests for checking a coupon against an order amount."""

from decimal import Decimal

from pytest_bdd import parsers, scenarios, then, when
from shopping.cart import operations

scenarios("features/coupon_precheck.feature")


@when(
    parsers.cfparse('the shopper checks coupon "{code}" against an order of {amount}'),
    target_fixture="check",
)
def check_coupon(code, amount):
    return operations.validate_coupon(code, Decimal(amount))


@then(parsers.cfparse("the check passes with a discount of {discount} and a final amount of {final}"))
def check_passes(check, discount, final):
    assert check.valid
    assert check.discount_amount == Decimal(discount)
    assert check.final_amount == Decimal(final)


@then(parsers.cfparse('the check fails with "{reason}"'))
def check_fails(check, reason):
    assert not check.valid
    assert check.failure_reason == reason
