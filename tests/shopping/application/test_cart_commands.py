"""Application tests for cart lifecycle and item commands."""

from decimal import Decimal

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError
from shopping.cart import operations
from shopping.cart.cart import Cart, CartStatus
from shopping.cart.handling import held_locks
from shopping.cart.management import CreateCart


def _create_cart(customer_id="cust-001"):
    return operations.create_cart(customer_id=customer_id)


def _load(cart_id):
    return current_domain.repository_for(Cart).get(cart_id)


class TestCreateCart:
    def test_create_cart_persists(self):
        cart_id = _create_cart()
        cart = _load(cart_id)
        assert cart.customer_id == "cust-001"
        assert cart.status == CartStatus.ACTIVE.value

    def test_customer_gets_existing_active_cart(self):
        first = _create_cart()
        assert _create_cart() == first

    def test_guest_carts_are_distinct(self):
        first = current_domain.process(CreateCart(), asynchronous=False)
        second = current_domain.process(CreateCart(), asynchronous=False)
        assert first != second

    def test_customer_gets_new_cart_after_checkout(self):
        first = _create_cart()
        operations.add_item(first, "prod-001", 1, 10.0)
        operations.checkout(first)
        assert _create_cart() != first


class TestAddToCustomerCart:
    def test_first_item_opens_a_cart(self):
        update = operations.add_item(customer_id="cust-042", product_id="prod-001", quantity=2, unit_price=25.0)

        cart = _load(update.cart_id)
        assert cart.customer_id == "cust-042"
        assert update.summary.subtotal == Decimal("50.00")

    def test_later_items_go_to_the_same_cart(self):
        first = operations.add_item(customer_id="cust-042", product_id="prod-001", quantity=1, unit_price=25.0)
        second = operations.add_item(customer_id="cust-042", product_id="prod-002", quantity=1, unit_price=5.0)

        assert second.cart_id == first.cart_id
        assert len(_load(first.cart_id).items) == 2

    def test_existing_cart_is_found_by_customer(self):
        cart_id = _create_cart("cust-042")
        update = operations.add_item(customer_id="cust-042", product_id="prod-001", quantity=1, unit_price=25.0)
        assert update.cart_id == cart_id

    def test_converted_cart_is_not_reused(self):
        first = operations.add_item(customer_id="cust-042", product_id="prod-001", quantity=1, unit_price=25.0)
        operations.checkout(first.cart_id)

        second = operations.add_item(customer_id="cust-042", product_id="prod-001", quantity=1, unit_price=25.0)

        assert second.cart_id != first.cart_id
        assert _load(second.cart_id).status == CartStatus.ACTIVE.value


class TestItemCommands:
    def test_add_item_returns_summary(self):
        cart_id = _create_cart()
        update = operations.add_item(cart_id, "prod-001", 2, 250.0)
        assert update.cart_id == cart_id
        assert update.summary.subtotal == Decimal("500.00")
        assert update.notice is None

    def test_add_item_accepts_float_prices(self):
        cart_id = _create_cart()
        update = operations.add_item(cart_id, "prod-001", 3, 0.1)
        assert update.summary.subtotal == Decimal("0.30")

    def test_add_item_with_vendor_discount(self):
        cart_id = _create_cart()
        update = operations.add_item(cart_id, "prod-001", 1, Decimal("199.99"), unit_discount_percent=Decimal("12.5"))
        assert update.summary.subtotal == Decimal("174.99")

    def test_update_quantity_persists(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 1, 10.0)
        item_id = _load(cart_id).items[0].id

        update = operations.update_item_quantity(cart_id, item_id, 5)

        assert update.summary.item_count == 5
        assert _load(cart_id).items[0].quantity == 5

    def test_remove_item_persists(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 1, 10.0)
        item_id = _load(cart_id).items[0].id

        operations.remove_item(cart_id, item_id)

        assert len(_load(cart_id).items) == 0

    def test_invalid_quantity_leaves_cart_untouched(self):
        cart_id = _create_cart()
        with pytest.raises(ValidationError):
            operations.add_item(cart_id, "prod-001", 0, 10.0)
        assert len(_load(cart_id).items) == 0

    def test_unknown_cart(self):
        with pytest.raises(ObjectNotFoundError):
            operations.add_item("no-such-cart", "prod-001", 1, 10.0)


class TestDeliveryClearAndCheckout:
    def test_set_delivery_fee(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 1, 100.0)
        update = operations.set_delivery_fee(cart_id, 40.0)
        assert update.summary.amount_payable == Decimal("140.00")
        assert _load(cart_id).delivery_fee == 40.0

    def test_clear_cart(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 1, 100.0)
        update = operations.clear_cart(cart_id)
        assert update.summary.subtotal == Decimal("0.00")
        assert len(_load(cart_id).items) == 0

    def test_checkout(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 2, 100.0)
        update = operations.checkout(cart_id)
        assert update.summary.amount_payable == Decimal("200.00")
        assert _load(cart_id).status == CartStatus.CONVERTED.value

    def test_checked_out_cart_is_read_only(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 1, 100.0)
        operations.checkout(cart_id)
        with pytest.raises(ValidationError):
            operations.add_item(cart_id, "prod-002", 1, 5.0)

    def test_cannot_check_out_empty_cart(self):
        with pytest.raises(ValidationError):
            operations.checkout(_create_cart())


class TestGetCart:
    def test_get_cart_includes_summary(self):
        cart_id = _create_cart()
        operations.add_item(cart_id, "prod-001", 2, 25.0)
        details = operations.get_cart(cart_id)
        assert str(details.cart.id) == cart_id
        assert details.summary.subtotal == Decimal("50.00")

    def test_get_unknown_cart(self):
        with pytest.raises(ObjectNotFoundError):
            operations.get_cart("no-such-cart")


class TestCartLocks:
    def test_locks_are_released_after_each_command(self):
        for n in range(25):
            cart_id = _create_cart(f"cust-{n:03d}")
            operations.add_item(cart_id, "prod-001", 1, 10.0)
            operations.clear_cart(cart_id)

        assert held_locks() == 0

    def test_failed_command_releases_its_lock(self):
        with pytest.raises(ObjectNotFoundError):
            operations.add_item("no-such-cart", "prod-001", 1, 10.0)
        assert held_locks() == 0
