"""Tests for the Cart aggregate: items, delivery fee, checkout and persistence."""

from decimal import Decimal

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from shopping.cart.cart import Cart, CartItem, CartStatus
from shopping.cart.events import (
    CartCheckedOut,
    CartCleared,
    CartDeliveryFeeSet,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
)


def _make_cart():
    return Cart.create(customer_id="cust-001")


class TestCartCreation:
    def test_new_cart_is_active_and_empty(self):
        cart = _make_cart()
        assert cart.status == CartStatus.ACTIVE.value
        assert len(cart.items) == 0
        assert cart.applied_coupon is None
        assert cart.discount_amount == 0.0
        assert cart.delivery_fee == 0.0
        assert cart.created_at is not None

    def test_empty_cart_summary(self):
        summary = _make_cart().payment_summary()
        assert summary.subtotal == Decimal("0.00")
        assert summary.amount_payable == Decimal("0.00")
        assert summary.item_count == 0

    def test_guest_cart_has_no_customer(self):
        assert Cart.create().customer_id is None


class TestCartItem:
    def test_line_total_applies_item_discount(self):
        item = CartItem(product_id="prod-001", quantity=3, unit_price=100.0, unit_discount_percent=10.0)
        assert item.line_total == Decimal("270")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_invalid_quantity(self, quantity):
        with pytest.raises(ValidationError):
            CartItem(product_id="prod-001", quantity=quantity, unit_price=10.0)

    def test_negative_price(self):
        with pytest.raises(ValidationError):
            CartItem(product_id="prod-001", quantity=1, unit_price=-1.0)

    @pytest.mark.parametrize("percent", [-1.0, 101.0])
    def test_item_discount_out_of_range(self, percent):
        with pytest.raises(ValidationError):
            CartItem(product_id="prod-001", quantity=1, unit_price=10.0, unit_discount_percent=percent)


class TestAddItem:
    def test_add_item(self):
        cart = _make_cart()
        repricing = cart.add_item("prod-001", 2, 250.0, collection_id="summer")
        assert len(cart.items) == 1
        assert cart.items[0].collection_id == "summer"
        assert repricing.summary.subtotal == Decimal("500.00")
        assert repricing.summary.item_count == 2

    def test_adding_same_product_increases_quantity(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 250.0)
        cart.add_item("prod-001", 2, 250.0)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_add_item_rejects_quantity(self, quantity):
        cart = _make_cart()
        with pytest.raises(ValidationError) as exc:
            cart.add_item("prod-001", quantity, 10.0)
        assert "quantity" in exc.value.messages

    def test_add_item_raises_event(self):
        cart = _make_cart()
        cart.add_item("prod-001", 2, 10.0)
        events = [e for e in cart._events if isinstance(e, CartItemAdded)]
        assert len(events) == 1
        assert events[0].product_id == "prod-001"
        assert events[0].quantity == 2

    def test_subtotal_uses_unrounded_line_totals(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 0.333)
        cart.add_item("prod-002", 1, 0.333)
        assert cart.payment_summary().subtotal == Decimal("0.67")


class TestUpdateQuantity:
    def test_update_quantity(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        item_id = cart.items[0].id
        cart.update_item_quantity(item_id, 4)
        assert cart.items[0].quantity == 4
        event = next(e for e in cart._events if isinstance(e, CartQuantityUpdated))
        assert event.previous_quantity == 1
        assert event.new_quantity == 4

    def test_zero_quantity_removes_item(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        cart.update_item_quantity(cart.items[0].id, 0)
        assert len(cart.items) == 0
        assert any(isinstance(e, CartItemRemoved) for e in cart._events)

    def test_unknown_item(self):
        cart = _make_cart()
        with pytest.raises(ValidationError) as exc:
            cart.update_item_quantity("missing", 2)
        assert "item_id" in exc.value.messages

    def test_negative_quantity(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        with pytest.raises(ValidationError):
            cart.update_item_quantity(cart.items[0].id, -2)


class TestRemoveAndClear:
    def test_remove_item(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        cart.add_item("prod-002", 1, 20.0)
        first = next(i for i in cart.items if i.product_id == "prod-001")
        cart.remove_item(first.id)
        assert [i.product_id for i in cart.items] == ["prod-002"]

    def test_clear(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        repricing = cart.clear()
        assert len(cart.items) == 0
        assert repricing.summary.subtotal == Decimal("0.00")
        assert any(isinstance(e, CartCleared) for e in cart._events)


class TestDeliveryFee:
    def test_delivery_fee_is_added_to_payable(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 100.0)
        repricing = cart.set_delivery_fee(Decimal("49.5"))
        assert cart.delivery_fee == 49.5
        assert repricing.summary.amount_payable == Decimal("149.50")
        assert any(isinstance(e, CartDeliveryFeeSet) for e in cart._events)

    def test_negative_fee_rejected(self):
        with pytest.raises(ValidationError):
            _make_cart().set_delivery_fee(-1)


class TestCheckout:
    def test_checkout_converts_cart(self):
        cart = _make_cart()
        cart.add_item("prod-001", 2, 50.0)
        repricing = cart.checkout()
        assert cart.status == CartStatus.CONVERTED.value
        event = next(e for e in cart._events if isinstance(e, CartCheckedOut))
        assert event.amount_payable == 100.0
        assert repricing.summary.amount_payable == Decimal("100.00")

    def test_cannot_checkout_empty_cart(self):
        with pytest.raises(ValidationError):
            _make_cart().checkout()

    def test_converted_cart_rejects_mutation(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 50.0)
        cart.checkout()
        with pytest.raises(ValidationError) as exc:
            cart.add_item("prod-002", 1, 5.0)
        assert "status" in exc.value.messages


class TestInvariants:
    def test_discount_cannot_exceed_subtotal(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        with pytest.raises(ValidationError) as exc:
            cart.discount_amount = 20.0
        assert "discount_amount" in exc.value.messages

    def test_discount_requires_a_coupon(self):
        cart = _make_cart()
        cart.add_item("prod-001", 1, 10.0)
        with pytest.raises(ValidationError):
            cart.discount_amount = 5.0


class TestPersistence:
    def test_cart_round_trips_through_repository(self):
        cart = _make_cart()
        cart.add_item("prod-001", 2, 19.99, unit_discount_percent=5.0, collection_id="summer")
        cart.set_delivery_fee(Decimal("4.99"))
        current_domain.repository_for(Cart).add(cart)

        restored = current_domain.repository_for(Cart).get(cart.id)
        assert restored.customer_id == "cust-001"
        assert restored.items[0].id == cart.items[0].id
        assert restored.items[0].unit_discount_percent == 5.0
        assert restored.payment_summary() == cart.payment_summary()
