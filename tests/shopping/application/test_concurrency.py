"""Concurrent coupon redemption and per-cart serialization."""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from protean import current_domain
from shopping.cart import operations
from shopping.cart.cart import Cart
from shopping.cart.handling import held_locks
from shopping.coupon.store import get_coupon_store, reset_coupon_store
from shopping.domain import shopping
from shopping.pricing.validation import ValidationFailure

WORKERS = 16


def _run_together(fn, args_list):
    barrier = threading.Barrier(len(args_list))

    def _call(args):
        with shopping.domain_context():
            barrier.wait()
            return fn(*args)

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(_call, args_list))


def _load(cart_id):
    return current_domain.repository_for(Cart).get(cart_id)


def _carts_with_one_item(count):
    cart_ids = []
    for _ in range(count):
        cart_id = operations.create_cart()
        operations.add_item(cart_id, "prod-001", 1, 100.0)
        cart_ids.append(cart_id)
    return cart_ids


class TestSingleUseCoupon:
    def test_exactly_one_cart_wins(self, register_coupon, coupon_store):
        register_coupon("ONCE", usage_limit=1)
        cart_ids = _carts_with_one_item(WORKERS)

        results = _run_together(operations.apply_coupon, [(cart_id, "ONCE") for cart_id in cart_ids])

        assert sum(1 for r in results if r.applied) == 1
        failures = [r.failure for r in results if not r.applied]
        assert failures == [ValidationFailure.USAGE_LIMIT_EXCEEDED] * (WORKERS - 1)
        assert coupon_store.get("ONCE").usage_count == 1
        assert len(coupon_store.redemptions("ONCE")) == 1

        discounted = [cid for cid in cart_ids if _load(cid).applied_coupon is not None]
        assert len(discounted) == 1

    def test_limit_is_never_exceeded(self, register_coupon, coupon_store):
        register_coupon("FEW", usage_limit=3)
        cart_ids = _carts_with_one_item(WORKERS)

        results = _run_together(operations.apply_coupon, [(cart_id, "FEW") for cart_id in cart_ids])

        assert sum(1 for r in results if r.applied) == 3
        assert coupon_store.get("FEW").usage_count == 3


class TestSameCart:
    def test_concurrent_adds_are_not_lost(self):
        cart_id = operations.create_cart()

        _run_together(
            operations.add_item,
            [(cart_id, f"prod-{n:03d}", 1, 10.0) for n in range(WORKERS)],
        )

        cart = _load(cart_id)
        assert len(cart.items) == WORKERS
        assert cart.payment_summary().subtotal == Decimal("10.00") * WORKERS
        assert held_locks() == 0

    def test_same_cart_redeems_once(self, register_coupon, coupon_store):
        register_coupon("SAVE20")
        cart_id = operations.create_cart()
        operations.add_item(cart_id, "prod-001", 1, 100.0)

        results = _run_together(operations.apply_coupon, [(cart_id, "SAVE20")] * 8)

        assert all(r.applied for r in results)
        assert coupon_store.get("SAVE20").usage_count == 1

    def test_same_customer_gets_one_cart(self):
        results = _run_together(operations.create_cart, [("cust-001",)] * 8)
        assert len(set(results)) == 1


class TestCouponStoreCreation:
    def test_threads_share_one_store(self):
        reset_coupon_store()

        stores = _run_together(get_coupon_store, [()] * WORKERS)

        assert len({id(store) for store in stores}) == 1
        assert get_coupon_store() is stores[0]
