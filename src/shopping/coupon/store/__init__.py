"""Coupon store factory.

Provides get_coupon_store() / set_coupon_store() to swap implementations:
- InMemoryCouponRepository for development and testing
- SqlCouponRepository when SHOPPING_DATABASE_URI is set
"""

import threading

from shopping.coupon.store.port import CouponRepository

_current_store: CouponRepository | None = None
_store_lock = threading.Lock()


def get_coupon_store() -> CouponRepository:
    """Return the current coupon store, creating it on first use."""
    global _current_store
    if _current_store is not None:
        return _current_store

    with _store_lock:
        if _current_store is None:
            from shopping.utils.db import get_engine

            engine = get_engine()
            if engine is None:
                from shopping.coupon.store.memory_adapter import InMemoryCouponRepository

                _current_store = InMemoryCouponRepository()
            else:
                from shopping.coupon.store.sql_adapter import SqlCouponRepository

                _current_store = SqlCouponRepository(engine)
    return _current_store


def set_coupon_store(store: CouponRepository) -> None:
    """Override the active coupon store (useful for tests)."""
    global _current_store
    with _store_lock:
        _current_store = store


def reset_coupon_store() -> None:
    global _current_store
    with _store_lock:
        _current_store = None
