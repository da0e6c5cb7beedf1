import os
from datetime import UTC, datetime, timedelta

import pytest
from shopping.coupon.coupon import Coupon, CouponScope, DiscountKind


@pytest.fixture(scope="session")
def _shopping_domain(request):
    """Initialize the shopping domain once per session."""
    os.environ["SHOPPING_ENV"] = request.config.option.env

    from shopping.domain import shopping
    from shopping.utils.db import configure_database

    configure_database(shopping)
    shopping.init()
    return shopping


@pytest.fixture(scope="session", autouse=True)
def setup_db(_shopping_domain):
    from shopping.utils.db import drop_db, setup_db

    setup_db(_shopping_domain)

    yield

    drop_db(_shopping_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_shopping_domain):
    """Push domain context before each test, cleanup after."""
    from shopping.coupon.store import reset_coupon_store

    ctx = _shopping_domain.domain_context()
    ctx.push()
    reset_coupon_store()

    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    reset_coupon_store()
    ctx.pop()


def _next_month():
    return datetime.now(UTC).date() + timedelta(days=30)


@pytest.fixture()
def make_coupon():
    """Build a coupon; defaults to a global 20% coupon valid for a month."""

    def _make(code="SAVE20", scope=None, kind=None, **overrides):
        return Coupon(
            code=code,
            scope=scope or CouponScope.everything(),
            kind=kind or DiscountKind.percentage_off(20),
            expiration_date=overrides.pop("expiration_date", _next_month()),
            **overrides,
        )

    return _make


@pytest.fixture()
def coupon_store():
    from shopping.coupon.store import get_coupon_store

    return get_coupon_store()


@pytest.fixture()
def register_coupon(make_coupon, coupon_store):
    """Build a coupon and add it to the active coupon store."""

    def _register(code="SAVE20", **kwargs):
        return coupon_store.add(make_coupon(code, **kwargs))

    return _register
