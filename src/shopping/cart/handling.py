"""Shared plumbing for cart command handlers."""

import threading
from contextlib import nullcontext
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from shopping.cart.cart import Cart, CartStatus
from shopping.coupon.coupon import Coupon
from shopping.coupon.store import get_coupon_store
from shopping.pricing.summary import PaymentSummary, Repricing
from shopping.pricing.validation import ValidationFailure
from shopping.utils.locks import KeyedLock

logger = structlog.get_logger(__name__)

_cart_locks = KeyedLock()
_memory_provider_lock = threading.Lock()


@dataclass(frozen=True)
class CartUpdate:
    """Outcome of a cart mutation: the new summary, and a notice if a coupon was detached."""

    cart_id: str
    summary: PaymentSummary
    notice: str | None = None

    @classmethod
    def of(cls, cart: Cart, repricing: Repricing) -> "CartUpdate":
        notice = repricing.detachment.message if repricing.detachment else None
        return cls(cart_id=str(cart.id), summary=repricing.summary, notice=notice)


@dataclass(frozen=True)
class CouponApplication:
    applied: bool
    summary: PaymentSummary
    failure: ValidationFailure | None = None

    @property
    def message(self) -> str | None:
        return self.failure.message if self.failure else None


def _provider_serialization():
    # Units of work on the memory provider are not isolated from each other.
    provider = current_domain.providers["default"]
    if provider.conn_info["provider"] == "memory":
        return _memory_provider_lock
    return nullcontext()


def process(command, lock_key):
    """Run ``command`` synchronously while holding the lock for ``lock_key``.

    Commands for the same cart (or, for cart creation, the same customer)
    run one at a time; the redeem-then-save sequence of one request never
    interleaves with another request's on the same cart.
    """
    with _cart_locks.hold(lock_key), _provider_serialization():
        return current_domain.process(command, asynchronous=False)


def held_locks() -> int:
    """Number of cart keys that currently have a lock entry."""
    return len(_cart_locks)


def load_cart(cart_id) -> Cart:
    return current_domain.repository_for(Cart).get(str(cart_id))


def find_active_cart(customer_id) -> Cart | None:
    """The customer's active cart, if they have one."""
    carts = (
        current_domain.repository_for(Cart)
        ._dao.query.filter(customer_id=str(customer_id), status=CartStatus.ACTIVE.value)
        .all()
        .items
    )
    return carts[0] if carts else None


def save_cart(cart: Cart) -> None:
    """Log the events the cart's mutations raised, then persist it."""
    for event in cart._events:
        logger.info(
            "cart_event",
            event_type=type(event).__name__,
            version=event.__version__,
            cart_id=str(cart.id),
            **{
                name: str(value)
                for name, value in event.to_dict().items()
                if name not in ("cart_id", "_metadata") and value is not None
            },
        )
    current_domain.repository_for(Cart).add(cart)


def applied_coupon_record(cart: Cart) -> Coupon | None:
    """Current store record for the coupon on ``cart``, or None if there is none or it no longer resolves."""
    if cart.applied_coupon is None:
        return None
    return get_coupon_store().get(cart.applied_coupon.code)
