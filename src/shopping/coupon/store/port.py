"""Coupon repository port (abstract interface).

Defines the contract every coupon store adapter implements. The store is
the single source of truth for a coupon's usage count: the only way to
count a redemption is ``redeem``, an atomic "increment if below the limit".
A separate read followed by a write is never used for it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from shopping.coupon.coupon import Coupon, normalize_code
from shopping.shared.money import ZERO, round_money


@dataclass(frozen=True)
class Redemption:
    """One successful application of a coupon to a cart."""

    code: str
    cart_id: str
    order_amount: Decimal
    discount_amount: Decimal
    redeemed_at: datetime
    customer_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class UsageStats:
    code: str
    total_uses: int = 0
    total_discount_given: Decimal = ZERO
    total_order_value: Decimal = ZERO
    avg_discount: Decimal = ZERO
    avg_order_value: Decimal = ZERO

    @classmethod
    def of(cls, code: str, entries: list[Redemption]) -> "UsageStats":
        if not entries:
            return cls(code=code)

        total_discount = sum((entry.discount_amount for entry in entries), ZERO)
        total_order = sum((entry.order_amount for entry in entries), ZERO)
        return cls(
            code=code,
            total_uses=len(entries),
            total_discount_given=round_money(total_discount),
            total_order_value=round_money(total_order),
            avg_discount=round_money(total_discount / len(entries)),
            avg_order_value=round_money(total_order / len(entries)),
        )


class CouponRepository(ABC):
    """Abstract coupon store."""

    @abstractmethod
    def add(self, coupon: Coupon) -> Coupon:
        """Register a new coupon. Raises ValidationError if the code is taken."""
        ...

    @abstractmethod
    def get(self, code: str) -> Coupon | None:
        """Return the active coupon for ``code`` (case-insensitive), or None."""
        ...

    @abstractmethod
    def find(self, code: str) -> Coupon | None:
        """Return the coupon for ``code`` whether or not it is active."""
        ...

    @abstractmethod
    def find_all(self, vendor_id: str | None = None) -> list[Coupon]:
        """All coupons, newest first, optionally only those of ``vendor_id``."""
        ...

    @abstractmethod
    def update(self, coupon: Coupon) -> Coupon:
        """Replace the terms of an existing coupon, keeping its usage count.

        Raises ObjectNotFoundError for an unknown code, and ValidationError
        when the new usage limit is below the uses already counted.
        """
        ...

    @abstractmethod
    def deactivate(self, code: str) -> None:
        """Mark a coupon inactive; it stops resolving for carts."""
        ...

    @abstractmethod
    def delete(self, code: str) -> None:
        """Remove a coupon that was never redeemed. Raises ValidationError otherwise."""
        ...

    @abstractmethod
    def redeem(self, code: str, redemption: Redemption) -> bool:
        """Atomically count one use of ``code`` if it is under its limit.

        Returns False, changing nothing, when the coupon is missing, inactive,
        or already at its usage limit.
        """
        ...

    @abstractmethod
    def revoke(self, redemption_id: str) -> bool:
        """Undo a redemption whose cart change never landed.

        Drops the ledger entry and gives back its use in one step. Returns
        False when there is no such redemption.
        """
        ...

    @abstractmethod
    def release(self, code: str) -> bool:
        """Give back one use of ``code``. Returns False when there is none to give back."""
        ...

    @abstractmethod
    def redemptions(self, code: str) -> list[Redemption]:
        """Redemptions of ``code``, most recent first."""
        ...

    def usage_stats(self, code: str) -> UsageStats:
        code = normalize_code(code)
        return UsageStats.of(code, self.redemptions(code))
