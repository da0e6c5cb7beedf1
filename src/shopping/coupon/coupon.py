"""Coupon record and its discount terms.

Coupons are owned by the coupon repository (see ``shopping.coupon.store``);
the cart only ever holds a frozen snapshot of a coupon's terms. A coupon has:

- a scope: a single product, a collection of products, or the whole cart
- a kind: percentage off (0 < p <= 100) or a flat amount off
- an expiration date (valid through that day)
- an optional usage limit and the number of redemptions so far
- an optional minimum order amount
"""

import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from protean.exceptions import ValidationError

from shopping.shared.money import to_decimal

CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,50}$")


class ScopeType(Enum):
    PRODUCT = "product"
    COLLECTION = "collection"
    GLOBAL = "global"


class DiscountType(Enum):
    PERCENTAGE_OFF = "percentage_off"
    FLAT_OFF = "flat_off"


def normalize_code(code: str) -> str:
    """Coupon codes are case-insensitive; they are stored upper-cased."""
    return (code or "").strip().upper()


@dataclass(frozen=True)
class CouponScope:
    """Which cart items a coupon may discount."""

    type: ScopeType
    target_id: str | None = None

    def __post_init__(self):
        if self.type is ScopeType.GLOBAL:
            if self.target_id is not None:
                raise ValidationError({"scope": ["A global coupon cannot reference a product or collection"]})
        elif not self.target_id:
            raise ValidationError({"scope": [f"A {self.type.value} coupon requires a {self.type.value} id"]})
        else:
            object.__setattr__(self, "target_id", str(self.target_id))

    @classmethod
    def product(cls, product_id) -> "CouponScope":
        return cls(ScopeType.PRODUCT, product_id)

    @classmethod
    def collection(cls, collection_id) -> "CouponScope":
        return cls(ScopeType.COLLECTION, collection_id)

    @classmethod
    def everything(cls) -> "CouponScope":
        return cls(ScopeType.GLOBAL)

    def covers(self, product_id, collection_id=None) -> bool:
        if self.type is ScopeType.GLOBAL:
            return True
        if self.type is ScopeType.PRODUCT:
            return str(product_id) == self.target_id
        return collection_id is not None and str(collection_id) == self.target_id


@dataclass(frozen=True)
class DiscountKind:
    """How much a coupon takes off."""

    type: DiscountType
    value: Decimal

    def __post_init__(self):
        value = to_decimal(self.value, field="discount_value")
        object.__setattr__(self, "value", value)

        if self.type is DiscountType.PERCENTAGE_OFF and not (0 < value <= 100):
            raise ValidationError({"discount_value": ["Percentage discount must be greater than 0 and at most 100"]})
        if self.type is DiscountType.FLAT_OFF and value <= 0:
            raise ValidationError({"discount_value": ["Flat off amount must be greater than 0"]})

    @classmethod
    def percentage_off(cls, value) -> "DiscountKind":
        return cls(DiscountType.PERCENTAGE_OFF, value)

    @classmethod
    def flat_off(cls, value) -> "DiscountKind":
        return cls(DiscountType.FLAT_OFF, value)


@dataclass(frozen=True)
class Coupon:
    code: str
    scope: CouponScope
    kind: DiscountKind
    expiration_date: date
    usage_limit: int | None = None
    usage_count: int = 0
    minimum_order_amount: Decimal | None = None
    is_active: bool = True
    vendor_id: str | None = None
    created_at: datetime | None = None

    def __post_init__(self):
        code = normalize_code(self.code)
        if not CODE_PATTERN.match(code):
            raise ValidationError({"code": ["Coupon code must be 3 to 50 letters or digits"]})
        object.__setattr__(self, "code", code)

        if self.usage_limit is not None and self.usage_limit < 1:
            raise ValidationError({"usage_limit": ["Usage limit must be at least 1"]})
        if self.usage_count < 0:
            raise ValidationError({"usage_count": ["Used count cannot be negative"]})
        if self.usage_limit is not None and self.usage_count > self.usage_limit:
            raise ValidationError({"usage_count": ["Used count cannot exceed the usage limit"]})

        if self.minimum_order_amount is not None:
            minimum = to_decimal(self.minimum_order_amount, field="minimum_order_amount")
            if minimum < 0:
                raise ValidationError({"minimum_order_amount": ["Minimum order amount cannot be negative"]})
            object.__setattr__(self, "minimum_order_amount", minimum)

    def is_expired(self, today: date) -> bool:
        return today > self.expiration_date

    def is_usage_limit_reached(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def with_usage_count(self, usage_count: int) -> "Coupon":
        return replace(self, usage_count=usage_count)

    def deactivated(self) -> "Coupon":
        return replace(self, is_active=False)
