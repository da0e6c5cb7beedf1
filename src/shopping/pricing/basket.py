"""What the validator and calculator see of an order.

``Basket`` is built from priced cart lines. ``OrderOutline`` stands in for a
basket when only an order amount and the ids in it are known (the coupon
precheck used outside a cart).
"""

from dataclasses import dataclass
from decimal import Decimal

from protean.exceptions import ValidationError

from shopping.coupon.coupon import CouponScope, ScopeType
from shopping.shared.money import round_money, to_decimal


@dataclass(frozen=True)
class BasketLine:
    product_id: str
    collection_id: str | None
    quantity: int
    amount: Decimal  # line total after the vendor's per-item discount, unrounded


@dataclass(frozen=True)
class Basket:
    lines: tuple[BasketLine, ...] = ()

    @property
    def subtotal(self) -> Decimal:
        """Sum of the line totals, rounded to cents."""
        return round_money(sum((line.amount for line in self.lines), Decimal("0")))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def matches(self, scope: CouponScope) -> bool:
        return any(scope.covers(line.product_id, line.collection_id) for line in self.lines)

    def scoped_subtotal(self, scope: CouponScope) -> Decimal:
        return sum(
            (line.amount for line in self.lines if scope.covers(line.product_id, line.collection_id)),
            Decimal("0"),
        )


@dataclass(frozen=True)
class OrderOutline:
    """An order known only by its amount and the ids it contains.

    An empty id list means the composition is unknown, and the scope is
    taken to match.
    """

    order_amount: Decimal
    product_ids: frozenset[str] = frozenset()
    collection_ids: frozenset[str] = frozenset()

    @classmethod
    def of(cls, order_amount, product_ids=(), collection_ids=()) -> "OrderOutline":
        amount = to_decimal(order_amount, field="order_amount")
        if amount < 0:
            raise ValidationError({"order_amount": ["Order amount cannot be negative"]})
        return cls(
            order_amount=amount,
            product_ids=frozenset(str(pid) for pid in product_ids or ()),
            collection_ids=frozenset(str(cid) for cid in collection_ids or ()),
        )

    @property
    def subtotal(self) -> Decimal:
        return round_money(self.order_amount)

    def matches(self, scope: CouponScope) -> bool:
        if scope.type is ScopeType.PRODUCT:
            return not self.product_ids or scope.target_id in self.product_ids
        if scope.type is ScopeType.COLLECTION:
            return not self.collection_ids or scope.target_id in self.collection_ids
        return True

    def scoped_subtotal(self, scope: CouponScope) -> Decimal:
        return self.order_amount if self.matches(scope) else Decimal("0")
