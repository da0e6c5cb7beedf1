"""Shopping Cart aggregate (CQRS).

The cart holds priced items, at most one applied coupon (as a snapshot of
its terms) and the discount it currently gives. Every mutation ends in
``_reprice``, which runs the payment summary builder against the current
coupon record. A coupon that no longer validates is detached there and
nowhere else.

Mutations that can change the discount take the current record of the
applied coupon (``coupon``) so the aggregate never reaches into a store.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from shopping.cart.events import (
    CartCheckedOut,
    CartCleared,
    CartCouponApplied,
    CartCouponDetached,
    CartCouponRemoved,
    CartDeliveryFeeSet,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
)
from shopping.coupon.coupon import Coupon, CouponScope, DiscountKind, DiscountType, ScopeType
from shopping.domain import shopping
from shopping.pricing.basket import Basket, BasketLine
from shopping.pricing.summary import PaymentSummary, Repricing, rebuild, summarize
from shopping.pricing.validation import DiscountTerms
from shopping.shared.money import round_money, to_decimal


class CartStatus(Enum):
    ACTIVE = "Active"
    CONVERTED = "Converted"


def _check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be a positive whole number"]})


@shopping.entity(part_of="Cart")
class CartItem:
    product_id: Identifier(required=True)
    collection_id: Identifier()
    quantity: Integer(required=True, min_value=1)
    unit_price: Float(required=True, min_value=0.0)
    unit_discount_percent: Float(default=0.0, min_value=0.0, max_value=100.0)
    added_at: DateTime()

    @property
    def line_total(self) -> Decimal:
        """Quantity times the unit price net of the vendor's item discount, unrounded."""
        price = to_decimal(self.unit_price, field="unit_price")
        percent = to_decimal(self.unit_discount_percent or 0.0, field="unit_discount_percent")
        return self.quantity * price * (1 - percent / Decimal(100))

    def to_line(self) -> BasketLine:
        return BasketLine(
            product_id=str(self.product_id),
            collection_id=str(self.collection_id) if self.collection_id else None,
            quantity=self.quantity,
            amount=self.line_total,
        )


@shopping.value_object(part_of="Cart")
class DiscountSnapshot:
    """Terms of the applied coupon, as the cart last priced them."""

    code: String(required=True, max_length=50)
    discount_type: String(required=True, choices=DiscountType)
    discount_value: Float(required=True)
    scope_type: String(required=True, choices=ScopeType)
    scope_target_id: Identifier()
    applied_at: DateTime()

    @classmethod
    def from_terms(cls, terms: DiscountTerms, applied_at: datetime | None = None) -> "DiscountSnapshot":
        return cls(
            code=terms.code,
            discount_type=terms.kind.type.value,
            discount_value=float(terms.kind.value),
            scope_type=terms.scope.type.value,
            scope_target_id=terms.scope.target_id,
            applied_at=applied_at or datetime.now(UTC),
        )

    def terms(self) -> DiscountTerms:
        return DiscountTerms(
            code=self.code,
            kind=DiscountKind(DiscountType(self.discount_type), self.discount_value),
            scope=CouponScope(ScopeType(self.scope_type), self.scope_target_id),
        )


@shopping.aggregate
class Cart:
    customer_id: Identifier()  # Nullable for guest carts
    items: HasMany(CartItem)
    applied_coupon: ValueObject(DiscountSnapshot)
    discount_amount: Float(default=0.0)
    delivery_fee: Float(default=0.0, min_value=0.0)
    status: String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def discount_must_not_exceed_subtotal(self):
        discount = to_decimal(self.discount_amount or 0.0)
        if discount < 0 or discount > self.basket().subtotal:
            raise ValidationError({"discount_amount": ["Discount must be between zero and the cart subtotal"]})

    @invariant.post
    def discount_requires_an_applied_coupon(self):
        if self.applied_coupon is None and to_decimal(self.discount_amount or 0.0) != 0:
            raise ValidationError({"discount_amount": ["A cart without a coupon cannot carry a discount"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id=None):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            status=CartStatus.ACTIVE.value,
            discount_amount=0.0,
            delivery_fee=0.0,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Pricing views
    # -------------------------------------------------------------------
    def basket(self) -> Basket:
        return Basket(lines=tuple(item.to_line() for item in self.items))

    @property
    def coupon_code(self) -> str | None:
        return self.applied_coupon.code if self.applied_coupon else None

    def payment_summary(self) -> PaymentSummary:
        """Summary of the cart as last priced."""
        basket = self.basket()
        return summarize(
            basket.subtotal,
            self.discount_amount or 0.0,
            self.delivery_fee or 0.0,
            item_count=basket.item_count,
            coupon_code=self.coupon_code,
        )

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(
        self,
        product_id,
        quantity,
        unit_price,
        unit_discount_percent=0.0,
        collection_id=None,
        coupon: Coupon | None = None,
        today: date | None = None,
    ) -> Repricing:
        """Add an item to the cart, or increase its quantity if the product is already in it."""
        self._ensure_active("Items can only be added to an active cart")
        _check_quantity(quantity)

        existing = next((i for i in self.items if str(i.product_id) == str(product_id)), None)
        item = existing
        if existing is None:
            item = CartItem(
                product_id=product_id,
                collection_id=collection_id,
                quantity=quantity,
                unit_price=unit_price,
                unit_discount_percent=unit_discount_percent or 0.0,
                added_at=datetime.now(UTC),
            )

        with atomic_change(self):
            if existing:
                existing.quantity += quantity
            else:
                self.add_items(item)

            self.raise_(
                CartItemAdded(
                    cart_id=str(self.id),
                    item_id=str(item.id),
                    product_id=str(product_id),
                    quantity=quantity,
                )
            )
            repricing = self._reprice(coupon, today)
        return repricing

    def update_item_quantity(self, item_id, new_quantity, coupon: Coupon | None = None, today: date | None = None):
        """Change an item's quantity. A quantity of 0 removes the item."""
        self._ensure_active("Item quantities can only be updated in an active cart")
        if new_quantity == 0 and not isinstance(new_quantity, bool):
            return self.remove_item(item_id, coupon=coupon, today=today)
        _check_quantity(new_quantity)

        item = self._find_item(item_id)
        previous_quantity = item.quantity

        with atomic_change(self):
            item.quantity = new_quantity
            self.raise_(
                CartQuantityUpdated(
                    cart_id=str(self.id),
                    item_id=str(item.id),
                    previous_quantity=previous_quantity,
                    new_quantity=new_quantity,
                )
            )
            repricing = self._reprice(coupon, today)
        return repricing

    def remove_item(self, item_id, coupon: Coupon | None = None, today: date | None = None) -> Repricing:
        self._ensure_active("Items can only be removed from an active cart")
        item = self._find_item(item_id)

        with atomic_change(self):
            self.remove_items(item)
            self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item.id)))
            repricing = self._reprice(coupon, today)
        return repricing

    def clear(self, coupon: Coupon | None = None, today: date | None = None) -> Repricing:
        """Empty the cart. An applied coupon has nothing left to discount and is detached."""
        self._ensure_active("Only an active cart can be cleared")

        with atomic_change(self):
            for item in list(self.items):
                self.remove_items(item)
            self.raise_(CartCleared(cart_id=str(self.id)))
            repricing = self._reprice(coupon, today)
        return repricing

    # -------------------------------------------------------------------
    # Coupon management
    # -------------------------------------------------------------------
    def apply_coupon(self, coupon: Coupon, today: date | None = None) -> Repricing:
        """Attach ``coupon``, replacing any coupon already on the cart.

        The caller has validated the coupon against this cart and counted
        the redemption.
        """
        self.check_coupon_applicable()
        replaced_code = self.coupon_code

        with atomic_change(self):
            self.applied_coupon = DiscountSnapshot.from_terms(DiscountTerms.of(coupon))
            repricing = self._reprice(coupon, today)

            if repricing.terms is not None:
                self.raise_(
                    CartCouponApplied(
                        cart_id=str(self.id),
                        coupon_code=coupon.code,
                        discount_amount=self.discount_amount,
                        replaced_code=replaced_code,
                    )
                )
        return repricing

    def check_coupon_applicable(self) -> None:
        """Raise unless a coupon may be applied to the cart in its current state."""
        self._ensure_active("Coupons can only be applied to an active cart")
        if not self.items:
            raise ValidationError({"cart": ["Cannot apply a coupon to an empty cart"]})

    def remove_coupon(self) -> DiscountSnapshot | None:
        """Take the applied coupon off the cart. Returns the snapshot that was removed."""
        self._ensure_active("Coupons can only be removed from an active cart")
        removed = self.applied_coupon

        with atomic_change(self):
            self.applied_coupon = None
            self._reprice(None, None)
            if removed is not None:
                self.raise_(CartCouponRemoved(cart_id=str(self.id), coupon_code=removed.code))
        return removed

    def reprice(self, coupon: Coupon | None = None, today: date | None = None) -> Repricing:
        """Re-run the summary builder without changing the cart's contents."""
        self._ensure_active("Only an active cart can be repriced")

        with atomic_change(self):
            repricing = self._reprice(coupon, today)
        return repricing

    # -------------------------------------------------------------------
    # Delivery and checkout
    # -------------------------------------------------------------------
    def set_delivery_fee(self, delivery_fee, coupon: Coupon | None = None, today: date | None = None) -> Repricing:
        self._ensure_active("Delivery fee can only be set on an active cart")
        fee = to_decimal(delivery_fee, field="delivery_fee")
        if fee < 0:
            raise ValidationError({"delivery_fee": ["Delivery fee cannot be negative"]})

        with atomic_change(self):
            self.delivery_fee = float(round_money(fee))
            self.raise_(CartDeliveryFeeSet(cart_id=str(self.id), delivery_fee=self.delivery_fee))
            repricing = self._reprice(coupon, today)
        return repricing

    def checkout(self, coupon: Coupon | None = None, today: date | None = None) -> Repricing:
        """Price the cart one last time and convert it. No mutation is allowed afterwards."""
        self._ensure_active("Only an active cart can be checked out")
        if not self.items:
            raise ValidationError({"cart": ["Cannot check out an empty cart"]})

        with atomic_change(self):
            repricing = self._reprice(coupon, today)
            self.status = CartStatus.CONVERTED.value
            self.raise_(
                CartCheckedOut(
                    cart_id=str(self.id),
                    customer_id=str(self.customer_id) if self.customer_id else None,
                    amount_payable=float(repricing.summary.amount_payable),
                    coupon_code=self.coupon_code,
                    checked_out_at=self.updated_at,
                )
            )
        return repricing

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _reprice(self, coupon: Coupon | None, today: date | None) -> Repricing:
        applied = self.applied_coupon.terms() if self.applied_coupon else None
        repricing = rebuild(self.basket(), applied, coupon, self.delivery_fee or 0.0, today=today)

        if repricing.detachment is not None:
            self.applied_coupon = None
            self.raise_(
                CartCouponDetached(
                    cart_id=str(self.id),
                    coupon_code=repricing.detachment.code,
                    reason=repricing.detachment.reason.value,
                )
            )
        elif repricing.terms is not None and repricing.terms != applied:
            self.applied_coupon = DiscountSnapshot.from_terms(repricing.terms, self.applied_coupon.applied_at)

        self.discount_amount = float(repricing.discount_amount)
        self.updated_at = datetime.now(UTC)
        return repricing

    def _ensure_active(self, message: str) -> None:
        if self.status != CartStatus.ACTIVE.value:
            raise ValidationError({"status": [message]})

    def _find_item(self, item_id) -> CartItem:
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return item
