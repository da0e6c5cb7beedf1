"""Domain events for the Cart aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from shopping.domain import shopping


@shopping.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart, or its quantity increased."""

    __version__ = "v1"

    cart_id: Identifier(required=True)
    item_id: Identifier(required=True)
    product_id: Identifier(required=True)
    quantity: Integer(required=True)


@shopping.event(part_of="Cart")
class CartQuantityUpdated:
    """The quantity of a cart item was changed."""

    __version__ = "v1"

    cart_id: Identifier(required=True)
    item_id: Identifier(required=True)
    previous_quantity: Integer(required=True)
    new_quantity: Integer(required=True)


@shopping.event(part_of="Cart")
class CartItemRemoved:
    __version__ = "v1"

    cart_id: Identifier(required=True)
    item_id: Identifier(required=True)


@shopping.event(part_of="Cart")
class CartCouponApplied:
    """A coupon was applied, replacing ``replaced_code`` if one was active."""

    __version__ = "v1"

    cart_id: Identifier(required=True)
    coupon_code: String(required=True, max_length=50)
    discount_amount: Float(required=True)
    replaced_code: String(max_length=50)


@shopping.event(part_of="Cart")
class CartCouponRemoved:
    __version__ = "v1"

    cart_id: Identifier(required=True)
    coupon_code: String(required=True, max_length=50)


@shopping.event(part_of="Cart")
class CartCouponDetached:
    """An applied coupon stopped validating after the cart changed."""

    __version__ = "v1"

    cart_id: Identifier(required=True)
    coupon_code: String(required=True, max_length=50)
    reason: String(required=True, max_length=50)


@shopping.event(part_of="Cart")
class CartDeliveryFeeSet:
    __version__ = "v1"

    cart_id: Identifier(required=True)
    delivery_fee: Float(required=True)


@shopping.event(part_of="Cart")
class CartCleared:
    __version__ = "v1"

    cart_id: Identifier(required=True)


@shopping.event(part_of="Cart")
class CartCheckedOut:
    """The cart was converted into an order at checkout."""

    __version__ = "v1"

    cart_id: Identifier(required=True)
    customer_id: Identifier()
    amount_payable: Float(required=True)
    coupon_code: String(max_length=50)
    checked_out_at: DateTime(required=True)
