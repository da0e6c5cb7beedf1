"""Cart lifecycle and delivery fee: commands and handler."""

from protean import handle
from protean.fields import Float, Identifier

from shopping.cart.cart import Cart
from shopping.cart.handling import CartUpdate, applied_coupon_record, find_active_cart, load_cart, save_cart
from shopping.domain import shopping
from shopping.pricing.validation import current_date


@shopping.command(part_of="Cart")
class CreateCart:
    """Open a cart. A customer who already has an active cart gets that one back."""

    customer_id = Identifier()  # Optional for guest carts


@shopping.command(part_of="Cart")
class ClearCart:
    cart_id = Identifier(required=True)


@shopping.command(part_of="Cart")
class SetDeliveryFee:
    cart_id = Identifier(required=True)
    delivery_fee = Float(required=True, min_value=0.0)


@shopping.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command) -> str:
        if command.customer_id is not None:
            existing = find_active_cart(command.customer_id)
            if existing is not None:
                return str(existing.id)

        cart = Cart.create(customer_id=command.customer_id)
        save_cart(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command) -> CartUpdate:
        cart = load_cart(command.cart_id)
        repricing = cart.clear(coupon=applied_coupon_record(cart), today=current_date())
        save_cart(cart)
        return CartUpdate.of(cart, repricing)

    @handle(SetDeliveryFee)
    def set_delivery_fee(self, command) -> CartUpdate:
        cart = load_cart(command.cart_id)
        repricing = cart.set_delivery_fee(
            command.delivery_fee,
            coupon=applied_coupon_record(cart),
            today=current_date(),
        )
        save_cart(cart)
        return CartUpdate.of(cart, repricing)
