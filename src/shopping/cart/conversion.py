"""Cart checkout: command and handler."""

from protean import handle
from protean.fields import Identifier

from shopping.cart.cart import Cart
from shopping.cart.handling import CartUpdate, applied_coupon_record, load_cart, save_cart
from shopping.domain import shopping
from shopping.pricing.validation import current_date


@shopping.command(part_of="Cart")
class CheckoutCart:
    """Price the cart a final time and convert it. The payable amount is returned to the caller."""

    cart_id = Identifier(required=True)


@shopping.command_handler(part_of=Cart)
class CheckoutCartHandler:
    @handle(CheckoutCart)
    def checkout_cart(self, command) -> CartUpdate:
        cart = load_cart(command.cart_id)
        repricing = cart.checkout(coupon=applied_coupon_record(cart), today=current_date())
        save_cart(cart)
        return CartUpdate.of(cart, repricing)
