"""Cart item management: commands and handler."""

from protean import handle
from protean.fields import Float, Identifier, Integer

from shopping.cart.cart import Cart
from shopping.cart.handling import CartUpdate, applied_coupon_record, load_cart, save_cart
from shopping.domain import shopping
from shopping.pricing.validation import current_date


@shopping.command(part_of="Cart")
class AddToCart:
    """Add a product at the price the catalogue quoted for it."""

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    unit_discount_percent = Float(default=0.0, min_value=0.0, max_value=100.0)
    collection_id = Identifier()


@shopping.command(part_of="Cart")
class UpdateCartQuantity:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=0)  # 0 removes the item


@shopping.command(part_of="Cart")
class RemoveFromCart:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@shopping.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command) -> CartUpdate:
        cart = load_cart(command.cart_id)
        repricing = cart.add_item(
            product_id=command.product_id,
            quantity=command.quantity,
            unit_price=command.unit_price,
            unit_discount_percent=command.unit_discount_percent,
            collection_id=command.collection_id,
            coupon=applied_coupon_record(cart),
            today=current_date(),
        )
        save_cart(cart)
        return CartUpdate.of(cart, repricing)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command) -> CartUpdate:
        cart = load_cart(command.cart_id)
        repricing = cart.update_item_quantity(
            command.item_id,
            command.new_quantity,
            coupon=applied_coupon_record(cart),
            today=current_date(),
        )
        save_cart(cart)
        return CartUpdate.of(cart, repricing)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command) -> CartUpdate:
        cart = load_cart(command.cart_id)
        repricing = cart.remove_item(command.item_id, coupon=applied_coupon_record(cart), today=current_date())
        save_cart(cart)
        return CartUpdate.of(cart, repricing)
