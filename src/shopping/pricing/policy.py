"""Usage accounting policy for coupons leaving a cart."""


def refund_usage_on_removal(snapshot) -> bool:  # noqa: ARG001
    """Whether taking ``snapshot`` off a cart gives its redemption back.

    Redemptions are attributed when a coupon is applied. Removing the coupon,
    or replacing it with another one, leaves the usage count as it is.
    """
    return False
