"""Shopping bounded context: carts, coupons and the cart payment summary.

The Cart is a standard CQRS aggregate. Coupons live in the coupon store
(``shopping.coupon.store``), which owns their usage counts.
"""

import structlog
from protean.domain import Domain

shopping = Domain(name="shopping")

logger = structlog.get_logger(__name__)
