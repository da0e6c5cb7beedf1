"""Pydantic request/response schemas for the Shopping API.

These are external contracts, kept separate from the internal commands.
Amounts travel as JSON numbers and are converted to ``Decimal`` at the
boundary.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from shopping.cart.cart import Cart
from shopping.coupon.coupon import Coupon
from shopping.coupon.store.port import UsageStats
from shopping.pricing.summary import PaymentSummary
from shopping.shared.money import round_money


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    customer_id: str | None = None

    model_config = {"json_schema_extra": {"examples": [{"customer_id": "cust-001"}]}}


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    unit_discount_percent: float = Field(default=0, ge=0, le=100)
    collection_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "quantity": 2,
                    "unit_price": 250.0,
                    "unit_discount_percent": 0,
                    "collection_id": "summer",
                }
            ]
        }
    }


class AddToCustomerCartRequest(AddToCartRequest):
    """Add an item to the customer's active cart, opening one if they have none."""

    customer_id: str = Field(min_length=1)


class UpdateCartQuantityRequest(BaseModel):
    new_quantity: int = Field(ge=0)


class SetDeliveryFeeRequest(BaseModel):
    delivery_fee: float = Field(ge=0)


class ApplyCouponRequest(BaseModel):
    coupon_code: str = Field(min_length=1, max_length=100)

    model_config = {"json_schema_extra": {"examples": [{"coupon_code": "SAVE20"}]}}


# ---------------------------------------------------------------------------
# Coupon Request Schemas
# ---------------------------------------------------------------------------
class ValidateCouponRequest(BaseModel):
    coupon_code: str = Field(min_length=1, max_length=100)
    order_amount: float = Field(ge=0)
    product_ids: list[str] = Field(default_factory=list)
    collection_ids: list[str] = Field(default_factory=list)


class CreateCouponRequest(BaseModel):
    code: str = Field(min_length=3, max_length=50)
    discount_type: str
    discount_value: float = Field(gt=0)
    expiration_date: date
    scope_type: str = "global"
    scope_target_id: str | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    minimum_order_amount: float | None = Field(default=None, ge=0)
    vendor_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "SAVE20",
                    "discount_type": "percentage_off",
                    "discount_value": 20,
                    "expiration_date": "2030-12-31",
                    "scope_type": "global",
                    "minimum_order_amount": 500,
                }
            ]
        }
    }


class UpdateCouponRequest(BaseModel):
    """Partial update. ``usage_limit`` and ``minimum_order_amount`` may be sent as null to clear them."""

    vendor_id: str | None = None
    discount_value: float | None = Field(default=None, gt=0)
    expiration_date: date | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    minimum_order_amount: float | None = Field(default=None, ge=0)
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CartIdResponse(BaseModel):
    cart_id: str


class StatusResponse(BaseModel):
    status: str = "ok"


class PaymentSummaryResponse(BaseModel):
    subtotal: float
    bag_discount: float
    delivery_fee: float
    amount_payable: float
    item_count: int
    coupon_code: str | None = None

    @classmethod
    def of(cls, summary: PaymentSummary) -> "PaymentSummaryResponse":
        return cls(
            subtotal=float(summary.subtotal),
            bag_discount=float(summary.bag_discount),
            delivery_fee=float(summary.delivery_fee),
            amount_payable=float(summary.amount_payable),
            item_count=summary.item_count,
            coupon_code=summary.coupon_code,
        )


class CartUpdateResponse(BaseModel):
    cart_id: str
    payment_summary: PaymentSummaryResponse
    notice: str | None = None


class CartItemResponse(BaseModel):
    id: str
    product_id: str
    collection_id: str | None = None
    quantity: int
    unit_price: float
    unit_discount_percent: float
    line_total: float


class AppliedCouponResponse(BaseModel):
    code: str
    discount_type: str
    discount_value: float
    scope_type: str
    scope_target_id: str | None = None
    applied_at: datetime | None = None


class CartResponse(BaseModel):
    cart_id: str
    customer_id: str | None = None
    status: str
    items: list[CartItemResponse]
    applied_coupon: AppliedCouponResponse | None = None
    payment_summary: PaymentSummaryResponse

    @classmethod
    def of(cls, cart: Cart, summary: PaymentSummary) -> "CartResponse":
        snapshot = cart.applied_coupon
        return cls(
            cart_id=str(cart.id),
            customer_id=str(cart.customer_id) if cart.customer_id else None,
            status=cart.status,
            items=[
                CartItemResponse(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    collection_id=str(item.collection_id) if item.collection_id else None,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    unit_discount_percent=item.unit_discount_percent or 0.0,
                    line_total=float(round_money(item.line_total)),
                )
                for item in cart.items
            ],
            applied_coupon=(
                AppliedCouponResponse(
                    code=snapshot.code,
                    discount_type=snapshot.discount_type,
                    discount_value=snapshot.discount_value,
                    scope_type=snapshot.scope_type,
                    scope_target_id=snapshot.scope_target_id,
                    applied_at=snapshot.applied_at,
                )
                if snapshot
                else None
            ),
            payment_summary=PaymentSummaryResponse.of(summary),
        )


class CouponCheckResponse(BaseModel):
    coupon_code: str
    valid: bool
    discount_amount: float
    final_amount: float
    failure_reason: str | None = None
    message: str | None = None


class CouponFailureResponse(BaseModel):
    """Body of a rejected coupon application."""

    failure_reason: str
    message: str


class CouponUsageResponse(BaseModel):
    coupon_code: str
    total_uses: int
    total_discount_given: float
    total_order_value: float
    avg_discount: float
    avg_order_value: float

    @classmethod
    def of(cls, stats: UsageStats) -> "CouponUsageResponse":
        return cls(
            coupon_code=stats.code,
            total_uses=stats.total_uses,
            total_discount_given=float(stats.total_discount_given),
            total_order_value=float(stats.total_order_value),
            avg_discount=float(stats.avg_discount),
            avg_order_value=float(stats.avg_order_value),
        )


# ---------------------------------------------------------------------------
# Coupon Management Response Schemas
# ---------------------------------------------------------------------------
class CouponResponse(BaseModel):
    code: str
    discount_type: str
    discount_value: float
    scope_type: str
    scope_target_id: str | None = None
    expiration_date: date
    usage_limit: int | None = None
    usage_count: int
    minimum_order_amount: float | None = None
    is_active: bool
    vendor_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def of(cls, coupon: Coupon) -> "CouponResponse":
        return cls(
            code=coupon.code,
            discount_type=coupon.kind.type.value,
            discount_value=float(coupon.kind.value),
            scope_type=coupon.scope.type.value,
            scope_target_id=coupon.scope.target_id,
            expiration_date=coupon.expiration_date,
            usage_limit=coupon.usage_limit,
            usage_count=coupon.usage_count,
            minimum_order_amount=(
                float(coupon.minimum_order_amount) if coupon.minimum_order_amount is not None else None
            ),
            is_active=coupon.is_active,
            vendor_id=coupon.vendor_id,
            created_at=coupon.created_at,
        )


class CouponDetailsResponse(BaseModel):
    coupon: CouponResponse
    total_uses: int
    total_discount_given: float


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class CouponListResponse(BaseModel):
    coupons: list[CouponResponse]
    pagination: PaginationResponse


class VendorCouponStatsResponse(BaseModel):
    vendor_id: str
    total_coupons: int
    active_coupons: int
    expired_coupons: int
    inactive_coupons: int
    total_uses: int
    total_discount_given: float


class RedemptionResponse(BaseModel):
    id: str
    coupon_code: str
    cart_id: str
    customer_id: str | None = None
    order_amount: float
    discount_amount: float
    redeemed_at: datetime


class VendorUsageResponse(BaseModel):
    vendor_id: str
    total_uses: int
    total_discount_given: float
    total_order_value: float
    avg_discount: float
    avg_order_value: float
    unique_customers: int
    by_coupon: list[CouponUsageResponse]
    history: list[RedemptionResponse]
