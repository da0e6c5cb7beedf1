"""FastAPI routes for the Shopping context: carts and coupons.

Each route translates between Pydantic schemas (external contract) and the
cart and coupon operations. Domain errors surface through the exception
handlers registered with ``register_exception_handlers``.
"""

from datetime import datetime

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from shopping.api.schemas import (
    AddToCartRequest,
    AddToCustomerCartRequest,
    ApplyCouponRequest,
    CartIdResponse,
    CartResponse,
    CartUpdateResponse,
    CouponCheckResponse,
    CouponDetailsResponse,
    CouponFailureResponse,
    CouponListResponse,
    CouponResponse,
    CouponUsageResponse,
    CreateCartRequest,
    CreateCouponRequest,
    PaginationResponse,
    PaymentSummaryResponse,
    RedemptionResponse,
    SetDeliveryFeeRequest,
    StatusResponse,
    UpdateCartQuantityRequest,
    UpdateCouponRequest,
    ValidateCouponRequest,
    VendorCouponStatsResponse,
    VendorUsageResponse,
)
from shopping.cart import operations
from shopping.cart.handling import CartUpdate
from shopping.coupon import management
from shopping.pricing.validation import ValidationFailure

_COUPON_FAILURES = {
    400: {"model": CouponFailureResponse, "description": "The coupon does not apply to this cart"},
    404: {"model": CouponFailureResponse, "description": "No active coupon has this code"},
}


def _failure_status(failure: ValidationFailure) -> int:
    return 404 if failure is ValidationFailure.NOT_FOUND else 400


def _update_response(update: CartUpdate) -> CartUpdateResponse:
    return CartUpdateResponse(
        cart_id=update.cart_id,
        payment_summary=PaymentSummaryResponse.of(update.summary),
        notice=update.notice,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    """Open a cart, or return the customer's active one."""
    return CartIdResponse(cart_id=operations.create_cart(customer_id=body.customer_id))


@cart_router.post("/items", response_model=CartUpdateResponse)
async def add_customer_cart_item(body: AddToCustomerCartRequest) -> CartUpdateResponse:
    """Add an item to the customer's active cart, creating the cart if needed."""
    update = operations.add_item(
        customer_id=body.customer_id,
        product_id=body.product_id,
        quantity=body.quantity,
        unit_price=body.unit_price,
        unit_discount_percent=body.unit_discount_percent,
        collection_id=body.collection_id,
    )
    return _update_response(update)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str) -> CartResponse:
    details = operations.get_cart(cart_id)
    return CartResponse.of(details.cart, details.summary)


@cart_router.post("/{cart_id}/items", response_model=CartUpdateResponse)
async def add_cart_item(cart_id: str, body: AddToCartRequest) -> CartUpdateResponse:
    update = operations.add_item(
        cart_id,
        product_id=body.product_id,
        quantity=body.quantity,
        unit_price=body.unit_price,
        unit_discount_percent=body.unit_discount_percent,
        collection_id=body.collection_id,
    )
    return _update_response(update)


@cart_router.put("/{cart_id}/items/{item_id}", response_model=CartUpdateResponse)
async def update_cart_item_quantity(cart_id: str, item_id: str, body: UpdateCartQuantityRequest) -> CartUpdateResponse:
    return _update_response(operations.update_item_quantity(cart_id, item_id, body.new_quantity))


@cart_router.delete("/{cart_id}/items/{item_id}", response_model=CartUpdateResponse)
async def remove_cart_item(cart_id: str, item_id: str) -> CartUpdateResponse:
    return _update_response(operations.remove_item(cart_id, item_id))


@cart_router.delete("/{cart_id}/items", response_model=CartUpdateResponse)
async def clear_cart(cart_id: str) -> CartUpdateResponse:
    return _update_response(operations.clear_cart(cart_id))


@cart_router.put("/{cart_id}/delivery-fee", response_model=CartUpdateResponse)
async def set_delivery_fee(cart_id: str, body: SetDeliveryFeeRequest) -> CartUpdateResponse:
    return _update_response(operations.set_delivery_fee(cart_id, body.delivery_fee))


@cart_router.post("/{cart_id}/coupon", response_model=PaymentSummaryResponse, responses=_COUPON_FAILURES)
async def apply_cart_coupon(cart_id: str, body: ApplyCouponRequest) -> PaymentSummaryResponse:
    result = operations.apply_coupon(cart_id, body.coupon_code)
    if not result.applied:
        failure = CouponFailureResponse(failure_reason=result.failure.value, message=result.message)
        raise HTTPException(status_code=_failure_status(result.failure), detail=failure.model_dump())
    return PaymentSummaryResponse.of(result.summary)


@cart_router.delete("/{cart_id}/coupon", response_model=PaymentSummaryResponse)
async def remove_cart_coupon(cart_id: str) -> PaymentSummaryResponse:
    return PaymentSummaryResponse.of(operations.remove_coupon(cart_id))


@cart_router.post("/{cart_id}/checkout", response_model=CartUpdateResponse)
async def checkout_cart(cart_id: str) -> CartUpdateResponse:
    return _update_response(operations.checkout(cart_id))


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=CouponResponse)
async def create_coupon(body: CreateCouponRequest) -> CouponResponse:
    coupon = management.create_coupon(
        code=body.code,
        discount_type=body.discount_type,
        discount_value=body.discount_value,
        expiration_date=body.expiration_date,
        scope_type=body.scope_type,
        scope_target_id=body.scope_target_id,
        usage_limit=body.usage_limit,
        minimum_order_amount=body.minimum_order_amount,
        vendor_id=body.vendor_id,
    )
    return CouponResponse.of(coupon)


@coupon_router.get("", response_model=CouponListResponse)
async def list_coupons(
    vendor_id: str | None = None,
    search: str | None = None,
    is_active: bool | None = None,
    discount_type: str | None = None,
    scope_type: str | None = None,
    page: int = 1,
    limit: int = management.DEFAULT_PAGE_SIZE,
) -> CouponListResponse:
    result = management.list_coupons(
        vendor_id=vendor_id,
        search=search,
        is_active=is_active,
        discount_type=discount_type,
        scope_type=scope_type,
        page=page,
        limit=limit,
    )
    return CouponListResponse(
        coupons=[CouponResponse.of(coupon) for coupon in result.coupons],
        pagination=PaginationResponse(
            current_page=result.page,
            total_pages=result.total_pages,
            total_items=result.total,
            items_per_page=result.limit,
        ),
    )


@coupon_router.post("/validate", response_model=CouponCheckResponse)
async def validate_coupon(body: ValidateCouponRequest):
    check = operations.validate_coupon(
        body.coupon_code,
        body.order_amount,
        product_ids=body.product_ids,
        collection_ids=body.collection_ids,
    )
    response = CouponCheckResponse(
        coupon_code=check.code,
        valid=check.valid,
        discount_amount=float(check.discount_amount),
        final_amount=float(check.final_amount),
        failure_reason=check.failure_reason,
        message=check.message,
    )
    if not check.valid:
        return JSONResponse(status_code=_failure_status(check.failure), content=response.model_dump())
    return response


@coupon_router.get("/vendors/{vendor_id}/stats", response_model=VendorCouponStatsResponse)
async def vendor_coupon_stats(vendor_id: str) -> VendorCouponStatsResponse:
    stats = management.vendor_stats(vendor_id)
    return VendorCouponStatsResponse(
        vendor_id=stats.vendor_id,
        total_coupons=stats.total_coupons,
        active_coupons=stats.active_coupons,
        expired_coupons=stats.expired_coupons,
        inactive_coupons=stats.inactive_coupons,
        total_uses=stats.total_uses,
        total_discount_given=float(stats.total_discount_given),
    )


@coupon_router.get("/vendors/{vendor_id}/usage", response_model=VendorUsageResponse)
async def vendor_coupon_usage(
    vendor_id: str,
    code: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    page: int = 1,
    limit: int = management.DEFAULT_PAGE_SIZE,
) -> VendorUsageResponse:
    usage = management.vendor_usage(vendor_id, code=code, since=since, until=until, page=page, limit=limit)
    return VendorUsageResponse(
        vendor_id=usage.vendor_id,
        total_uses=usage.totals.total_uses,
        total_discount_given=float(usage.totals.total_discount_given),
        total_order_value=float(usage.totals.total_order_value),
        avg_discount=float(usage.totals.avg_discount),
        avg_order_value=float(usage.totals.avg_order_value),
        unique_customers=usage.unique_customers,
        by_coupon=[CouponUsageResponse.of(stats) for stats in usage.by_coupon],
        history=[
            RedemptionResponse(
                id=entry.id,
                coupon_code=entry.code,
                cart_id=entry.cart_id,
                customer_id=entry.customer_id,
                order_amount=float(entry.order_amount),
                discount_amount=float(entry.discount_amount),
                redeemed_at=entry.redeemed_at,
            )
            for entry in usage.history
        ],
    )


@coupon_router.get("/{code}", response_model=CouponDetailsResponse)
async def get_coupon(code: str, vendor_id: str | None = None) -> CouponDetailsResponse:
    details = management.get_coupon(code, vendor_id=vendor_id)
    return CouponDetailsResponse(
        coupon=CouponResponse.of(details.coupon),
        total_uses=details.total_uses,
        total_discount_given=float(details.total_discount_given),
    )


@coupon_router.put("/{code}", response_model=CouponResponse)
async def update_coupon(code: str, body: UpdateCouponRequest) -> CouponResponse:
    # Nullable limits are only changed when the request names them.
    optional = {
        name: getattr(body, name)
        for name in ("usage_limit", "minimum_order_amount")
        if name in body.model_fields_set
    }
    coupon = management.update_coupon(
        code,
        vendor_id=body.vendor_id,
        discount_value=body.discount_value,
        expiration_date=body.expiration_date,
        is_active=body.is_active,
        **optional,
    )
    return CouponResponse.of(coupon)


@coupon_router.post("/{code}/deactivate", response_model=StatusResponse)
async def deactivate_coupon(code: str, vendor_id: str | None = None) -> StatusResponse:
    management.deactivate_coupon(code, vendor_id=vendor_id)
    return StatusResponse()


@coupon_router.delete("/{code}", response_model=StatusResponse)
async def delete_coupon(code: str, vendor_id: str | None = None) -> StatusResponse:
    management.delete_coupon(code, vendor_id=vendor_id)
    return StatusResponse()


@coupon_router.get("/{code}/usage", response_model=CouponUsageResponse)
async def coupon_usage(code: str) -> CouponUsageResponse:
    return CouponUsageResponse.of(operations.coupon_usage(code))
