"""Coupon management for vendors and administrators.

Creating, editing, withdrawing and reporting on coupons. A ``vendor_id``
scopes every call to that vendor's coupons: a coupon owned by someone else
is reported as not found. Calls without a ``vendor_id`` act as an
administrator and see every coupon.

Usage counts are never edited here; they only move through redemptions.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from shopping.coupon.coupon import Coupon, CouponScope, DiscountKind, DiscountType, ScopeType, normalize_code
from shopping.coupon.store import get_coupon_store
from shopping.coupon.store.port import Redemption, UsageStats
from shopping.pricing.validation import current_date
from shopping.shared.money import ZERO, round_money

logger = structlog.get_logger(__name__)

# Sentinel for distinguishing "not provided" from None in partial updates
_UNSET = object()

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class CouponDetails:
    coupon: Coupon
    total_uses: int = 0
    total_discount_given: Decimal = ZERO


@dataclass(frozen=True)
class CouponPage:
    coupons: list[Coupon]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass(frozen=True)
class VendorCouponStats:
    vendor_id: str
    total_coupons: int = 0
    active_coupons: int = 0
    expired_coupons: int = 0
    inactive_coupons: int = 0
    total_uses: int = 0
    total_discount_given: Decimal = ZERO


@dataclass(frozen=True)
class VendorUsage:
    """Redemptions of a vendor's coupons over a period."""

    vendor_id: str
    totals: UsageStats
    unique_customers: int = 0
    by_coupon: list[UsageStats] = field(default_factory=list)
    history: list[Redemption] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE


def _choice(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError({field_name: [f"Must be one of: {allowed}"]}) from None


def _page_bounds(page, limit) -> tuple[int, int]:
    return max(1, int(page or 1)), min(MAX_PAGE_SIZE, max(1, int(limit or DEFAULT_PAGE_SIZE)))


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def _owned(code: str, vendor_id=None) -> Coupon:
    coupon = get_coupon_store().find(code)
    if coupon is None or (vendor_id is not None and coupon.vendor_id != str(vendor_id)):
        raise ObjectNotFoundError({"code": ["Coupon not found"]})
    return coupon


def create_coupon(
    code: str,
    discount_type: str,
    discount_value,
    expiration_date: date,
    scope_type: str = ScopeType.GLOBAL.value,
    scope_target_id=None,
    usage_limit: int | None = None,
    minimum_order_amount=None,
    vendor_id=None,
    today: date | None = None,
) -> Coupon:
    """Register a new coupon. Codes are unique regardless of case."""
    if expiration_date < (today or current_date()):
        raise ValidationError({"expiration_date": ["Expiration date cannot be in the past"]})

    coupon = Coupon(
        code=code,
        scope=CouponScope(_choice(ScopeType, scope_type, "scope_type"), scope_target_id),
        kind=DiscountKind(_choice(DiscountType, discount_type, "discount_type"), discount_value),
        expiration_date=expiration_date,
        usage_limit=usage_limit,
        minimum_order_amount=minimum_order_amount,
        vendor_id=str(vendor_id) if vendor_id is not None else None,
    )
    coupon = get_coupon_store().add(coupon)
    logger.info("coupon_created", coupon_code=coupon.code, vendor_id=coupon.vendor_id)
    return coupon


def update_coupon(
    code: str,
    vendor_id=None,
    discount_value=None,
    expiration_date: date | None = None,
    usage_limit=_UNSET,
    minimum_order_amount=_UNSET,
    is_active: bool | None = None,
    today: date | None = None,
) -> Coupon:
    """Change a coupon's terms. Fields left out keep their current value.

    ``usage_limit`` and ``minimum_order_amount`` accept None to remove the
    limit. A usage limit below the uses already counted is rejected. The
    scope and discount type of a coupon never change.
    """
    coupon = _owned(code, vendor_id)
    changes = {}

    if discount_value is not None:
        changes["kind"] = DiscountKind(coupon.kind.type, discount_value)
    if expiration_date is not None:
        if expiration_date < (today or current_date()):
            raise ValidationError({"expiration_date": ["Expiration date cannot be in the past"]})
        changes["expiration_date"] = expiration_date
    if usage_limit is not _UNSET:
        if usage_limit is not None and usage_limit < coupon.usage_count:
            raise ValidationError({"usage_limit": ["Usage limit cannot be lower than the current usage count"]})
        changes["usage_limit"] = usage_limit
    if minimum_order_amount is not _UNSET:
        changes["minimum_order_amount"] = minimum_order_amount
    if is_active is not None:
        changes["is_active"] = is_active

    if not changes:
        return coupon

    updated = get_coupon_store().update(replace(coupon, **changes))
    logger.info("coupon_updated", coupon_code=updated.code, fields=sorted(changes))
    return updated


def deactivate_coupon(code: str, vendor_id=None) -> None:
    """Withdraw a coupon. Carts holding it lose it the next time they are priced."""
    coupon = _owned(code, vendor_id)
    get_coupon_store().deactivate(coupon.code)
    logger.info("coupon_deactivated", coupon_code=coupon.code)


def delete_coupon(code: str, vendor_id=None) -> None:
    """Remove a coupon that was never redeemed."""
    coupon = _owned(code, vendor_id)
    get_coupon_store().delete(coupon.code)
    logger.info("coupon_deleted", coupon_code=coupon.code)


def get_coupon(code: str, vendor_id=None) -> CouponDetails:
    coupon = _owned(code, vendor_id)
    stats = get_coupon_store().usage_stats(coupon.code)
    return CouponDetails(
        coupon=coupon,
        total_uses=stats.total_uses,
        total_discount_given=stats.total_discount_given,
    )


def list_coupons(
    vendor_id=None,
    search: str | None = None,
    is_active: bool | None = None,
    discount_type: str | None = None,
    scope_type: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> CouponPage:
    """Coupons newest first, filtered and paginated.

    ``search`` matches any part of the code, case-insensitively.
    """
    page, limit = _page_bounds(page, limit)
    coupons = get_coupon_store().find_all(vendor_id=vendor_id)

    if search:
        needle = normalize_code(search)
        coupons = [coupon for coupon in coupons if needle in coupon.code]
    if is_active is not None:
        coupons = [coupon for coupon in coupons if coupon.is_active is is_active]
    if discount_type is not None:
        kind = _choice(DiscountType, discount_type, "discount_type")
        coupons = [coupon for coupon in coupons if coupon.kind.type is kind]
    if scope_type is not None:
        scope = _choice(ScopeType, scope_type, "scope_type")
        coupons = [coupon for coupon in coupons if coupon.scope.type is scope]

    start = (page - 1) * limit
    return CouponPage(coupons=coupons[start : start + limit], total=len(coupons), page=page, limit=limit)


def vendor_stats(vendor_id, today: date | None = None) -> VendorCouponStats:
    """Counts of a vendor's coupons by state, and what they have given away."""
    today = today or current_date()
    store = get_coupon_store()
    coupons = store.find_all(vendor_id=vendor_id)

    expired = sum(1 for coupon in coupons if coupon.is_expired(today))
    active = sum(1 for coupon in coupons if coupon.is_active and not coupon.is_expired(today))
    entries = [entry for coupon in coupons for entry in store.redemptions(coupon.code)]

    return VendorCouponStats(
        vendor_id=str(vendor_id),
        total_coupons=len(coupons),
        active_coupons=active,
        expired_coupons=expired,
        inactive_coupons=len(coupons) - active - expired,
        total_uses=len(entries),
        total_discount_given=round_money(sum((entry.discount_amount for entry in entries), ZERO)),
    )


def vendor_usage(
    vendor_id,
    code: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> VendorUsage:
    """Redemptions of the vendor's coupons, optionally for one code and a period.

    ``since`` and ``until`` are inclusive. The history is most recent first.
    """
    page, limit = _page_bounds(page, limit)
    store = get_coupon_store()
    coupons = [_owned(code, vendor_id)] if code else store.find_all(vendor_id=vendor_id)

    since = _as_utc(since) if since is not None else None
    until = _as_utc(until) if until is not None else None

    def in_period(entry: Redemption) -> bool:
        moment = _as_utc(entry.redeemed_at)
        return (since is None or moment >= since) and (until is None or moment <= until)

    by_coupon = []
    history = []
    for coupon in coupons:
        entries = [entry for entry in store.redemptions(coupon.code) if in_period(entry)]
        if entries:
            by_coupon.append(UsageStats.of(coupon.code, entries))
            history.extend(entries)

    history.sort(key=lambda entry: entry.redeemed_at, reverse=True)
    by_coupon.sort(key=lambda stats: stats.total_uses, reverse=True)
    customers = {entry.customer_id for entry in history if entry.customer_id is not None}

    start = (page - 1) * limit
    return VendorUsage(
        vendor_id=str(vendor_id),
        totals=UsageStats.of("", history),
        unique_customers=len(customers),
        by_coupon=by_coupon,
        history=history[start : start + limit],
        page=page,
        limit=limit,
    )

