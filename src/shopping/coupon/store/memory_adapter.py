"""In-process coupon store for development and testing.

A single lock guards every read-modify-write, which makes ``redeem`` a
serializable conditional increment across request threads.
"""

import threading
from dataclasses import replace
from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError

from shopping.coupon.coupon import Coupon, normalize_code
from shopping.coupon.store.port import CouponRepository, Redemption


def _not_found(code: str) -> ObjectNotFoundError:
    return ObjectNotFoundError({"code": [f"Coupon {code} does not exist"]})


class InMemoryCouponRepository(CouponRepository):
    def __init__(self) -> None:
        self._coupons: dict[str, Coupon] = {}
        self._redemptions: list[Redemption] = []
        self._lock = threading.Lock()

    def add(self, coupon: Coupon) -> Coupon:
        if coupon.created_at is None:
            coupon = replace(coupon, created_at=datetime.now(UTC))
        with self._lock:
            if coupon.code in self._coupons:
                raise ValidationError({"code": ["Coupon code already exists"]})
            self._coupons[coupon.code] = coupon
        return coupon

    def get(self, code: str) -> Coupon | None:
        coupon = self.find(code)
        if coupon is None or not coupon.is_active:
            return None
        return coupon

    def find(self, code: str) -> Coupon | None:
        with self._lock:
            return self._coupons.get(normalize_code(code))

    def find_all(self, vendor_id: str | None = None) -> list[Coupon]:
        with self._lock:
            coupons = list(self._coupons.values())
        if vendor_id is not None:
            coupons = [coupon for coupon in coupons if coupon.vendor_id == str(vendor_id)]
        return sorted(coupons, key=lambda coupon: coupon.created_at, reverse=True)

    def update(self, coupon: Coupon) -> Coupon:
        with self._lock:
            current = self._coupons.get(coupon.code)
            if current is None:
                raise _not_found(coupon.code)
            if coupon.usage_limit is not None and coupon.usage_limit < current.usage_count:
                raise ValidationError({"usage_limit": ["Usage limit cannot be lower than the current usage count"]})
            updated = replace(coupon, usage_count=current.usage_count, created_at=current.created_at)
            self._coupons[coupon.code] = updated
        return updated

    def deactivate(self, code: str) -> None:
        code = normalize_code(code)
        with self._lock:
            coupon = self._coupons.get(code)
            if coupon is None:
                raise _not_found(code)
            self._coupons[code] = coupon.deactivated()

    def delete(self, code: str) -> None:
        code = normalize_code(code)
        with self._lock:
            coupon = self._coupons.get(code)
            if coupon is None:
                raise _not_found(code)
            if coupon.usage_count > 0 or any(entry.code == code for entry in self._redemptions):
                raise ValidationError(
                    {"code": ["Cannot delete coupon that has been used. You can deactivate it instead."]}
                )
            del self._coupons[code]

    def redeem(self, code: str, redemption: Redemption) -> bool:
        code = normalize_code(code)
        with self._lock:
            coupon = self._coupons.get(code)
            if coupon is None or not coupon.is_active or coupon.is_usage_limit_reached():
                return False
            self._coupons[code] = coupon.with_usage_count(coupon.usage_count + 1)
            self._redemptions.append(redemption)
            return True

    def revoke(self, redemption_id: str) -> bool:
        with self._lock:
            entry = next((e for e in self._redemptions if e.id == str(redemption_id)), None)
            if entry is None:
                return False
            self._redemptions.remove(entry)
            coupon = self._coupons.get(entry.code)
            if coupon is not None and coupon.usage_count > 0:
                self._coupons[entry.code] = coupon.with_usage_count(coupon.usage_count - 1)
            return True

    def release(self, code: str) -> bool:
        code = normalize_code(code)
        with self._lock:
            coupon = self._coupons.get(code)
            if coupon is None or coupon.usage_count == 0:
                return False
            self._coupons[code] = coupon.with_usage_count(coupon.usage_count - 1)
            return True

    def redemptions(self, code: str) -> list[Redemption]:
        code = normalize_code(code)
        with self._lock:
            entries = [entry for entry in self._redemptions if entry.code == code]
        return sorted(entries, key=lambda entry: entry.redeemed_at, reverse=True)
