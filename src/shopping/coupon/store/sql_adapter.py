"""SQLAlchemy-backed coupon store.

Redemption is a single conditional UPDATE::

    UPDATE coupons SET usage_count = usage_count + 1
    WHERE code = :code AND is_active
      AND (usage_limit IS NULL OR usage_count < usage_limit)

The database serializes concurrent updates to the row, so at most
``usage_limit`` of them ever match. Revoking a redemption deletes its
ledger row and decrements the count in the same transaction.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)

from shopping.coupon.coupon import Coupon, CouponScope, DiscountKind, DiscountType, ScopeType, normalize_code
from shopping.coupon.store.port import CouponRepository, Redemption
from shopping.utils.db import metadata

coupons = Table(
    "coupons",
    metadata,
    Column("code", String(50), primary_key=True),
    Column("vendor_id", String(255)),
    Column("scope_type", String(20), nullable=False),
    Column("scope_target_id", String(255)),
    Column("discount_type", String(20), nullable=False),
    Column("discount_value", Numeric(10, 2), nullable=False),
    Column("expiration_date", Date, nullable=False),
    Column("usage_limit", Integer),
    Column("usage_count", Integer, nullable=False, default=0),
    Column("minimum_order_amount", Numeric(10, 2)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

coupon_redemptions = Table(
    "coupon_redemptions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("code", String(50), ForeignKey("coupons.code"), nullable=False, index=True),
    Column("cart_id", String(255), nullable=False),
    Column("customer_id", String(255), index=True),
    Column("order_amount", Numeric(10, 2), nullable=False),
    Column("discount_amount", Numeric(10, 2), nullable=False),
    Column("redeemed_at", DateTime(timezone=True), nullable=False, index=True),
)


def _row_to_coupon(row) -> Coupon:
    return Coupon(
        code=row.code,
        scope=CouponScope(ScopeType(row.scope_type), row.scope_target_id),
        kind=DiscountKind(DiscountType(row.discount_type), row.discount_value),
        expiration_date=row.expiration_date,
        usage_limit=row.usage_limit,
        usage_count=row.usage_count,
        minimum_order_amount=row.minimum_order_amount,
        is_active=row.is_active,
        vendor_id=row.vendor_id,
        created_at=row.created_at,
    )


def _term_values(coupon: Coupon) -> dict:
    return {
        "vendor_id": coupon.vendor_id,
        "scope_type": coupon.scope.type.value,
        "scope_target_id": coupon.scope.target_id,
        "discount_type": coupon.kind.type.value,
        "discount_value": coupon.kind.value,
        "expiration_date": coupon.expiration_date,
        "usage_limit": coupon.usage_limit,
        "minimum_order_amount": coupon.minimum_order_amount,
        "is_active": coupon.is_active,
    }


def _row_to_redemption(row) -> Redemption:
    return Redemption(
        id=row.id,
        code=row.code,
        cart_id=row.cart_id,
        customer_id=row.customer_id,
        order_amount=row.order_amount,
        discount_amount=row.discount_amount,
        redeemed_at=row.redeemed_at,
    )


class SqlCouponRepository(CouponRepository):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def add(self, coupon: Coupon) -> Coupon:
        now = coupon.created_at or datetime.now(UTC)
        with self._engine.begin() as conn:
            existing = conn.execute(select(coupons.c.code).where(coupons.c.code == coupon.code)).first()
            if existing is not None:
                raise ValidationError({"code": ["Coupon code already exists"]})
            conn.execute(
                insert(coupons).values(
                    code=coupon.code,
                    usage_count=coupon.usage_count,
                    created_at=now,
                    updated_at=now,
                    **_term_values(coupon),
                )
            )
        return self.find(coupon.code)

    def get(self, code: str) -> Coupon | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(coupons).where(coupons.c.code == normalize_code(code), coupons.c.is_active.is_(True))
            ).first()
        return _row_to_coupon(row) if row is not None else None

    def find(self, code: str) -> Coupon | None:
        with self._engine.connect() as conn:
            row = conn.execute(select(coupons).where(coupons.c.code == normalize_code(code))).first()
        return _row_to_coupon(row) if row is not None else None

    def find_all(self, vendor_id: str | None = None) -> list[Coupon]:
        query = select(coupons).order_by(coupons.c.created_at.desc(), coupons.c.code)
        if vendor_id is not None:
            query = query.where(coupons.c.vendor_id == str(vendor_id))
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
        return [_row_to_coupon(row) for row in rows]

    def update(self, coupon: Coupon) -> Coupon:
        statement = update(coupons).where(coupons.c.code == coupon.code)
        if coupon.usage_limit is not None:
            statement = statement.where(coupons.c.usage_count <= coupon.usage_limit)
        statement = statement.values(updated_at=datetime.now(UTC), **_term_values(coupon))

        with self._engine.begin() as conn:
            if conn.execute(statement).rowcount != 1:
                exists = conn.execute(select(coupons.c.code).where(coupons.c.code == coupon.code)).first()
                if exists is None:
                    raise ObjectNotFoundError({"code": [f"Coupon {coupon.code} does not exist"]})
                raise ValidationError({"usage_limit": ["Usage limit cannot be lower than the current usage count"]})
        return self.find(coupon.code)

    def deactivate(self, code: str) -> None:
        code = normalize_code(code)
        with self._engine.begin() as conn:
            result = conn.execute(
                update(coupons).where(coupons.c.code == code).values(is_active=False, updated_at=datetime.now(UTC))
            )
            if result.rowcount == 0:
                raise ObjectNotFoundError({"code": [f"Coupon {code} does not exist"]})

    def delete(self, code: str) -> None:
        code = normalize_code(code)
        with self._engine.begin() as conn:
            exists = conn.execute(select(coupons.c.code).where(coupons.c.code == code)).first()
            if exists is None:
                raise ObjectNotFoundError({"code": [f"Coupon {code} does not exist"]})

            redeemed = conn.execute(
                select(func.count()).select_from(coupon_redemptions).where(coupon_redemptions.c.code == code)
            ).scalar_one()
            result = conn.execute(delete(coupons).where(coupons.c.code == code, coupons.c.usage_count == 0))
            if redeemed or result.rowcount != 1:
                raise ValidationError(
                    {"code": ["Cannot delete coupon that has been used. You can deactivate it instead."]}
                )

    def redeem(self, code: str, redemption: Redemption) -> bool:
        code = normalize_code(code)
        statement = (
            update(coupons)
            .where(
                coupons.c.code == code,
                coupons.c.is_active.is_(True),
                or_(coupons.c.usage_limit.is_(None), coupons.c.usage_count < coupons.c.usage_limit),
            )
            .values(usage_count=coupons.c.usage_count + 1, updated_at=datetime.now(UTC))
        )
        with self._engine.begin() as conn:
            if conn.execute(statement).rowcount != 1:
                return False
            conn.execute(
                insert(coupon_redemptions).values(
                    id=redemption.id,
                    code=code,
                    cart_id=redemption.cart_id,
                    customer_id=redemption.customer_id,
                    order_amount=redemption.order_amount,
                    discount_amount=redemption.discount_amount,
                    redeemed_at=redemption.redeemed_at,
                )
            )
        return True

    def revoke(self, redemption_id: str) -> bool:
        with self._engine.begin() as conn:
            row = conn.execute(
                select(coupon_redemptions.c.code).where(coupon_redemptions.c.id == str(redemption_id))
            ).first()
            if row is None:
                return False
            result = conn.execute(delete(coupon_redemptions).where(coupon_redemptions.c.id == str(redemption_id)))
            if result.rowcount != 1:
                return False
            conn.execute(
                update(coupons)
                .where(coupons.c.code == row.code, coupons.c.usage_count > 0)
                .values(usage_count=coupons.c.usage_count - 1, updated_at=datetime.now(UTC))
            )
        return True

    def release(self, code: str) -> bool:
        statement = (
            update(coupons)
            .where(coupons.c.code == normalize_code(code), coupons.c.usage_count > 0)
            .values(usage_count=coupons.c.usage_count - 1, updated_at=datetime.now(UTC))
        )
        with self._engine.begin() as conn:
            return conn.execute(statement).rowcount == 1

    def redemptions(self, code: str) -> list[Redemption]:
        query = (
            select(coupon_redemptions)
            .where(coupon_redemptions.c.code == normalize_code(code))
            .order_by(coupon_redemptions.c.redeemed_at.desc())
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()
        return [_row_to_redemption(row) for row in rows]
