"""Currency helpers.

Amounts are carried as ``Decimal`` and rounded half-up to two places.
Floats coming from JSON payloads are converted through ``str`` so that
``0.1`` stays ``Decimal("0.1")``.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from protean.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, field: str = "amount") -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError({field: [f"Invalid amount: {value!r}"]})
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({field: [f"Invalid amount: {value!r}"]}) from None


def round_money(value) -> Decimal:
    """Round an amount half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
