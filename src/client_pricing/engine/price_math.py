"""
Price Math - the one place final prices are computed.

Both the live preview path and the persisted upsert path call these
functions, so a previewed price and a saved price can never diverge.
"""
from typing import Optional

from ..errors import ValidationError
from .models import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    DISCOUNT_TYPES,
    PRICING_FIXED,
    PRICING_MARKUP,
)


def round_money(value: float) -> float:
    """Round to cents."""
    return round(float(value), 2)


def compute_final_price(
    base_price: float,
    adjustment_type: str,
    adjustment_value: float,
    markup: bool = False
) -> float:
    """
    Apply a percentage or fixed adjustment to a base price.

    Discounts subtract, markups add. The result is floored at 0 and rounded
    to cents; an aggressive markdown yields 0 rather than an error.
    """
    if adjustment_type not in DISCOUNT_TYPES:
        raise ValidationError(
            f"Invalid adjustment type '{adjustment_type}', must be one of: {sorted(DISCOUNT_TYPES)}"
        )
    if adjustment_value is None or float(adjustment_value) < 0:
        raise ValidationError(f"Adjustment value must be >= 0, got {adjustment_value}")
    if base_price is None or float(base_price) < 0:
        raise ValidationError(f"Base price must be >= 0, got {base_price}")

    base_price = float(base_price)
    value = float(adjustment_value)
    sign = 1 if markup else -1

    if adjustment_type == DISCOUNT_PERCENTAGE:
        price = base_price * (1 + sign * value / 100.0)
    elif adjustment_type == DISCOUNT_FIXED:
        price = base_price + sign * value

    return round_money(max(0.0, price))


def compute_tier_final_price(base_price: float, discount_type: str, discount_value: float) -> float:
    """Final price of a tier rule: base price less its discount."""
    return compute_final_price(base_price, discount_type, discount_value)


def compute_client_final_price(
    pricing_type: str,
    fixed_price: Optional[float] = None,
    base_price: Optional[float] = None,
    markup_type: Optional[str] = None,
    markup_value: Optional[float] = None
) -> float:
    """Final price of a client rule: the fixed price, or base price plus markup."""
    if pricing_type == PRICING_FIXED:
        if fixed_price is None:
            raise ValidationError("fixed_price is required for fixed pricing")
        if float(fixed_price) < 0:
            raise ValidationError(f"fixed_price must be >= 0, got {fixed_price}")
        return round_money(max(0.0, float(fixed_price)))

    if pricing_type == PRICING_MARKUP:
        if base_price is None:
            raise ValidationError("base_price is required for markup pricing")
        if not markup_type:
            raise ValidationError("markup_type is required for markup pricing")
        return compute_final_price(base_price, markup_type, markup_value, markup=True)

    raise ValidationError(f"Invalid pricing type '{pricing_type}', must be 'fixed' or 'markup'")
