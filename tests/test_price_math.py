"""
Formula checks for the shared final-price computation.
"""
import pytest

from client_pricing.engine.price_math import (
    compute_client_final_price,
    compute_final_price,
    compute_tier_final_price,
)
from client_pricing.errors import ValidationError


def test_percentage_discount():
    assert compute_tier_final_price(100, 'percentage', 10) == pytest.approx(90.00)


def test_fixed_discount():
    assert compute_tier_final_price(100, 'fixed', 15) == pytest.approx(85.00)


def test_percentage_markup():
    price = compute_client_final_price('markup', base_price=200, markup_type='percentage', markup_value=20)
    assert price == pytest.approx(240.00)


def test_fixed_markup():
    price = compute_client_final_price('markup', base_price=200, markup_type='fixed', markup_value=12.5)
    assert price == pytest.approx(212.50)


def test_fixed_client_price_is_used_verbatim():
    assert compute_client_final_price('fixed', fixed_price=700) == pytest.approx(700.00)


@pytest.mark.parametrize("base_price", [1, 99.99, 850, 12345.67])
def test_aggressive_discount_floors_at_zero(base_price):
    """150% off never produces a negative price."""
    assert compute_final_price(base_price, 'percentage', 150) == 0.0


def test_fixed_discount_larger_than_price_floors_at_zero():
    assert compute_final_price(50, 'fixed', 80) == 0.0


def test_result_is_rounded_to_cents():
    assert compute_final_price(850, 'percentage', 15) == pytest.approx(722.50)
    assert compute_final_price(19.99, 'percentage', 33) == pytest.approx(13.39)


def test_negative_discount_rejected():
    with pytest.raises(ValidationError):
        compute_final_price(100, 'percentage', -5)


def test_unknown_discount_type_rejected():
    with pytest.raises(ValidationError):
        compute_final_price(100, 'bogus', 5)


def test_markup_requires_base_price():
    with pytest.raises(ValidationError):
        compute_client_final_price('markup', markup_type='percentage', markup_value=10)


def test_fixed_pricing_requires_fixed_price():
    with pytest.raises(ValidationError):
        compute_client_final_price('fixed')
