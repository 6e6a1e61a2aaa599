"""
Unit tests for shipping fee calculation.
"""

from decimal import Decimal

import pytest

from marketplace_finance.core.errors import InvalidShippingInput
from marketplace_finance.core.shipping import ShippingFeeInput, calculate_shipping_fee


def make_input(**overrides) -> ShippingFeeInput:
    fields = dict(
        actual_weight_kg=Decimal("2"),
        length_cm=Decimal("10"),
        width_cm=Decimal("10"),
        height_cm=Decimal("10"),
        base_rate=Decimal("30"),
        per_kg_rate=Decimal("10"),
    )
    fields.update(overrides)
    return ShippingFeeInput(**fields)


class TestShippingFee:
    """Test zone + weight fee calculation."""

    def test_actual_weight_dominates(self):
        """Verify a small heavy parcel is charged by actual weight."""
        result = calculate_shipping_fee(make_input())
        # volumetric 1000 / 5000 = 0.2 kg
        assert result.volumetric_weight_kg == Decimal("0.2")
        assert result.chargeable_weight_kg == Decimal("2")
        assert result.excess_weight_fee == Decimal("10")
        assert result.total_fee == Decimal("40")

    def test_volumetric_weight_dominates(self):
        """Verify a bulky light parcel is charged by volumetric weight."""
        result = calculate_shipping_fee(make_input(
            actual_weight_kg=Decimal("1"),
            length_cm=Decimal("50"),
            width_cm=Decimal("40"),
            height_cm=Decimal("10"),
        ))
        # 20000 / 5000 = 4 kg, 3 kg excess
        assert result.chargeable_weight_kg == Decimal("4")
        assert result.total_fee == Decimal("60")

    def test_first_kilogram_included(self):
        """Verify parcels up to 1 kg pay only the base rate."""
        result = calculate_shipping_fee(make_input(actual_weight_kg=Decimal("0.8")))
        assert result.excess_weight_fee == Decimal("0")
        assert result.total_fee == Decimal("30")

    def test_subsidy_is_logistics_surcharge(self):
        """Verify the customer fee is reduced by the logistics surcharge."""
        result = calculate_shipping_fee(make_input(actual_weight_kg=Decimal("3")))
        # total 50, minus 10 surcharge = 40 (>= 75% of 50)
        assert result.customer_fee == Decimal("40")
        assert result.platform_subsidy == Decimal("10")

    def test_subsidy_capped_at_quarter(self):
        """Verify the subsidy never exceeds 25% of the total fee."""
        result = calculate_shipping_fee(make_input(
            actual_weight_kg=Decimal("1"), base_rate=Decimal("20"),
        ))
        # total 20, surcharge would leave 10, cap keeps 15
        assert result.customer_fee == Decimal("15")
        assert result.platform_subsidy == Decimal("5")
        assert result.customer_fee + result.platform_subsidy == result.total_fee

    def test_negative_dimension_rejected(self):
        """Verify negative measurements are rejected with the field name."""
        with pytest.raises(InvalidShippingInput) as exc_info:
            calculate_shipping_fee(make_input(height_cm=Decimal("-1")))
        assert exc_info.value.field == "height_cm"
