"""
Unit tests for pricing calculations.

Tests bucket arithmetic, rounding behavior, and input validation.
"""

import logging

import pytest
from dataclasses import replace
from decimal import Decimal

from marketplace_finance.config.loader import DEFAULT_POLICY, CategoryConfig
from marketplace_finance.core.errors import InvalidPricingInput
from marketplace_finance.core.pricing import (
    ParentUplift,
    PricingInput,
    UpliftKind,
    calculate_price,
    round_to_friendly_price,
)


# Category table with a single 25% category, matching the worked examples
POLICY = replace(DEFAULT_POLICY, categories={
    "ceramics": CategoryConfig(
        default_uplift_rate=Decimal("0.25"),
        min_rate=Decimal("0.25"),
        max_rate=Decimal("0.30"),
    ),
})


def make_input(**overrides) -> PricingInput:
    """Create a pricing input for a legalized, VAT-registered vendor."""
    fields = dict(
        vendor_base_price=Decimal("500"),
        category_id="ceramics",
        is_vendor_vat_registered=True,
        is_non_legalized_vendor=False,
    )
    fields.update(overrides)
    return PricingInput(**fields)


def assert_buckets_balance(breakdown):
    total = (
        breakdown.bucket_a_vendor_revenue
        + breakdown.bucket_b_vendor_vat
        + breakdown.bucket_c_platform_revenue
        + breakdown.bucket_d_platform_vat
    )
    assert abs(total - breakdown.final_price) <= Decimal("0.01")


class TestWorkedExamples:
    """Test the reference price breakdowns."""

    def test_legalized_vat_registered_vendor(self):
        """Verify the full split for a legalized, VAT-registered vendor."""
        breakdown = calculate_price(make_input(), POLICY)

        assert breakdown.cooperative_fee == Decimal("0")
        assert breakdown.bucket_a_vendor_revenue == Decimal("500")
        assert breakdown.bucket_b_vendor_vat == Decimal("70")
        assert breakdown.marketplace_uplift == Decimal("125")
        assert breakdown.logistics_surcharge == Decimal("10")
        assert breakdown.bucket_c_platform_revenue == Decimal("135")
        assert breakdown.bucket_d_platform_vat == Decimal("18.9")
        assert breakdown.final_price == Decimal("723.9")
        assert breakdown.vendor_net_payout == Decimal("570")
        assert breakdown.total_vat == Decimal("88.9")
        assert breakdown.platform_margin == Decimal("135")
        assert breakdown.commission_rate == Decimal("0.25")
        assert breakdown.vat_rate == Decimal("0.14")

    def test_non_legalized_unregistered_vendor(self):
        """Verify the cooperative fee is added to platform revenue."""
        breakdown = calculate_price(
            make_input(is_vendor_vat_registered=False, is_non_legalized_vendor=True),
            POLICY,
        )

        assert breakdown.cooperative_fee == Decimal("25")
        assert breakdown.bucket_a_vendor_revenue == Decimal("500")
        assert breakdown.bucket_b_vendor_vat == Decimal("0")
        assert breakdown.bucket_c_platform_revenue == Decimal("160")
        assert breakdown.bucket_d_platform_vat == Decimal("22.4")
        assert breakdown.final_price == Decimal("682.4")
        # Cooperative fee is never taken out of the vendor's bucket
        assert breakdown.vendor_net_payout == Decimal("500")

    def test_margin_percent(self):
        """Verify margin percent is platform revenue over final price."""
        breakdown = calculate_price(make_input(), POLICY)
        # 135 / 723.90 * 100 = 18.649...
        assert breakdown.margin_percent == Decimal("18.65")


class TestBucketInvariants:
    """Test properties that hold for every valid input."""

    @pytest.mark.parametrize("base_price", ["0.01", "1", "33.33", "99.99", "1234.57", "100000"])
    @pytest.mark.parametrize("vat_registered", [True, False])
    @pytest.mark.parametrize("non_legalized", [True, False])
    def test_buckets_sum_to_final_price(self, base_price, vat_registered, non_legalized):
        """Verify A + B + C + D == final price and net payout == A + B."""
        breakdown = calculate_price(
            make_input(
                vendor_base_price=Decimal(base_price),
                is_vendor_vat_registered=vat_registered,
                is_non_legalized_vendor=non_legalized,
                parent_uplift=ParentUplift(UpliftKind.PERCENTAGE, Decimal("0.07")),
            ),
            POLICY,
        )

        assert_buckets_balance(breakdown)
        assert breakdown.vendor_net_payout == (
            breakdown.bucket_a_vendor_revenue + breakdown.bucket_b_vendor_vat
        )
        for value in (
            breakdown.bucket_a_vendor_revenue,
            breakdown.bucket_b_vendor_vat,
            breakdown.bucket_c_platform_revenue,
            breakdown.bucket_d_platform_vat,
        ):
            assert value >= 0

    def test_cooperative_fee_rate(self):
        """Verify non-legalized vendors pay 5% of base, legalized pay nothing."""
        base = Decimal("380")
        coop = calculate_price(make_input(vendor_base_price=base, is_non_legalized_vendor=True), POLICY)
        legal = calculate_price(make_input(vendor_base_price=base), POLICY)
        assert coop.cooperative_fee == Decimal("0.05") * base
        assert legal.cooperative_fee == 0

    def test_platform_vat_always_applied(self):
        """Verify bucket D is positive even when the vendor is not VAT-registered."""
        breakdown = calculate_price(make_input(is_vendor_vat_registered=False), POLICY)
        assert breakdown.bucket_b_vendor_vat == 0
        assert breakdown.bucket_c_platform_revenue > 0
        assert breakdown.bucket_d_platform_vat > 0

    def test_rounding_half_up_at_bucket_boundary(self):
        """Verify half-cent amounts round up, not to even."""
        # coop 0.75 * 0.05 = 0.0375 -> 0.04 ; uplift 0.75 * 0.25 = 0.1875 -> 0.19
        breakdown = calculate_price(
            make_input(vendor_base_price=Decimal("0.75"), is_non_legalized_vendor=True),
            POLICY,
        )
        assert breakdown.cooperative_fee == Decimal("0.04")
        assert breakdown.marketplace_uplift == Decimal("0.19")
        # B = 0.75 * 0.14 = 0.105 -> 0.11 (banker's rounding would give 0.10)
        assert breakdown.bucket_b_vendor_vat == Decimal("0.11")


class TestParentUpliftAndOverride:
    """Test parent-vendor uplift and manual rate override."""

    def test_fixed_parent_uplift(self):
        """Verify a fixed uplift is added to vendor revenue and the uplift base."""
        breakdown = calculate_price(
            make_input(parent_uplift=ParentUplift(UpliftKind.FIXED, Decimal("40"))),
            POLICY,
        )
        assert breakdown.parent_uplift_amount == Decimal("40")
        assert breakdown.bucket_a_vendor_revenue == Decimal("540")
        # (500 + 40) * 0.25
        assert breakdown.marketplace_uplift == Decimal("135")

    def test_percentage_parent_uplift(self):
        """Verify a percentage uplift is a fraction of the base price."""
        breakdown = calculate_price(
            make_input(parent_uplift=ParentUplift(UpliftKind.PERCENTAGE, Decimal("0.10"))),
            POLICY,
        )
        assert breakdown.parent_uplift_amount == Decimal("50")
        assert breakdown.bucket_a_vendor_revenue == Decimal("550")
        assert breakdown.bucket_b_vendor_vat == Decimal("77")

    def test_override_replaces_category_rate(self):
        """Verify the override is used instead of the category rate."""
        breakdown = calculate_price(make_input(custom_uplift_override=Decimal("0.10")), POLICY)
        assert breakdown.commission_rate == Decimal("0.10")
        assert breakdown.marketplace_uplift == Decimal("50")

    def test_override_skips_category_lookup(self):
        """Verify an override prices even an unknown category."""
        breakdown = calculate_price(
            make_input(category_id="not-in-table", custom_uplift_override=Decimal("0.2")),
            POLICY,
        )
        assert breakdown.marketplace_uplift == Decimal("100")

    def test_out_of_band_override_is_logged(self, caplog):
        """Verify an override outside the category band still wins but is logged."""
        with caplog.at_level(logging.WARNING, logger="marketplace_finance.core.pricing"):
            breakdown = calculate_price(make_input(custom_uplift_override=Decimal("0.40")), POLICY)

        assert breakdown.commission_rate == Decimal("0.40")
        assert "outside its band" in caplog.text

    def test_in_band_override_is_silent(self, caplog):
        """Verify an override inside the category band logs nothing."""
        with caplog.at_level(logging.WARNING, logger="marketplace_finance.core.pricing"):
            calculate_price(make_input(custom_uplift_override=Decimal("0.28")), POLICY)

        assert caplog.records == []

    def test_default_policy_category_lookup(self):
        """Verify the built-in category table is used by default."""
        breakdown = calculate_price(make_input(category_id="Jewelry-Accessories"))
        assert breakdown.commission_rate == Decimal("0.15")


class TestValidation:
    """Test rejection of invalid pricing input."""

    @pytest.mark.parametrize("base_price", [Decimal("0"), Decimal("-10")])
    def test_non_positive_base_price(self, base_price):
        """Verify base price must be strictly positive."""
        with pytest.raises(InvalidPricingInput) as exc_info:
            calculate_price(make_input(vendor_base_price=base_price), POLICY)
        assert exc_info.value.field == "vendor_base_price"

    def test_unknown_category(self):
        """Verify an unknown category is an error, not a silent default."""
        with pytest.raises(InvalidPricingInput, match="unknown category") as exc_info:
            calculate_price(make_input(category_id="spaceships"), POLICY)
        assert exc_info.value.field == "category_id"

    def test_negative_parent_uplift(self):
        """Verify a negative uplift value is rejected."""
        with pytest.raises(InvalidPricingInput) as exc_info:
            calculate_price(
                make_input(parent_uplift=ParentUplift(UpliftKind.FIXED, Decimal("-1"))),
                POLICY,
            )
        assert exc_info.value.field == "parent_uplift.value"

    def test_unknown_uplift_kind(self):
        """Verify a malformed uplift descriptor is rejected."""
        with pytest.raises(InvalidPricingInput) as exc_info:
            calculate_price(make_input(parent_uplift=ParentUplift("bonus", Decimal("5"))), POLICY)
        assert exc_info.value.field == "parent_uplift.kind"

    def test_negative_override(self):
        """Verify a negative override is rejected."""
        with pytest.raises(InvalidPricingInput) as exc_info:
            calculate_price(make_input(custom_uplift_override=Decimal("-0.1")), POLICY)
        assert exc_info.value.field == "custom_uplift_override"


class TestFriendlyPrice:
    """Test customer-friendly price rounding."""

    @pytest.mark.parametrize("raw,expected", [
        ("46.5", "50"),
        ("50", "50"),
        ("50.01", "55"),
        ("723.90", "725"),
    ])
    def test_rounds_up_to_step(self, raw, expected):
        """Verify prices round up to the next multiple of 5."""
        assert round_to_friendly_price(Decimal(raw)) == Decimal(expected)
