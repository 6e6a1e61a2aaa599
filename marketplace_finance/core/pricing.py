"""
Pricing calculations and revenue bucket split.

Implements the additive uplift model: a vendor's quoted price is never
reduced, every fee is layered on top of it and the customer-facing price is
split into four buckets.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from marketplace_finance.config.loader import DEFAULT_POLICY, PolicyConfig
from .errors import InvalidPricingInput
from .money import ZERO, Numeric, round_money, round_up_to_step, to_decimal

logger = logging.getLogger(__name__)


class UpliftKind(Enum):
    """How a parent vendor's uplift is applied on top of a sub-vendor price."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class ParentUplift:
    """Parent-vendor uplift descriptor.

    A PERCENTAGE value is a fraction of the base price (0.10 = 10%).
    """
    kind: UpliftKind
    value: Decimal


@dataclass(frozen=True)
class PricingInput:
    """Everything needed to price one line item."""
    vendor_base_price: Decimal
    category_id: str
    is_vendor_vat_registered: bool
    is_non_legalized_vendor: bool
    parent_uplift: Optional[ParentUplift] = None
    custom_uplift_override: Optional[Decimal] = None


@dataclass(frozen=True)
class PricingBreakdown:
    """Full price breakdown with the four revenue buckets.

    Bucket A is vendor revenue, B vendor VAT, C platform revenue and D
    platform VAT. ``final_price`` always equals A + B + C + D.
    """
    vendor_base_price: Decimal
    cooperative_fee: Decimal
    parent_uplift_amount: Decimal
    marketplace_uplift: Decimal
    logistics_surcharge: Decimal
    bucket_a_vendor_revenue: Decimal
    bucket_b_vendor_vat: Decimal
    bucket_c_platform_revenue: Decimal
    bucket_d_platform_vat: Decimal
    final_price: Decimal
    vendor_net_payout: Decimal
    commission_rate: Decimal
    vat_rate: Decimal
    total_vat: Decimal
    platform_margin: Decimal
    margin_percent: Decimal


def calculate_price(
    pricing_input: PricingInput,
    policy: Optional[PolicyConfig] = None,
) -> PricingBreakdown:
    """Calculate the customer-facing price and its bucket split.

    Amounts are rounded half-up to the cent at bucket boundaries only, so
    intermediate products are never rounded twice.

    Args:
        pricing_input: Vendor price, category and vendor status
        policy: Policy constants (defaults to DEFAULT_POLICY)

    Returns:
        Immutable PricingBreakdown

    Raises:
        InvalidPricingInput: If base price <= 0, the category is unknown, the
            uplift descriptor is malformed or the override is negative
    """
    policy = policy or DEFAULT_POLICY
    base_price = _validated_base_price(pricing_input.vendor_base_price)

    # Step 1: cooperative fee, additive for non-legalized vendors
    cooperative_fee = (
        round_money(base_price * policy.cooperative_fee_rate)
        if pricing_input.is_non_legalized_vendor
        else ZERO
    )

    # Step 2: parent-vendor uplift
    parent_uplift_amount = _parent_uplift_amount(base_price, pricing_input.parent_uplift)

    # Step 3: commission rate, override replaces the category rate entirely
    commission_rate = _commission_rate(pricing_input, policy)

    # Step 4: marketplace uplift on vendor revenue
    marketplace_uplift = round_money((base_price + parent_uplift_amount) * commission_rate)

    # Step 5: logistics surcharge
    logistics_surcharge = round_money(policy.logistics_surcharge)

    # Steps 6-9: the four buckets
    bucket_a = round_money(base_price + parent_uplift_amount)
    bucket_b = (
        round_money(bucket_a * policy.vat_rate)
        if pricing_input.is_vendor_vat_registered
        else ZERO
    )
    bucket_c = round_money(cooperative_fee + marketplace_uplift + logistics_surcharge)
    bucket_d = round_money(bucket_c * policy.vat_rate)  # platform is always VAT-registered

    # Step 10-12: totals and summary metrics
    final_price = bucket_a + bucket_b + bucket_c + bucket_d
    vendor_net_payout = bucket_a + bucket_b
    total_vat = bucket_b + bucket_d
    margin_percent = (
        round_money(bucket_c / final_price * 100) if final_price > 0 else ZERO
    )

    return PricingBreakdown(
        vendor_base_price=base_price,
        cooperative_fee=cooperative_fee,
        parent_uplift_amount=parent_uplift_amount,
        marketplace_uplift=marketplace_uplift,
        logistics_surcharge=logistics_surcharge,
        bucket_a_vendor_revenue=bucket_a,
        bucket_b_vendor_vat=bucket_b,
        bucket_c_platform_revenue=bucket_c,
        bucket_d_platform_vat=bucket_d,
        final_price=final_price,
        vendor_net_payout=vendor_net_payout,
        commission_rate=commission_rate,
        vat_rate=policy.vat_rate,
        total_vat=total_vat,
        platform_margin=bucket_c,
        margin_percent=margin_percent,
    )


def round_to_friendly_price(price: Numeric, policy: Optional[PolicyConfig] = None) -> Decimal:
    """Round a price up to the next customer-friendly step (46.5 -> 50)."""
    policy = policy or DEFAULT_POLICY
    return round_up_to_step(price, policy.friendly_price_step)


def _validated_base_price(value) -> Decimal:
    try:
        base_price = to_decimal(value)
    except (TypeError, ArithmeticError, ValueError):
        raise InvalidPricingInput("vendor_base_price", f"not a number: {value!r}")
    if not base_price.is_finite() or base_price <= 0:
        raise InvalidPricingInput("vendor_base_price", f"must be > 0, got {value}")
    return base_price


def _parent_uplift_amount(base_price: Decimal, uplift: Optional[ParentUplift]) -> Decimal:
    if uplift is None:
        return ZERO

    if not isinstance(uplift.kind, UpliftKind):
        raise InvalidPricingInput("parent_uplift.kind", f"unknown uplift kind {uplift.kind!r}")
    try:
        value = to_decimal(uplift.value)
    except (TypeError, ArithmeticError, ValueError):
        raise InvalidPricingInput("parent_uplift.value", f"not a number: {uplift.value!r}")
    if not value.is_finite() or value < 0:
        raise InvalidPricingInput("parent_uplift.value", f"must be >= 0, got {uplift.value}")

    if uplift.kind == UpliftKind.FIXED:
        return round_money(value)
    return round_money(base_price * value)


def _commission_rate(pricing_input: PricingInput, policy: PolicyConfig) -> Decimal:
    if pricing_input.custom_uplift_override is not None:
        try:
            override = to_decimal(pricing_input.custom_uplift_override)
        except (TypeError, ArithmeticError, ValueError):
            raise InvalidPricingInput(
                "custom_uplift_override",
                f"not a number: {pricing_input.custom_uplift_override!r}",
            )
        if not override.is_finite() or override < 0:
            raise InvalidPricingInput(
                "custom_uplift_override",
                f"must be >= 0, got {pricing_input.custom_uplift_override}",
            )
        category = policy.get_category(pricing_input.category_id or "")
        if category is not None and not category.allows(override):
            # Overrides win; out-of-band ones are surfaced for review
            logger.warning(
                "Uplift override %s for category %s is outside its band [%s, %s]",
                override, pricing_input.category_id, category.min_rate, category.max_rate,
            )
        return override

    category = policy.get_category(pricing_input.category_id or "")
    if category is None:
        raise InvalidPricingInput(
            "category_id", f"unknown category: {pricing_input.category_id!r}"
        )
    return category.default_uplift_rate
