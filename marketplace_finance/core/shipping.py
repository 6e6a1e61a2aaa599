"""
Shipping fee calculation.

Zone + weight model: the chargeable weight is the larger of the actual and
volumetric weights, the first kilogram is covered by the base rate and part of
the fee is absorbed by the logistics surcharge already built into the price.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from marketplace_finance.config.loader import DEFAULT_POLICY, PolicyConfig
from .errors import InvalidShippingInput
from .money import round_money, to_decimal


@dataclass(frozen=True)
class ShippingFeeInput:
    """Parcel measurements and zone rates."""
    actual_weight_kg: Decimal
    length_cm: Decimal
    width_cm: Decimal
    height_cm: Decimal
    base_rate: Decimal
    per_kg_rate: Decimal


@dataclass(frozen=True)
class ShippingFeeResult:
    """Shipping fee breakdown."""
    actual_weight_kg: Decimal
    volumetric_weight_kg: Decimal
    chargeable_weight_kg: Decimal
    base_fee: Decimal
    excess_weight_fee: Decimal
    total_fee: Decimal
    customer_fee: Decimal
    platform_subsidy: Decimal


def calculate_shipping_fee(
    shipping_input: ShippingFeeInput,
    policy: Optional[PolicyConfig] = None,
) -> ShippingFeeResult:
    """Calculate the shipping fee for a parcel.

    The customer fee is reduced by the logistics surcharge, but never by more
    than ``max_shipping_subsidy_ratio`` of the total fee.

    Raises:
        InvalidShippingInput: If any measurement or rate is negative
    """
    policy = policy or DEFAULT_POLICY
    values = {}
    for name in ("actual_weight_kg", "length_cm", "width_cm", "height_cm",
                 "base_rate", "per_kg_rate"):
        raw = getattr(shipping_input, name)
        try:
            value = to_decimal(raw)
        except (TypeError, ArithmeticError, ValueError):
            raise InvalidShippingInput(name, f"not a number: {raw!r}")
        if not value.is_finite() or value < 0:
            raise InvalidShippingInput(name, f"must be >= 0, got {raw}")
        values[name] = value

    volume = values["length_cm"] * values["width_cm"] * values["height_cm"]
    volumetric_weight = round_money(volume / policy.volumetric_divisor)
    chargeable_weight = max(values["actual_weight_kg"], volumetric_weight)

    excess_weight = max(Decimal("0"), chargeable_weight - 1)
    excess_weight_fee = round_money(excess_weight * values["per_kg_rate"])
    base_fee = round_money(values["base_rate"])
    total_fee = base_fee + excess_weight_fee

    customer_fee = round_money(max(
        total_fee - policy.logistics_surcharge,
        total_fee * (1 - policy.max_shipping_subsidy_ratio),
    ))
    platform_subsidy = total_fee - customer_fee

    return ShippingFeeResult(
        actual_weight_kg=values["actual_weight_kg"],
        volumetric_weight_kg=volumetric_weight,
        chargeable_weight_kg=round_money(chargeable_weight),
        base_fee=base_fee,
        excess_weight_fee=excess_weight_fee,
        total_fee=total_fee,
        customer_fee=customer_fee,
        platform_subsidy=platform_subsidy,
    )
