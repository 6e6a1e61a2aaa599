"""
Price deviation detection.

Flags listings whose price strays too far from the category benchmark so a
moderator can review them.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Optional

from marketplace_finance.config.loader import DEFAULT_POLICY, PolicyConfig
from .errors import InvalidBenchmark, InvalidDeviationInput
from .money import Numeric, round_money, to_finite_decimal

_DEVIATION_PLACES = Decimal("0.0001")


class DeviationDirection(Enum):
    """Which side of the benchmark a flagged price falls on."""
    ABOVE = "above"
    BELOW = "below"
    NORMAL = "normal"


@dataclass(frozen=True)
class PriceDeviationResult:
    """Deviation of an observed price from its category benchmark."""
    observed_price: Decimal
    benchmark_price: Decimal
    deviation_percent: Decimal  # fraction, 0.30 == 30%
    threshold: Decimal
    is_flagged: bool
    direction: DeviationDirection


def check_deviation(
    price: Numeric,
    benchmark: Numeric,
    threshold: Optional[Numeric] = None,
    policy: Optional[PolicyConfig] = None,
) -> PriceDeviationResult:
    """Check a price against its category benchmark.

    Args:
        price: Observed listing price, must be >= 0
        benchmark: Category average price, must be > 0
        threshold: Allowed deviation as a fraction (defaults to policy value)
        policy: Policy constants (defaults to DEFAULT_POLICY)

    Returns:
        PriceDeviationResult, flagged when deviation > threshold

    Raises:
        InvalidDeviationInput: If the price or threshold is not a finite,
            non-negative number
        InvalidBenchmark: If the benchmark is not a number, zero or negative
    """
    policy = policy or DEFAULT_POLICY

    try:
        observed = to_finite_decimal(price)
    except ValueError as e:
        raise InvalidDeviationInput("price", str(e))
    if observed < 0:
        raise InvalidDeviationInput("price", f"must be >= 0, got {price}")

    if threshold is None:
        limit = policy.default_deviation_threshold
    else:
        try:
            limit = to_finite_decimal(threshold)
        except ValueError as e:
            raise InvalidDeviationInput("threshold", str(e))
        if limit < 0:
            raise InvalidDeviationInput("threshold", f"must be >= 0, got {threshold}")

    try:
        benchmark_price = to_finite_decimal(benchmark)
    except ValueError as e:
        raise InvalidBenchmark(f"Category benchmark is invalid: {e}")
    if benchmark_price <= 0:
        raise InvalidBenchmark(
            f"Category benchmark must be > 0, got {benchmark}", benchmark=benchmark_price
        )

    signed = (observed - benchmark_price) / benchmark_price
    deviation = abs(signed)
    is_flagged = deviation > limit

    direction = DeviationDirection.NORMAL
    if is_flagged:
        direction = DeviationDirection.ABOVE if signed > 0 else DeviationDirection.BELOW

    return PriceDeviationResult(
        observed_price=observed,
        benchmark_price=benchmark_price,
        deviation_percent=deviation.quantize(_DEVIATION_PLACES, rounding=ROUND_HALF_UP),
        threshold=limit,
        is_flagged=is_flagged,
        direction=direction,
    )


def compute_category_benchmark(prices: Iterable[Numeric]) -> Decimal:
    """Compute a category benchmark as the mean of observed prices.

    Raises:
        InvalidBenchmark: If there are no observations or any is not a
            positive number
    """
    observations = []
    for i, price in enumerate(prices):
        try:
            value = to_finite_decimal(price)
        except ValueError as e:
            raise InvalidBenchmark(f"Observation at index {i} is invalid: {e}")
        if value <= 0:
            raise InvalidBenchmark(f"Observation at index {i} must be > 0, got {value}")
        observations.append(value)
    if not observations:
        raise InvalidBenchmark("Category benchmark needs at least one observation")
    return round_money(sum(observations) / len(observations))
