"""
Escrow hold scheduling.

Computes when delivered-order funds leave escrow. Release eligibility is
always recomputed against the clock and never stored.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from marketplace_finance.config.loader import DEFAULT_POLICY, PolicyConfig

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix kinds."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class EscrowResult:
    """Escrow timing for one delivery, evaluated at ``evaluated_at``."""
    delivery_date: datetime
    release_date: datetime
    hold_days: int
    is_released: bool
    days_remaining: int
    evaluated_at: datetime


def compute_release(
    delivery_date: datetime,
    policy: Optional[PolicyConfig] = None,
    now: Optional[datetime] = None,
) -> EscrowResult:
    """Compute the escrow release date and current eligibility.

    Args:
        delivery_date: When the order was delivered
        policy: Policy constants (defaults to DEFAULT_POLICY)
        now: Moment to evaluate eligibility at (defaults to current UTC time)

    Returns:
        EscrowResult; ``is_released`` is true at or after the release date
    """
    policy = policy or DEFAULT_POLICY
    delivered = as_utc(delivery_date)
    moment = as_utc(now) if now is not None else utc_now()

    release_date = delivered + timedelta(days=policy.escrow_hold_days)
    is_released = moment >= release_date

    if is_released:
        days_remaining = 0
    else:
        remaining = (release_date - moment).total_seconds() / 86400
        days_remaining = math.ceil(remaining)

    return EscrowResult(
        delivery_date=delivered,
        release_date=release_date,
        hold_days=policy.escrow_hold_days,
        is_released=is_released,
        days_remaining=days_remaining,
        evaluated_at=moment,
    )
