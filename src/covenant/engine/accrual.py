"""Yield accrual — reward owed to a bond since its last claim.

    periods = floor((now - last_claim) / accrual_period)
    reward  = periods * unit_reward

Claims and dissolutions reset ``last_claim`` to the claim time, not to
``last_claim + periods * accrual_period``: any partial period in
progress at claim time is forfeited.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from covenant.models.bond import Bond

ZERO = Decimal("0")


def elapsed_periods(since: datetime, now: datetime, period: timedelta) -> int:
    """Whole periods in [since, now]. Zero if ``now`` precedes ``since``."""
    if period <= timedelta(0):
        raise ValueError("Period must be positive")
    if now <= since:
        return 0
    return (now - since) // period


def pending_yield(
    bond: Bond,
    now: datetime,
    accrual_period: timedelta,
    unit_reward: Decimal,
) -> Decimal:
    """Reward accrued since the last claim. Inactive bonds accrue nothing."""
    if not bond.active:
        return ZERO
    return elapsed_periods(bond.last_claim, now, accrual_period) * unit_reward


def split_evenly(amount: Decimal) -> Decimal:
    """Each partner's share of ``amount``."""
    return amount / 2
