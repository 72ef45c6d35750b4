"""Milestone catch-up — which anniversary periods a bond is still owed.

    periods_elapsed = floor((now - bond_start) / milestone_period)
    ceiling         = min(periods_elapsed, schedule_ceiling)
    start           = last_milestone + 1

Every period in [start, ceiling] is owed, in ascending order with no
gaps. When the schedule ceiling caps the catch-up, only the capped range
is issued and ``last_milestone`` stops at the ceiling, so a later call
resumes from there once the schedule is extended.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from covenant.engine.accrual import elapsed_periods
from covenant.errors import NothingToClaim
from covenant.models.bond import Bond


@dataclass(frozen=True)
class MilestonePlan:
    """The outstanding catch-up range for one bond."""
    periods_elapsed: int
    start: int
    ceiling: int

    @property
    def periods(self) -> range:
        return range(self.start, self.ceiling + 1)

    @property
    def capped(self) -> bool:
        return self.periods_elapsed > self.ceiling


def plan_catch_up(
    bond: Bond,
    now: datetime,
    milestone_period: timedelta,
    schedule_ceiling: int,
) -> MilestonePlan:
    """Compute the catch-up range or raise NothingToClaim."""
    periods_elapsed = elapsed_periods(bond.bond_start, now, milestone_period)
    if periods_elapsed == 0 or periods_elapsed <= bond.last_milestone:
        raise NothingToClaim(
            f"No anniversary reached beyond period {bond.last_milestone}"
        )

    ceiling = min(periods_elapsed, schedule_ceiling)
    start = bond.last_milestone + 1
    if start > ceiling:
        raise NothingToClaim(
            f"Anniversary {start} is beyond the milestone schedule (ceiling {schedule_ceiling})"
        )
    return MilestonePlan(periods_elapsed=periods_elapsed, start=start, ceiling=ceiling)
