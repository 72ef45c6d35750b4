"""Tests for yield accrual and milestone catch-up planning."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from covenant.engine.accrual import elapsed_periods, pending_yield, split_evenly
from covenant.engine.milestones import plan_catch_up
from covenant.errors import NothingToClaim
from covenant.models.bond import Bond


T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
MINUTE = timedelta(seconds=60)
YEAR = timedelta(days=365)


def _bond(**overrides) -> Bond:
    fields = dict(
        partner_a="A", partner_b="B", nullifier_a=1, nullifier_b=2,
        bond_start=T0, last_claim=T0,
    )
    fields.update(overrides)
    return Bond(**fields)


class TestElapsedPeriods:
    def test_whole_periods_only(self) -> None:
        assert elapsed_periods(T0, T0 + MINUTE * 3 + timedelta(seconds=59), MINUTE) == 3

    def test_now_before_since(self) -> None:
        assert elapsed_periods(T0, T0 - MINUTE, MINUTE) == 0

    def test_rejects_non_positive_period(self) -> None:
        with pytest.raises(ValueError):
            elapsed_periods(T0, T0, timedelta(0))


class TestPendingYield:
    def test_linear_in_periods(self) -> None:
        bond = _bond()
        assert pending_yield(bond, T0 + MINUTE * 100, MINUTE, Decimal("1")) == Decimal("100")

    def test_unit_reward_scales(self) -> None:
        bond = _bond()
        assert pending_yield(bond, T0 + MINUTE * 4, MINUTE, Decimal("2.5")) == Decimal("10")

    def test_partial_period_accrues_nothing(self) -> None:
        bond = _bond()
        assert pending_yield(bond, T0 + timedelta(seconds=59), MINUTE, Decimal("1")) == 0

    def test_measured_from_last_claim(self) -> None:
        bond = _bond(last_claim=T0 + MINUTE * 10)
        assert pending_yield(bond, T0 + MINUTE * 15, MINUTE, Decimal("1")) == Decimal("5")

    def test_inactive_bond_accrues_nothing(self) -> None:
        bond = _bond(active=False)
        assert pending_yield(bond, T0 + MINUTE * 100, MINUTE, Decimal("1")) == 0

    def test_split_evenly(self) -> None:
        assert split_evenly(Decimal("100")) == Decimal("50")
        assert split_evenly(Decimal("3")) == Decimal("1.5")


class TestPlanCatchUp:
    def test_three_periods_from_scratch(self) -> None:
        plan = plan_catch_up(_bond(), T0 + YEAR * 3, YEAR, schedule_ceiling=10)
        assert list(plan.periods) == [1, 2, 3]
        assert not plan.capped

    def test_resumes_after_last_milestone(self) -> None:
        plan = plan_catch_up(_bond(last_milestone=2), T0 + YEAR * 5, YEAR, schedule_ceiling=10)
        assert list(plan.periods) == [3, 4, 5]

    def test_capped_by_schedule(self) -> None:
        plan = plan_catch_up(_bond(), T0 + YEAR * 10, YEAR, schedule_ceiling=4)
        assert list(plan.periods) == [1, 2, 3, 4]
        assert plan.ceiling == 4
        assert plan.capped

    def test_before_first_anniversary(self) -> None:
        with pytest.raises(NothingToClaim):
            plan_catch_up(_bond(), T0 + YEAR - timedelta(seconds=1), YEAR, schedule_ceiling=10)

    def test_nothing_new(self) -> None:
        with pytest.raises(NothingToClaim):
            plan_catch_up(_bond(last_milestone=3), T0 + YEAR * 3, YEAR, schedule_ceiling=10)

    def test_schedule_exhausted(self) -> None:
        with pytest.raises(NothingToClaim):
            plan_catch_up(_bond(last_milestone=4), T0 + YEAR * 10, YEAR, schedule_ceiling=4)

    def test_empty_schedule(self) -> None:
        with pytest.raises(NothingToClaim):
            plan_catch_up(_bond(), T0 + YEAR * 2, YEAR, schedule_ceiling=0)
