"""Tests for BondPolicy and the config invariant checks."""

import json
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from covenant.policy.invariants import check_config_dir, check_params
from covenant.policy.resolver import BondPolicy


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def policy() -> BondPolicy:
    return BondPolicy.from_config_dir(CONFIG_DIR)


def _params() -> dict:
    with (CONFIG_DIR / "bond_params.json").open("r", encoding="utf-8") as f:
        return json.load(f)


class TestBondPolicy:
    def test_loads_shipped_config(self, policy: BondPolicy) -> None:
        assert policy.version == "0.1.0"
        assert policy.accrual_period() == timedelta(seconds=60)
        assert policy.unit_reward() == Decimal("1")
        assert policy.milestone_period() == timedelta(days=365)
        assert policy.initial_grant() == Decimal("100")
        assert policy.replay_guard_enabled()

    def test_action_names(self, policy: BondPolicy) -> None:
        assert policy.action_name("propose") == "propose"
        with pytest.raises(ValueError):
            policy.action_name("divorce")

    def test_overrides(self, policy: BondPolicy) -> None:
        relaxed = policy.with_overrides(initial_grant="0", replay_guard={"enabled": False})
        assert relaxed.initial_grant() == Decimal("0")
        assert not relaxed.replay_guard_enabled()
        assert policy.initial_grant() == Decimal("100")

    def test_missing_section_fails_loud(self) -> None:
        params = _params()
        del params["accrual"]
        with pytest.raises(KeyError):
            BondPolicy(params)

    def test_zero_period_rejected(self, policy: BondPolicy) -> None:
        with pytest.raises(ValueError):
            policy.with_overrides(accrual={"period_seconds": 0, "unit_reward": "1"})

    def test_same_action_names_rejected(self, policy: BondPolicy) -> None:
        with pytest.raises(ValueError):
            policy.with_overrides(actions={"propose": "x", "accept": "x"})


class TestInvariants:
    def test_shipped_config_passes(self) -> None:
        assert check_config_dir(CONFIG_DIR) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        assert check_config_dir(tmp_path) != []

    def test_negative_reward_flagged(self) -> None:
        params = _params()
        params["accrual"]["unit_reward"] = "-1"
        assert any("unit_reward" in e for e in check_params(params))

    def test_bad_app_id_flagged(self) -> None:
        params = _params()
        params["app_id"] = "covenant"
        assert any("app_id" in e for e in check_params(params))

    def test_missing_section_flagged(self) -> None:
        params = _params()
        del params["milestones"]
        assert check_params(params) == ["bond_params.json missing section: milestones"]
