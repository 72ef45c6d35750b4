"""Bond policy — loads bond_params.json and exposes each deployment
constant as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any


ACTIONS = ("propose", "accept")


class BondPolicy:
    """Loads and resolves the per-deployment bond constants.

    Usage:
        policy = BondPolicy.from_config_dir(Path("config"))
        policy.accrual_period()      # timedelta(seconds=60)
        policy.unit_reward()         # Decimal("1")
    """

    def __init__(self, params: dict[str, Any]) -> None:
        self._params = params
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> BondPolicy:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / "bond_params.json"))

    def _validate(self) -> None:
        if "version" not in self._params:
            raise ValueError("bond_params.json missing version")
        if self.accrual_period() <= timedelta(0):
            raise ValueError("accrual.period_seconds must be positive")
        if self.milestone_period() <= timedelta(0):
            raise ValueError("milestones.period_days must be positive")
        if self.unit_reward() < Decimal("0"):
            raise ValueError("accrual.unit_reward must not be negative")
        if self.initial_grant() < Decimal("0"):
            raise ValueError("initial_grant must not be negative")
        names = [self.action_name(a) for a in ACTIONS]
        if len(set(names)) != len(names):
            raise ValueError("Action names must be distinct")

    @property
    def version(self) -> str:
        return self._params["version"]

    # ------------------------------------------------------------------
    # Proof domains
    # ------------------------------------------------------------------

    def app_id(self) -> str:
        return self._params["app_id"]

    def action_name(self, action: str) -> str:
        """Configured action string for "propose" or "accept"."""
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        return self._params["actions"][action]

    def replay_guard_enabled(self) -> bool:
        return bool(self._params["replay_guard"]["enabled"])

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    def accrual_period(self) -> timedelta:
        return timedelta(seconds=self._params["accrual"]["period_seconds"])

    def unit_reward(self) -> Decimal:
        return Decimal(str(self._params["accrual"]["unit_reward"]))

    def initial_grant(self) -> Decimal:
        """Reward seeded to each partner when a bond forms."""
        return Decimal(str(self._params["initial_grant"]))

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def milestone_period(self) -> timedelta:
        return timedelta(days=self._params["milestones"]["period_days"])

    def with_overrides(self, **sections: Any) -> BondPolicy:
        """Copy of this policy with top-level sections replaced."""
        params = json.loads(json.dumps(self._params))
        params.update(sections)
        return BondPolicy(params)


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
