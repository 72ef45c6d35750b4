"""Covenant invariant checks against the bond_params.json artifact."""

from __future__ import annotations

import json
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from covenant.policy.resolver import ACTIONS


_APP_ID = re.compile(r"^app_[A-Za-z0-9_]+$")


def load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _decimal(value: Any, label: str, errors: list[str]) -> Decimal | None:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{label} must be a decimal string, got {value!r}")
        return None


def check_params(params: dict[str, Any]) -> list[str]:
    """Return every violated invariant; empty when the params are sound."""
    errors: list[str] = []

    for section in ("version", "app_id", "actions", "accrual", "milestones",
                    "initial_grant", "replay_guard"):
        if section not in params:
            errors.append(f"bond_params.json missing section: {section}")
    if errors:
        return errors

    # --- Proof domain invariants ---
    if not _APP_ID.match(params["app_id"]):
        errors.append(f"app_id must look like app_<name>, got {params['app_id']!r}")
    actions = params["actions"]
    for action in ACTIONS:
        if not actions.get(action):
            errors.append(f"actions.{action} must be a non-empty string")
    names = [actions.get(a) for a in ACTIONS]
    if len(set(names)) != len(names):
        errors.append("actions.propose and actions.accept must differ")

    # --- Accrual invariants ---
    accrual = params["accrual"]
    period = accrual.get("period_seconds", 0)
    if not isinstance(period, int) or period <= 0:
        errors.append("accrual.period_seconds must be a positive integer")
    reward = _decimal(accrual.get("unit_reward"), "accrual.unit_reward", errors)
    if reward is not None and reward < 0:
        errors.append("accrual.unit_reward must be >= 0")

    grant = _decimal(params["initial_grant"], "initial_grant", errors)
    if grant is not None and grant < 0:
        errors.append("initial_grant must be >= 0")

    # --- Milestone invariants ---
    days = params["milestones"].get("period_days", 0)
    if not isinstance(days, int) or days <= 0:
        errors.append("milestones.period_days must be a positive integer")
    elif isinstance(period, int) and period > 0 and days * 86400 < period:
        errors.append("milestones.period_days must not be shorter than the accrual period")

    # --- Replay guard ---
    if not isinstance(params["replay_guard"].get("enabled"), bool):
        errors.append("replay_guard.enabled must be a boolean")

    return errors


def check_config_dir(config_dir: Path) -> list[str]:
    path = config_dir / "bond_params.json"
    if not path.exists():
        return [f"{path} not found"]
    return check_params(load_json(path))
