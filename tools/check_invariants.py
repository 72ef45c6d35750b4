#!/usr/bin/env python3
"""Covenant invariant checks against executable policy artifacts."""

from pathlib import Path

from covenant.policy.invariants import check_config_dir


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"


def check() -> int:
    errors = check_config_dir(CONFIG_DIR)

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(check())
