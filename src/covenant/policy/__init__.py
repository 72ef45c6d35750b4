"""Deployment policy — bond constants loaded from config."""

from covenant.policy.invariants import check_config_dir, check_params
from covenant.policy.resolver import BondPolicy

__all__ = ["BondPolicy", "check_config_dir", "check_params"]
