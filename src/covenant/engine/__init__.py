"""Lifecycle engine — accrual, milestone catch-up, and units of work."""

from covenant.engine.accrual import pending_yield, split_evenly
from covenant.engine.milestones import MilestonePlan, plan_catch_up
from covenant.engine.unit_of_work import Checkpointable, UnitOfWork

__all__ = [
    "Checkpointable",
    "MilestonePlan",
    "UnitOfWork",
    "pending_yield",
    "plan_catch_up",
    "split_evenly",
]
