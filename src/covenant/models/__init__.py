"""Core data models for covenant."""

from covenant.models.bond import Bond, Dashboard, PairView, Proposal

__all__ = ["Bond", "Dashboard", "PairView", "Proposal"]
