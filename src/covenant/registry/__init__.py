"""Registries — live proposals and bond records."""

from covenant.registry.bonds import BondRegistry
from covenant.registry.proposals import IncomingProposalIndex, ProposalRegistry

__all__ = ["BondRegistry", "IncomingProposalIndex", "ProposalRegistry"]
