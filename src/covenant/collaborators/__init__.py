"""Collaborator interfaces and in-memory reference implementations.

The engine only mints through these; it never reaches into their state.
"""

from covenant.collaborators.certificates import (
    Certificate,
    CertificateIssuer,
    SoulboundCertificateIssuer,
)
from covenant.collaborators.ledger import InMemoryRewardLedger, RewardLedger

__all__ = [
    "Certificate",
    "CertificateIssuer",
    "InMemoryRewardLedger",
    "RewardLedger",
    "SoulboundCertificateIssuer",
]
