"""Identity primitives — pairing, proof verification, replay protection."""

from covenant.identity.nullifier_guard import NullifierGuard
from covenant.identity.pairing import NULL_IDENTITY, pair_key, signal_for, to_identity
from covenant.identity.verifier import (
    ProofAttester,
    SignedProofVerifier,
    VerificationResult,
)

__all__ = [
    "NULL_IDENTITY",
    "NullifierGuard",
    "ProofAttester",
    "SignedProofVerifier",
    "VerificationResult",
    "pair_key",
    "signal_for",
    "to_identity",
]
