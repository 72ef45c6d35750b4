"""Proof-of-personhood verification.

The engine treats the verifier as an opaque pass/fail oracle: it hands
over (root, action domain, signal, nullifier, proof) and gets back a
VerificationResult. Any object with a matching ``verify`` method can be
plugged in, including an adapter around an on-chain zero-knowledge
verifier.

SignedProofVerifier is the bundled off-chain adapter. A trusted attester
(the party that checked personhood) signs the digest

    keccak256(abi.encodePacked(uint256 root, uint256 domain,
                               uint256 signal, uint256 nullifier))

as an EIP-191 personal message. The proof is that signature. Because the
signal is derived from the caller's identity and the domain from the
action, a proof only ever passes for the caller and action it was
issued for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from web3 import Web3

from covenant.identity.pairing import to_identity

logger = logging.getLogger(__name__)

Proof = Union[bytes, str]


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a single proof verification."""

    passed: bool
    reason: str = ""


class IdentityVerifier(Protocol):
    def verify(
        self,
        root: int,
        action_domain_id: int,
        signal: int,
        nullifier: int,
        proof: Proof,
    ) -> VerificationResult: ...


# ---------------------------------------------------------------------------
# Signed-attestation adapter
# ---------------------------------------------------------------------------

def proof_digest(root: int, action_domain_id: int, signal: int, nullifier: int) -> bytes:
    return bytes(Web3.solidity_keccak(
        ["uint256", "uint256", "uint256", "uint256"],
        [root, action_domain_id, signal, nullifier],
    ))


def _proof_bytes(proof: Proof) -> bytes:
    if isinstance(proof, str):
        text = proof[2:] if proof.startswith("0x") else proof
        return bytes.fromhex(text)
    return bytes(proof)


class ProofAttester:
    """Issues proofs on behalf of a trusted personhood attester.

    Usage:
        attester = ProofAttester(private_key)
        proof = attester.attest(root, domain, signal_for(alice), nullifier)
    """

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def attest(self, root: int, action_domain_id: int, signal: int, nullifier: int) -> str:
        message = encode_defunct(primitive=proof_digest(root, action_domain_id, signal, nullifier))
        signed = self._account.sign_message(message)
        return Web3.to_hex(signed.signature)


class SignedProofVerifier:
    """Passes a proof iff it is the attester's signature over the inputs.

    Parameters:
        attester: address whose signatures are accepted.
        accepted_roots: if given, the root must be one of these.
    """

    def __init__(
        self,
        attester: str,
        accepted_roots: Optional[Iterable[int]] = None,
    ) -> None:
        self._attester = to_identity(attester)
        self._roots = frozenset(accepted_roots) if accepted_roots is not None else None

    def verify(
        self,
        root: int,
        action_domain_id: int,
        signal: int,
        nullifier: int,
        proof: Proof,
    ) -> VerificationResult:
        if self._roots is not None and root not in self._roots:
            return VerificationResult(passed=False, reason=f"unknown root {root:#x}")

        try:
            signature = _proof_bytes(proof)
        except (TypeError, ValueError):
            return VerificationResult(passed=False, reason="proof is not hex or bytes")
        if len(signature) != 65:
            return VerificationResult(passed=False, reason="proof must be a 65-byte signature")

        message = encode_defunct(primitive=proof_digest(root, action_domain_id, signal, nullifier))
        try:
            signer = Account.recover_message(message, signature=signature)
        except (ValueError, BadSignature, KeyValidationError) as e:
            logger.debug("Signature recovery failed: %s", e)
            return VerificationResult(passed=False, reason="unrecoverable signature")

        if signer != self._attester:
            logger.debug("Proof signed by %s, expected %s", signer, self._attester)
            return VerificationResult(passed=False, reason="proof not signed by attester")
        return VerificationResult(passed=True)
