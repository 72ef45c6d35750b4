"""Identity normalisation, symmetric pair keys, and hash-to-field helpers.

Identities are EVM-style account addresses kept in EIP-55 checksum form.
Their total order is the numeric order of the 160-bit value, which is
what makes the pair key symmetric:

    pair_key(a, b) = keccak256(abi.encodePacked(min(a, b), max(a, b)))

The hash-to-field scheme maps arbitrary bytes into the proof system's
scalar field by hashing and discarding the low 8 bits:

    hash_to_field(x) = uint256(keccak256(x)) >> 8

It is used both to bind a proof to its caller (the signal) and to derive
the per-action domain identifiers that scope nullifier uniqueness.
"""

from __future__ import annotations

from web3 import Web3

NULL_IDENTITY = "0x0000000000000000000000000000000000000000"


def to_identity(value: str) -> str:
    """Normalise an address string to its checksum form.

    Raises ValueError if the value is not a 20-byte hex address.
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"Not an account address: {value!r}")
    return Web3.to_checksum_address(value)


def identity_order(identity: str) -> int:
    """Sort key giving the total order over identities."""
    return int(identity, 16)


def is_null(identity: str) -> bool:
    return identity_order(identity) == 0


def pair_key(a: str, b: str) -> str:
    """Deterministic, order-independent key for an unordered pair."""
    a = to_identity(a)
    b = to_identity(b)
    low, high = sorted((a, b), key=identity_order)
    digest = Web3.solidity_keccak(["address", "address"], [low, high])
    return Web3.to_hex(digest)


def hash_to_field(data: bytes) -> int:
    """keccak256 the bytes and drop the low 8 bits."""
    digest = Web3.keccak(primitive=data)
    return int.from_bytes(digest, "big") >> 8


def signal_for(identity: str) -> int:
    """Field element binding a proof to the identity presenting it."""
    packed = bytes.fromhex(to_identity(identity)[2:])
    return hash_to_field(packed)


def action_domain_id(app_id: str, action: str) -> int:
    """Domain identifier for ``action`` within application ``app_id``.

    Nested the same way the proof system derives external nullifiers:
    hash_to_field(abi.encodePacked(hash_to_field(app_id), action)).
    """
    app_field = hash_to_field(app_id.encode("utf-8"))
    packed = app_field.to_bytes(32, "big") + action.encode("utf-8")
    return hash_to_field(packed)
