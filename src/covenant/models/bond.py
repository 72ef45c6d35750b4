"""Bond models — proposals, bonds, and the read-only views built on them.

Reward amounts use Decimal for exact arithmetic. Timestamps are
timezone-aware UTC datetimes.

Proposal and Bond are mutable: the registries update them in place as
the lifecycle advances. The view types are frozen snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass
class Proposal:
    """An outstanding offer from ``proposer`` to bond with ``proposed``.

    At most one live proposal exists per proposer. ``accepted`` is only
    ever true transiently, inside accept, just before the proposal is
    deleted.
    """
    proposer: str
    proposed: str
    proposer_nullifier: int
    created_at: datetime
    accepted: bool = False


@dataclass
class Bond:
    """The recorded relationship between two identities.

    Keyed by pair key. A later accept for the same pair overwrites the
    record in place; records are never deleted.
    """
    partner_a: str
    partner_b: str
    nullifier_a: int
    nullifier_b: int
    bond_start: datetime
    last_claim: datetime
    last_milestone: int = 0
    active: bool = True

    def has_participant(self, identity: str) -> bool:
        return identity in (self.partner_a, self.partner_b)

    def partner_of(self, identity: str) -> str:
        """Return the other participant. Raises ValueError for strangers."""
        if identity == self.partner_a:
            return self.partner_b
        if identity == self.partner_b:
            return self.partner_a
        raise ValueError(f"{identity} is not a participant of this bond")


@dataclass(frozen=True)
class Dashboard:
    """Per-identity summary for presentation layers."""
    identity: str
    is_bonded: bool
    partner: Optional[str]
    pending_yield: Decimal
    has_outgoing_proposal: bool
    balance: Decimal


@dataclass(frozen=True)
class PairView:
    """Full bond record for a pair plus derived values.

    ``bond`` is None when the pair has never been bonded.
    """
    pair_key: str
    bond: Optional[Bond]
    pending_yield: Decimal
