"""Proposal registry — live proposals plus the incoming-proposal index.

Each proposer holds at most one live proposal. For every target the
registry keeps the list of proposers currently addressing it, and a
reverse map from proposer to its slot in that list, so any entry can be
removed in constant time:

    remove P from T's list:
        i    = position[P]
        last = incoming[T][-1]
        if P is not last: incoming[T][i] = last; position[last] = i
        incoming[T].pop(); del position[P]

Removal does not preserve the relative order of the remaining entries.
A proposer has exactly one live proposal, so it sits in exactly one
target's list and the reverse map is keyed by proposer alone.

The registry is a pure store — it validates its own structural rules
(one proposal per proposer) but not lifecycle rules such as bonding
status. Those live in the service layer.
"""

from __future__ import annotations

import logging
from typing import Optional

from covenant.errors import NoProposal, ProposalExists
from covenant.journal import UndoJournal
from covenant.models.bond import Proposal

logger = logging.getLogger(__name__)


class IncomingProposalIndex:
    """Target → proposers list with O(1) swap-remove.

    Writes are journaled in ``journal`` so a rollback puts every entry
    back in its original slot.
    """

    def __init__(self, journal: Optional[UndoJournal] = None) -> None:
        self._incoming: dict[str, list[str]] = {}
        self._position: dict[str, int] = {}
        self._journal = journal if journal is not None else UndoJournal()

    def add(self, target: str, proposer: str) -> None:
        if proposer in self._position:
            raise ValueError(f"{proposer} is already indexed")
        entries = self._incoming.setdefault(target, [])
        self._position[proposer] = len(entries)
        entries.append(proposer)
        self._journal.record(lambda: self._remove(target, proposer))

    def remove(self, target: str, proposer: str) -> None:
        i = self._remove(target, proposer)
        self._journal.record(lambda: self._reinsert(target, proposer, i))
        logger.debug("Removed %s from incoming index of %s (slot %d)", proposer, target, i)

    def _remove(self, target: str, proposer: str) -> int:
        entries = self._incoming.get(target)
        i = self._position.get(proposer)
        if entries is None or i is None or i >= len(entries) or entries[i] != proposer:
            raise KeyError(f"{proposer} is not indexed under {target}")

        last_index = len(entries) - 1
        if i != last_index:
            moved = entries[last_index]
            entries[i] = moved
            self._position[moved] = i
        entries.pop()
        del self._position[proposer]
        if not entries:
            del self._incoming[target]
        return i

    def _reinsert(self, target: str, proposer: str, i: int) -> None:
        """Inverse of ``_remove``: the entry that filled slot i goes back to the end."""
        entries = self._incoming.setdefault(target, [])
        if i < len(entries):
            moved = entries[i]
            self._position[moved] = len(entries)
            entries.append(moved)
            entries[i] = proposer
        else:
            entries.append(proposer)
        self._position[proposer] = i

    def proposers(self, target: str) -> list[str]:
        return list(self._incoming.get(target, ()))

    def position(self, proposer: str) -> Optional[int]:
        return self._position.get(proposer)

    def targets(self) -> list[str]:
        return list(self._incoming)


class ProposalRegistry:
    """In-memory store of live proposals.

    Usage:
        registry = ProposalRegistry()
        registry.add(Proposal(proposer, proposed, nullifier, now))
        registry.incoming(proposed)      # [proposer]
        registry.remove(proposer)        # returns the deleted Proposal
    """

    def __init__(self) -> None:
        self._journal = UndoJournal()
        self._proposals: dict[str, Proposal] = {}
        self._index = IncomingProposalIndex(self._journal)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, proposal: Proposal) -> None:
        proposer = proposal.proposer
        if proposer in self._proposals:
            raise ProposalExists(f"{proposer} already has a live proposal")
        self._proposals[proposer] = proposal
        self._journal.record(lambda: self._proposals.pop(proposer))
        self._index.add(proposal.proposed, proposer)

    def remove(self, proposer: str) -> Proposal:
        """Delete ``proposer``'s proposal and unindex it."""
        proposal = self._proposals.pop(proposer, None)
        if proposal is None:
            raise NoProposal(f"{proposer} has no live proposal")
        self._journal.record(lambda: self._proposals.__setitem__(proposer, proposal))
        self._index.remove(proposal.proposed, proposer)
        return proposal

    def discard(self, proposer: str) -> Optional[Proposal]:
        """Delete ``proposer``'s proposal if there is one."""
        if proposer not in self._proposals:
            return None
        return self.remove(proposer)

    def mark_accepted(self, proposer: str) -> Proposal:
        proposal = self._proposals.get(proposer)
        if proposal is None:
            raise NoProposal(f"{proposer} has no live proposal")
        previous = proposal.accepted
        proposal.accepted = True
        self._journal.record(lambda: setattr(proposal, "accepted", previous))
        return proposal

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, proposer: str) -> Optional[Proposal]:
        return self._proposals.get(proposer)

    def has_proposal(self, proposer: str) -> bool:
        return proposer in self._proposals

    def incoming(self, target: str) -> list[str]:
        return self._index.proposers(target)

    def position(self, proposer: str) -> Optional[int]:
        return self._index.position(proposer)

    def all_proposals(self) -> list[Proposal]:
        return list(self._proposals.values())

    def incoming_lists(self) -> dict[str, list[str]]:
        """Every target's list, in slot order (for persistence)."""
        return {t: self._index.proposers(t) for t in self._index.targets()}

    @property
    def count(self) -> int:
        return len(self._proposals)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    @classmethod
    def restore(
        cls,
        proposals: list[Proposal],
        incoming: dict[str, list[str]],
    ) -> ProposalRegistry:
        """Rebuild from persisted proposals and incoming lists.

        Slot order is taken from ``incoming`` so positions survive a
        restart exactly.
        """
        registry = cls()
        by_proposer = {p.proposer: p for p in proposals}
        for target, proposers in incoming.items():
            for proposer in proposers:
                proposal = by_proposer.get(proposer)
                if proposal is None or proposal.proposed != target:
                    raise ValueError(
                        f"Incoming index entry {proposer} → {target} has no matching proposal"
                    )
                registry._proposals[proposer] = proposal
                registry._index.add(target, proposer)
        missing = set(by_proposer) - set(registry._proposals)
        if missing:
            raise ValueError(f"Proposals missing from incoming index: {sorted(missing)}")
        return registry

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def checkpoint(self) -> int:
        return self._journal.checkpoint()

    def rollback(self, token: int) -> None:
        self._journal.rollback(token)

    def release(self) -> None:
        self._journal.release()
