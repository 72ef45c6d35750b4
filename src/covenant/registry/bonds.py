"""Bond registry — bond records by pair key and the active-bond index.

Invariant: an identity maps to a pair key in the active index if and
only if that key's bond is active and lists the identity as a
participant. ``activate`` and ``deactivate`` are the only writers of the
index, and they keep both sides in step.

Bond records are overwritten in place when a pair bonds again and are
never deleted. The bond history records every pair key in the order its
bond was created (a re-bonded pair appears once per bonding).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from covenant.journal import UndoJournal
from covenant.models.bond import Bond

logger = logging.getLogger(__name__)


class BondRegistry:
    """In-memory store of bond records.

    Usage:
        registry = BondRegistry()
        registry.activate(key, bond)
        registry.active_key(identity)    # key
        registry.deactivate(key, now)
    """

    def __init__(self) -> None:
        self._journal = UndoJournal()
        self._bonds: dict[str, Bond] = {}
        self._active: dict[str, str] = {}
        self._history: list[str] = []

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def activate(self, key: str, bond: Bond) -> None:
        """Write ``bond`` at ``key`` and index both partners.

        Overwrites any inactive record already at ``key``.
        """
        existing = self._bonds.get(key)
        if existing is not None and existing.active:
            raise ValueError(f"Bond {key} is already active")
        for identity in (bond.partner_a, bond.partner_b):
            if identity in self._active:
                raise ValueError(f"{identity} is already in an active bond")

        bond.active = True
        self._bonds[key] = bond
        self._active[bond.partner_a] = key
        self._active[bond.partner_b] = key
        self._history.append(key)
        self._journal.record(lambda: self._undo_activate(key, bond, existing))
        logger.debug("Bond %s activated for %s and %s", key, bond.partner_a, bond.partner_b)

    def _undo_activate(self, key: str, bond: Bond, existing: Optional[Bond]) -> None:
        self._history.pop()
        del self._active[bond.partner_a]
        del self._active[bond.partner_b]
        if existing is None:
            del self._bonds[key]
        else:
            self._bonds[key] = existing

    def deactivate(self, key: str, now: datetime) -> Bond:
        bond = self._active_bond(key)
        last_claim = bond.last_claim
        bond.active = False
        bond.last_claim = now
        for identity in (bond.partner_a, bond.partner_b):
            if self._active.get(identity) == key:
                del self._active[identity]
        self._journal.record(lambda: self._undo_deactivate(key, bond, last_claim))
        return bond

    def _undo_deactivate(self, key: str, bond: Bond, last_claim: datetime) -> None:
        bond.active = True
        bond.last_claim = last_claim
        self._active[bond.partner_a] = key
        self._active[bond.partner_b] = key

    def record_claim(self, key: str, now: datetime) -> Bond:
        """Move the accrual origin of an active bond to ``now``."""
        bond = self._active_bond(key)
        last_claim = bond.last_claim
        bond.last_claim = now
        self._journal.record(lambda: setattr(bond, "last_claim", last_claim))
        return bond

    def record_milestone(self, key: str, period: int) -> Bond:
        bond = self._active_bond(key)
        last_milestone = bond.last_milestone
        bond.last_milestone = period
        self._journal.record(lambda: setattr(bond, "last_milestone", last_milestone))
        return bond

    def _active_bond(self, key: str) -> Bond:
        bond = self._bonds.get(key)
        if bond is None or not bond.active:
            raise ValueError(f"Bond {key} is not active")
        return bond

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Bond]:
        return self._bonds.get(key)

    def is_active(self, key: str) -> bool:
        bond = self._bonds.get(key)
        return bond is not None and bond.active

    def active_key(self, identity: str) -> Optional[str]:
        return self._active.get(identity)

    def is_bonded(self, identity: str) -> bool:
        return identity in self._active

    def history(self) -> list[str]:
        return list(self._history)

    def all_bonds(self) -> dict[str, Bond]:
        return dict(self._bonds)

    @property
    def active_count(self) -> int:
        return sum(1 for b in self._bonds.values() if b.active)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    @classmethod
    def restore(cls, bonds: dict[str, Bond], history: list[str]) -> BondRegistry:
        """Rebuild from persisted records; the active index is derived."""
        registry = cls()
        registry._bonds = dict(bonds)
        registry._history = list(history)
        for key, bond in bonds.items():
            if not bond.active:
                continue
            for identity in (bond.partner_a, bond.partner_b):
                if identity in registry._active:
                    raise ValueError(f"{identity} is active in more than one bond")
                registry._active[identity] = key
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
