"""Replay guard — per action domain set of consumed proof nullifiers.

A nullifier is single-use within its action domain. The same value in a
different domain is unrelated: domains never share a set.
"""

from __future__ import annotations

from covenant.errors import NullifierReused
from covenant.journal import UndoJournal


class NullifierGuard:
    """Tracks consumed (domain, nullifier) pairs."""

    def __init__(self) -> None:
        self._journal = UndoJournal()
        self._consumed: dict[int, set[int]] = {}

    def is_consumed(self, domain: int, nullifier: int) -> bool:
        return nullifier in self._consumed.get(domain, ())

    def check(self, domain: int, nullifier: int) -> None:
        if self.is_consumed(domain, nullifier):
            raise NullifierReused(f"Nullifier {nullifier:#x} already used in this action")

    def consume(self, domain: int, nullifier: int) -> None:
        self.check(domain, nullifier)
        self._consumed.setdefault(domain, set()).add(nullifier)
        self._journal.record(lambda: self._release_nullifier(domain, nullifier))

    def _release_nullifier(self, domain: int, nullifier: int) -> None:
        nullifiers = self._consumed[domain]
        nullifiers.discard(nullifier)
        if not nullifiers:
            del self._consumed[domain]

    def consumed(self) -> dict[int, list[int]]:
        return {d: sorted(ns) for d, ns in self._consumed.items()}

    @classmethod
    def restore(cls, consumed: dict[int, list[int]]) -> NullifierGuard:
        guard = cls()
        guard._consumed = {int(d): set(ns) for d, ns in consumed.items()}
        return guard

    def checkpoint(self) -> int:
        return self._journal.checkpoint()

    def rollback(self, token: int) -> None:
        self._journal.rollback(token)

    def release(self) -> None:
        self._journal.release()
