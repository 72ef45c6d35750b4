"""Reward ledger — the fungible balance store bonds are paid from.

The engine only ever mints. InMemoryRewardLedger is the bundled
reference implementation; a deployment can substitute any object with
the same ``mint`` / ``balance_of`` surface.

All monetary values use Decimal. Minting is restricted to an authorised
set of callers (the engine's minter identity and the administrator).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Protocol

from covenant.errors import UnauthorizedCaller
from covenant.journal import UndoJournal


class RewardLedger(Protocol):
    def mint(self, to: str, amount: Decimal, *, caller: str) -> None: ...

    def balance_of(self, owner: str) -> Decimal: ...


class InMemoryRewardLedger:
    """Decimal balances with an authorised-minter gate.

    Usage:
        ledger = InMemoryRewardLedger(minters=[engine_id, admin])
        ledger.mint(alice, Decimal("50"), caller=engine_id)
        ledger.balance_of(alice)   # Decimal("50")
    """

    def __init__(self, minters: Iterable[str] = ()) -> None:
        self._journal = UndoJournal()
        self._minters: set[str] = set(minters)
        self._balances: dict[str, Decimal] = {}

    def authorize(self, minter: str) -> None:
        self._minters.add(minter)

    def mint(self, to: str, amount: Decimal, *, caller: str) -> None:
        if caller not in self._minters:
            raise UnauthorizedCaller(f"{caller} may not mint rewards")
        if amount <= Decimal("0"):
            raise ValueError("Mint amount must be positive")
        previous = self._balances.get(to)
        self._balances[to] = (previous or Decimal("0")) + amount
        self._journal.record(lambda: self._restore_balance(to, previous))

    def _restore_balance(self, owner: str, previous: Optional[Decimal]) -> None:
        if previous is None:
            del self._balances[owner]
        else:
            self._balances[owner] = previous

    def balance_of(self, owner: str) -> Decimal:
        return self._balances.get(owner, Decimal("0"))

    @property
    def total_supply(self) -> Decimal:
        return sum(self._balances.values(), Decimal("0"))

    def balances(self) -> dict[str, Decimal]:
        return dict(self._balances)

    def load_balances(self, balances: dict[str, Decimal]) -> None:
        self._balances = dict(balances)

    def checkpoint(self) -> int:
        return self._journal.checkpoint()

    def rollback(self, token: int) -> None:
        self._journal.rollback(token)

    def release(self) -> None:
        self._journal.release()
