"""Soulbound certificate issuers — bond and anniversary tokens.

A certificate is a non-transferable token: it has an owner and a
metadata dict and can never move. Two issuers are wired into the engine:

- the bond issuer mints one certificate per partner when a bond forms;
- the anniversary issuer mints one certificate per partner per
  milestone period, and owns the milestone schedule.

The milestone schedule maps period numbers to metadata URIs. It is
defined by the administrator, can be frozen permanently, and its
ceiling is the highest period defined. Minting an anniversary for an
undefined period fails, including a gap below the ceiling.

The engine only calls ``mint_certificate`` and ``schedule_ceiling``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from covenant.errors import (
    ScheduleFrozen,
    ScheduleNotFound,
    TransferForbidden,
    UnauthorizedCaller,
)
from covenant.journal import UndoJournal


class CertificateIssuer(Protocol):
    def mint_certificate(self, owner: str, metadata: dict[str, Any], *, caller: str) -> int: ...

    def schedule_ceiling(self) -> int: ...


@dataclass(frozen=True)
class Certificate:
    token_id: int
    owner: str
    metadata: dict[str, Any] = field(default_factory=dict)


class SoulboundCertificateIssuer:
    """Sequentially numbered, non-transferable certificates.

    Parameters:
        name: label used in messages ("bond", "anniversary").
        minters: identities allowed to mint.
        admin: identity allowed to define and freeze the schedule.
        milestone_key: metadata key carrying the period number. When set,
            every mint must name a period present in the schedule.
    """

    def __init__(
        self,
        name: str,
        minters: Iterable[str] = (),
        admin: Optional[str] = None,
        milestone_key: Optional[str] = None,
    ) -> None:
        self.name = name
        self._journal = UndoJournal()
        self._minters: set[str] = set(minters)
        self._admin = admin
        self._milestone_key = milestone_key
        self._tokens: dict[int, Certificate] = {}
        self._next_id = 1
        self._schedule: dict[int, str] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Minting
    # ------------------------------------------------------------------

    def mint_certificate(self, owner: str, metadata: dict[str, Any], *, caller: str) -> int:
        if caller not in self._minters:
            raise UnauthorizedCaller(f"{caller} may not mint {self.name} certificates")

        metadata = dict(metadata)
        if self._milestone_key is not None:
            period = metadata.get(self._milestone_key)
            uri = self._schedule.get(period)
            if uri is None:
                raise ScheduleNotFound(f"No {self.name} metadata defined for period {period}")
            metadata["uri"] = uri

        token_id = self._next_id
        self._next_id += 1
        self._tokens[token_id] = Certificate(token_id=token_id, owner=owner, metadata=metadata)
        self._journal.record(lambda: self._unmint(token_id))
        return token_id

    def _unmint(self, token_id: int) -> None:
        del self._tokens[token_id]
        self._next_id = token_id

    def transfer(self, token_id: int, to: str, *, caller: str) -> None:
        raise TransferForbidden(f"{self.name} certificate {token_id} is soulbound")

    # ------------------------------------------------------------------
    # Milestone schedule
    # ------------------------------------------------------------------

    def define_milestone(self, period: int, uri: str, *, caller: str) -> None:
        if caller != self._admin:
            raise UnauthorizedCaller(f"{caller} may not edit the {self.name} schedule")
        if self._frozen:
            raise ScheduleFrozen(f"The {self.name} schedule is frozen")
        if period < 1:
            raise ValueError("Milestone periods start at 1")
        previous = self._schedule.get(period)
        self._schedule[period] = uri
        self._journal.record(lambda: self._restore_milestone(period, previous))

    def _restore_milestone(self, period: int, uri: Optional[str]) -> None:
        if uri is None:
            del self._schedule[period]
        else:
            self._schedule[period] = uri

    def freeze_schedule(self, *, caller: str) -> None:
        if caller != self._admin:
            raise UnauthorizedCaller(f"{caller} may not freeze the {self.name} schedule")
        frozen = self._frozen
        self._frozen = True
        self._journal.record(lambda: setattr(self, "_frozen", frozen))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def schedule_ceiling(self) -> int:
        return max(self._schedule, default=0)

    def schedule(self) -> dict[int, str]:
        return dict(self._schedule)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, token_id: int) -> Optional[Certificate]:
        return self._tokens.get(token_id)

    def tokens_of(self, owner: str) -> list[Certificate]:
        return [c for c in self._tokens.values() if c.owner == owner]

    def all_tokens(self) -> list[Certificate]:
        return list(self._tokens.values())

    @property
    def count(self) -> int:
        return len(self._tokens)

    # ------------------------------------------------------------------
    # Persistence and checkpointing
    # ------------------------------------------------------------------

    def load(self, tokens: list[Certificate], schedule: dict[int, str], frozen: bool) -> None:
        self._tokens = {c.token_id: c for c in tokens}
        self._next_id = max(self._tokens, default=0) + 1
        self._schedule = dict(schedule)
        self._frozen = frozen

    def checkpoint(self) -> int:
        return self._journal.checkpoint()

    def rollback(self, token: int) -> None:
        self._journal.rollback(token)

    def release(self) -> None:
        self._journal.release()
