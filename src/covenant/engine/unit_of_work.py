"""Unit of work — all-or-nothing application of a lifecycle operation.

Every public operation runs inside a UnitOfWork. On entry the unit takes
a checkpoint of each participant (registries, nullifier guard, and any
collaborator that supports checkpointing). A checkpoint is a marker into
the participant's undo journal, not a copy of its state. Event records
emitted during the operation are buffered. If anything raises, every
participant is rolled back to its checkpoint and the buffered records
are discarded, so a failed operation leaves no trace. On the outermost
successful exit the buffered records are handed to the commit callback.

Units nest: a collaborator that calls back into the service during its
own execution opens an inner unit. The inner unit rolls back only its
own changes on failure; its records are flushed by the outer unit.
When the outermost unit finishes, participants release their journals.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Protocol, runtime_checkable

from covenant.persistence.event_log import EventRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class Checkpointable(Protocol):
    """A participant whose state can be captured and restored in place."""

    def checkpoint(self) -> Any: ...

    def rollback(self, token: Any) -> None: ...

    def release(self) -> None: ...


class UnitOfWork:
    """Re-entrant checkpoint/rollback scope with buffered event records.

    Usage:
        uow = UnitOfWork(participants, on_commit=flush)
        with uow:
            registry.write(...)
            uow.emit(record)
            collaborator.mint(...)
    """

    def __init__(
        self,
        participants: Iterable[object],
        on_commit: Optional[Callable[[list[EventRecord]], None]] = None,
    ) -> None:
        self._participants = [p for p in participants if isinstance(p, Checkpointable)]
        self._on_commit = on_commit
        self._stack: list[tuple[list[tuple[Checkpointable, Any]], int]] = []
        self._pending: list[EventRecord] = []

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def pending(self) -> list[EventRecord]:
        return list(self._pending)

    def emit(self, record: EventRecord) -> None:
        """Buffer an event record until the outermost unit commits."""
        if not self._stack:
            raise RuntimeError("emit() called outside a unit of work")
        self._pending.append(record)

    def __enter__(self) -> UnitOfWork:
        tokens = [(p, p.checkpoint()) for p in self._participants]
        self._stack.append((tokens, len(self._pending)))
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        tokens, pending_mark = self._stack.pop()
        try:
            if exc_type is not None:
                self._abort(tokens, pending_mark, exc)
                return False
            if self._stack or not self._pending:
                return False

            # Outermost commit: the audit records must land before the unit
            # is considered done. A failed flush undoes the whole operation.
            committed = self._pending
            try:
                if self._on_commit is not None:
                    self._on_commit(committed)
            except Exception as commit_error:
                self._abort(tokens, pending_mark, commit_error)
                raise
            self._pending = []
            return False
        finally:
            if not self._stack:
                for participant in self._participants:
                    participant.release()

    def _abort(
        self,
        tokens: list[tuple[Checkpointable, Any]],
        pending_mark: int,
        cause: BaseException,
    ) -> None:
        for participant, token in reversed(tokens):
            participant.rollback(token)
        del self._pending[pending_mark:]
        logger.warning("Rolled back unit of work (depth %d): %s", len(self._stack), cause)
