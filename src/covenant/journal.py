"""Undo journal — in-place write log backing checkpoint and rollback.

A participant in a unit of work records the inverse of every write it
makes while a checkpoint is open. A checkpoint is only a marker into
that log, so taking one costs nothing regardless of how much state the
participant holds, and rolling back costs one step per write made since
the marker.

    journal.checkpoint()            # marker
    journal.record(lambda: ...)     # inverse of a write
    journal.rollback(marker)        # replay inverses newest first
    journal.release()               # outermost unit finished

Writes made with no checkpoint open are not journaled.
"""

from __future__ import annotations

from typing import Callable, Optional


Undo = Callable[[], None]


class UndoJournal:
    """LIFO log of inverse operations."""

    def __init__(self) -> None:
        self._entries: Optional[list[Undo]] = None

    @property
    def active(self) -> bool:
        return self._entries is not None

    @property
    def depth(self) -> int:
        return len(self._entries) if self._entries is not None else 0

    def record(self, undo: Undo) -> None:
        if self._entries is not None:
            self._entries.append(undo)

    def checkpoint(self) -> int:
        if self._entries is None:
            self._entries = []
        return len(self._entries)

    def rollback(self, marker: int) -> None:
        entries = self._entries or []
        while len(entries) > marker:
            entries.pop()()

    def release(self) -> None:
        self._entries = None
