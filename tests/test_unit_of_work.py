"""Tests for the unit of work — proves rollback is all-or-nothing and nests."""

from typing import Any

import pytest

from covenant.engine.unit_of_work import UnitOfWork
from covenant.persistence.event_log import EventKind, EventRecord


class Counter:
    def __init__(self) -> None:
        self.value = 0
        self.releases = 0

    def checkpoint(self) -> Any:
        return self.value

    def rollback(self, token: Any) -> None:
        self.value = token

    def release(self) -> None:
        self.releases += 1


def _record(n: int) -> EventRecord:
    return EventRecord.create(f"EVT-{n}", EventKind.YIELD_CLAIMED, "actor", {"n": n})


class TestUnitOfWork:
    def test_commit_flushes_records(self) -> None:
        flushed: list[list[EventRecord]] = []
        counter = Counter()
        uow = UnitOfWork([counter], on_commit=flushed.append)
        with uow:
            counter.value = 5
            uow.emit(_record(1))
        assert counter.value == 5
        assert [r.event_id for r in flushed[0]] == ["EVT-1"]
        assert uow.pending == []

    def test_failure_rolls_back_and_discards(self) -> None:
        flushed: list[list[EventRecord]] = []
        counter = Counter()
        uow = UnitOfWork([counter], on_commit=flushed.append)
        with pytest.raises(RuntimeError):
            with uow:
                counter.value = 5
                uow.emit(_record(1))
                raise RuntimeError("boom")
        assert counter.value == 0
        assert flushed == []
        assert uow.pending == []

    def test_failed_commit_rolls_back(self) -> None:
        counter = Counter()

        def _fail(records: list[EventRecord]) -> None:
            raise OSError("disk full")

        uow = UnitOfWork([counter], on_commit=_fail)
        with pytest.raises(OSError):
            with uow:
                counter.value = 5
                uow.emit(_record(1))
        assert counter.value == 0
        assert uow.pending == []

    def test_inner_failure_keeps_outer_effects(self) -> None:
        flushed: list[list[EventRecord]] = []
        counter = Counter()
        uow = UnitOfWork([counter], on_commit=flushed.append)
        with uow:
            counter.value = 1
            uow.emit(_record(1))
            with pytest.raises(ValueError):
                with uow:
                    counter.value = 2
                    uow.emit(_record(2))
                    raise ValueError("inner")
            assert counter.value == 1
        assert [r.event_id for r in flushed[0]] == ["EVT-1"]

    def test_inner_commit_defers_to_outer(self) -> None:
        flushed: list[list[EventRecord]] = []
        uow = UnitOfWork([], on_commit=flushed.append)
        with uow:
            with uow:
                uow.emit(_record(1))
            assert flushed == []
            assert uow.depth == 1
        assert len(flushed) == 1

    def test_emit_outside_unit(self) -> None:
        with pytest.raises(RuntimeError):
            UnitOfWork([]).emit(_record(1))

    def test_non_checkpointable_participants_ignored(self) -> None:
        uow = UnitOfWork([object(), None])
        with uow:
            pass
        assert uow.depth == 0

    def test_release_only_after_outermost_exit(self) -> None:
        counter = Counter()
        uow = UnitOfWork([counter])
        with uow:
            with uow:
                pass
            assert counter.releases == 0
        assert counter.releases == 1

    def test_release_after_failure(self) -> None:
        counter = Counter()
        uow = UnitOfWork([counter])
        with pytest.raises(RuntimeError):
            with uow:
                raise RuntimeError("boom")
        assert counter.releases == 1
