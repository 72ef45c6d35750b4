"""Tests for the undo journal — proves inverses replay newest first back to a marker."""

from covenant.journal import UndoJournal


class TestUndoJournal:
    def test_writes_without_checkpoint_are_not_recorded(self) -> None:
        journal = UndoJournal()
        journal.record(lambda: None)
        assert not journal.active
        assert journal.depth == 0

    def test_rollback_replays_newest_first(self) -> None:
        journal = UndoJournal()
        undone: list[int] = []
        marker = journal.checkpoint()
        for n in (1, 2, 3):
            journal.record(lambda n=n: undone.append(n))
        journal.rollback(marker)
        assert undone == [3, 2, 1]
        assert journal.depth == 0

    def test_nested_markers(self) -> None:
        journal = UndoJournal()
        undone: list[str] = []
        outer = journal.checkpoint()
        journal.record(lambda: undone.append("outer"))
        inner = journal.checkpoint()
        journal.record(lambda: undone.append("inner"))

        journal.rollback(inner)
        assert undone == ["inner"]
        assert journal.depth == 1

        journal.rollback(outer)
        assert undone == ["inner", "outer"]

    def test_release_discards_entries(self) -> None:
        journal = UndoJournal()
        undone: list[int] = []
        marker = journal.checkpoint()
        journal.record(lambda: undone.append(1))
        journal.release()
        journal.rollback(marker)
        assert undone == []
        assert not journal.active
