"""
Tests for the PositionLedger.

Verifies:
- clamp_index append/clamp behaviour
- Contiguous 0..n-1 positions after insert, move and remove sequences
- reorder_siblings permutation checks
- Out-of-sync scopes are rejected instead of overwritten
"""

import pytest

from action_board.board.ledger import PositionLedger, ScopeLocks, clamp_index
from action_board.db.models import BoardCardModel
from action_board.errors import ConflictError, ValidationError
from action_board.primitives import generate_ulid


def positions(ledger, scope_id):
    return [(row.title, row.position) for row in ledger.siblings(scope_id)]


def titles(ledger, scope_id):
    return [row.title for row in ledger.siblings(scope_id)]


@pytest.fixture
def columns(board_service, board):
    return [c.id for c in board_service.column_ledger.siblings(board.id)]


@pytest.fixture
def ledger(db_session):
    return PositionLedger(db_session, BoardCardModel, "column_id", entity_kind="card")


@pytest.fixture
def add_card(db_session, ledger, board):
    def add(column_id, title, index=None):
        card = BoardCardModel(
            id=generate_ulid(), board_id=board.id, column_id=column_id, title=title
        )
        db_session.add(card)
        ledger.insert(column_id, card, index)
        db_session.commit()
        return card

    return add


class TestClampIndex:
    """Tests for clamp_index()."""

    def test_none_appends(self):
        assert clamp_index(None, 3) == 3

    def test_in_range_is_kept(self):
        assert clamp_index(1, 3) == 1

    def test_too_large_is_clamped_to_length(self):
        assert clamp_index(99, 3) == 3

    def test_negative_is_clamped_to_zero(self):
        assert clamp_index(-4, 3) == 0


class TestInsert:
    """Tests for PositionLedger.insert()."""

    def test_append_by_default(self, ledger, add_card, columns):
        for title in ("a", "b", "c"):
            add_card(columns[0], title)

        assert positions(ledger, columns[0]) == [("a", 0), ("b", 1), ("c", 2)]

    def test_insert_in_the_middle_shifts_followers(self, ledger, add_card, columns):
        add_card(columns[0], "a")
        add_card(columns[0], "c")
        add_card(columns[0], "b", 1)

        assert positions(ledger, columns[0]) == [("a", 0), ("b", 1), ("c", 2)]

    def test_out_of_range_index_is_clamped(self, ledger, add_card, columns):
        add_card(columns[0], "a")
        add_card(columns[0], "z", 50)
        add_card(columns[0], "first", -3)

        assert titles(ledger, columns[0]) == ["first", "a", "z"]
        assert [p for _, p in positions(ledger, columns[0])] == [0, 1, 2]


class TestMove:
    """Tests for PositionLedger.move()."""

    def test_move_within_column(self, db_session, ledger, add_card, columns):
        a, b, c = (add_card(columns[0], t) for t in ("a", "b", "c"))

        index = ledger.move(a, columns[0], 2)
        db_session.commit()

        assert index == 2
        assert titles(ledger, columns[0]) == ["b", "c", "a"]
        assert [p for _, p in positions(ledger, columns[0])] == [0, 1, 2]

    def test_same_column_clamps_to_last_slot(self, db_session, ledger, add_card, columns):
        a = add_card(columns[0], "a")
        add_card(columns[0], "b")

        assert ledger.move(a, columns[0], 10) == 1
        db_session.commit()
        assert titles(ledger, columns[0]) == ["b", "a"]

    def test_move_across_columns_closes_gap_and_inserts(
        self, db_session, ledger, add_card, columns
    ):
        a, b, c = (add_card(columns[0], t) for t in ("a", "b", "c"))
        x, y = (add_card(columns[1], t) for t in ("x", "y"))

        index = ledger.move(b, columns[1], 1)
        db_session.commit()

        assert index == 1
        assert positions(ledger, columns[0]) == [("a", 0), ("c", 1)]
        assert positions(ledger, columns[1]) == [("x", 0), ("b", 1), ("y", 2)]

    def test_move_without_index_appends(self, db_session, ledger, add_card, columns):
        a = add_card(columns[0], "a")
        add_card(columns[1], "x")

        assert ledger.move(a, columns[1]) == 1
        db_session.commit()
        assert ledger.siblings(columns[0]) == []

    def test_contiguous_after_mixed_sequence(self, db_session, ledger, add_card, columns):
        cards = [add_card(columns[i % 3], f"card-{i}") for i in range(9)]

        ledger.move(cards[0], columns[2], 0)
        ledger.move(cards[4], columns[0], 99)
        ledger.remove(cards[5])
        db_session.delete(cards[5])
        ledger.move(cards[8], columns[1], 1)
        ledger.move(cards[3], columns[0], 0)
        db_session.commit()

        for column_id in columns:
            ledger.verify(column_id)
            found = [p for _, p in positions(ledger, column_id)]
            assert found == list(range(len(found)))
        assert sum(len(ledger.siblings(c)) for c in columns) == 8


class TestRemove:
    """Tests for PositionLedger.remove()."""

    def test_remove_closes_gap(self, db_session, ledger, add_card, columns):
        a, b, c = (add_card(columns[0], t) for t in ("a", "b", "c"))

        ledger.remove(a)
        db_session.delete(a)
        db_session.commit()

        assert positions(ledger, columns[0]) == [("b", 0), ("c", 1)]


class TestReorderSiblings:
    """Tests for PositionLedger.reorder_siblings()."""

    def test_reorder_assigns_positions_in_order(self, db_session, ledger, add_card, columns):
        a, b, c = (add_card(columns[0], t) for t in ("a", "b", "c"))

        ledger.reorder_siblings(columns[0], [c.id, a.id, b.id])
        db_session.commit()

        assert positions(ledger, columns[0]) == [("c", 0), ("a", 1), ("b", 2)]

    @pytest.mark.parametrize("case", ["missing", "unknown", "duplicate"])
    def test_reorder_rejects_non_permutation(self, ledger, add_card, columns, case):
        a, b = add_card(columns[0], "a"), add_card(columns[0], "b")
        ids = {
            "missing": [a.id],
            "unknown": [a.id, b.id, "nope"],
            "duplicate": [a.id, a.id, b.id],
        }[case]

        with pytest.raises(ValidationError):
            ledger.reorder_siblings(columns[0], ids)

        assert titles(ledger, columns[0]) == ["a", "b"]


class TestOutOfSyncScope:
    """A scope whose positions are not 0..n-1 is refused, not rewritten."""

    def test_insert_into_broken_scope_raises_conflict(
        self, db_session, ledger, add_card, columns, board
    ):
        a = add_card(columns[0], "a")
        a.position = 5
        db_session.commit()

        card = BoardCardModel(
            id=generate_ulid(), board_id=board.id, column_id=columns[0], title="b"
        )
        db_session.add(card)
        with pytest.raises(ConflictError):
            ledger.insert(columns[0], card)

    def test_verify_reports_positions(self, db_session, ledger, add_card, columns):
        add_card(columns[0], "a")
        b = add_card(columns[0], "b")
        b.position = 0
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            ledger.verify(columns[0])
        assert exc_info.value.details["positions"] == [0, 0]


class TestScopeLocks:
    """Tests for ScopeLocks."""

    def test_same_key_returns_same_lock(self):
        locks = ScopeLocks()
        assert locks.get("board:1") is locks.get("board:1")
        assert locks.get("board:1") is not locks.get("board:2")

    def test_hold_is_reentrant(self):
        locks = ScopeLocks()
        with locks.hold("board:1", "plan:1"):
            with locks.hold("board:1"):
                pass
