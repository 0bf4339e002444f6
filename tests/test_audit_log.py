"""
Tests for the AuditLog model and service.

Verifies:
- AuditLogModel structure and to_dict()
- AuditService record methods
- Query methods (by entity, by actor, recent)
- Service mutations leave an audit trail in the same transaction
"""

from datetime import datetime, timezone

import pytest
from conftest import ADMIN, column_ids

from action_board.board.schemas import CardCreate
from action_board.db.audit_models import AuditLogModel
from action_board.db.audit_service import AuditService
from action_board.errors import ValidationError


@pytest.fixture
def audit(db_session):
    return AuditService(db_session)


class TestAuditLogModel:
    """Tests for AuditLogModel structure."""

    def test_model_has_required_columns(self):
        columns = {c.name for c in AuditLogModel.__table__.columns}
        assert {
            "id", "ts", "actor_kind", "actor_id", "action",
            "entity_kind", "entity_id", "before", "after", "note",
        }.issubset(columns)

    def test_to_dict_output(self):
        entry = AuditLogModel(
            id="audit-1",
            ts=datetime(2026, 3, 2, 9, 30, 0, tzinfo=timezone.utc),
            actor_kind="human",
            actor_id="user-1",
            action="moved",
            entity_kind="Card",
            entity_id="card-1",
            before={"column_id": "a", "position": 0},
            after={"column_id": "b", "position": 2},
        )

        result = entry.to_dict()

        assert result["ts"] == "2026-03-02T09:30:00+00:00"
        assert result["action"] == "moved"
        assert result["after"] == {"column_id": "b", "position": 2}
        assert result["note"] is None


class TestAuditServiceRecord:
    """Tests for AuditService record methods."""

    def test_record(self, db_session, audit):
        entry = audit.record(
            "created", "Board", "board-1", actor_id="user-1", after={"name": "Sales"}
        )
        db_session.commit()

        stored = db_session.get(AuditLogModel, entry.id)
        assert stored.actor_kind == "human"
        assert stored.after == {"name": "Sales"}
        assert stored.before is None

    def test_record_defaults_to_system_actor(self, audit):
        entry = audit.record("deleted", "Card", "card-1")
        assert entry.actor_id == "system"

    def test_record_status_change(self, audit):
        entry = audit.record_status_change("Card", "card-1", "active", "done", actor_id="u1")

        assert entry.action == "status_changed"
        assert entry.before == {"status": "active"}
        assert entry.after == {"status": "done"}
        assert entry.note == "Status changed: active -> done"

    def test_rollback_discards_entry(self, db_session, audit):
        audit.record("created", "Board", "board-1")
        db_session.rollback()

        assert db_session.query(AuditLogModel).count() == 0


class TestAuditServiceQueries:
    """Tests for AuditService query methods."""

    @pytest.fixture
    def entries(self, db_session, audit):
        audit.record("created", "Card", "card-1", actor_id="alice")
        audit.record("moved", "Card", "card-1", actor_id="bob")
        audit.record("created", "Card", "card-2", actor_id="alice")
        audit.record("created", "Board", "board-1", actor_id="bob")
        db_session.commit()

    def test_get_by_entity(self, audit, entries):
        history = audit.get_by_entity("Card", "card-1")
        assert [e.action for e in history] == ["created", "moved"]

    def test_get_by_actor(self, audit, entries):
        assert {e.entity_id for e in audit.get_by_actor("alice")} == {"card-1", "card-2"}

    def test_get_recent_filters(self, audit, entries):
        assert len(audit.get_recent()) == 4
        assert len(audit.get_recent(action="created")) == 3
        assert len(audit.get_recent(entity_kind="Board")) == 1
        assert len(audit.get_recent(limit=2)) == 2


class TestServiceAuditTrail:
    """Mutations through the services are audited."""

    def test_card_lifecycle(self, board_service, board, audit):
        backlog, doing, _ = column_ids(board_service, board.id)
        card = board_service.create_card(
            CardCreate(board_id=board.id, column_id=backlog, title="Call back"), ADMIN
        )
        board_service.move_card(card.id, doing, None, ADMIN)
        board_service.delete_card(card.id, ADMIN)

        history = audit.get_by_entity("Card", card.id)

        assert [e.action for e in history] == ["created", "moved", "deleted"]
        assert all(e.actor_id == ADMIN.id for e in history)
        assert history[1].before["column_id"] == backlog
        assert history[1].after["column_id"] == doing

    def test_failed_mutation_leaves_no_entry(self, board_service, board, team_board, audit):
        backlog = column_ids(board_service, board.id)[0]
        foreign = column_ids(board_service, team_board.id)[0]
        card = board_service.create_card(
            CardCreate(board_id=board.id, column_id=backlog, title="Call back"), ADMIN
        )

        with pytest.raises(ValidationError):
            board_service.move_card(card.id, foreign, None, ADMIN)

        assert [e.action for e in audit.get_by_entity("Card", card.id)] == ["created"]
