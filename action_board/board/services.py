"""
Board Service Layer.

Owns boards, columns, cards and team permissions. Every position-affecting
operation runs through a PositionLedger while holding the board's lock, and
commits once. Change events are published after the commit so consumers
that refetch see the new state.

Audit logging is integrated into all state-changing operations.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..access import Actor, can_edit, effective_mode, require_admin, require_edit
from ..config import get_settings
from ..db.audit_service import AuditService
from ..db.models import (
    ActionPlanModel,
    BoardCardModel,
    BoardColumnModel,
    BoardModel,
    BoardPermissionModel,
    RoutingRuleModel,
    TeamModel,
)
from ..errors import ConflictError, NotFound, ValidationError
from ..events import ChangeAction, ChangeDispatcher, ChangeType
from ..primitives import generate_ulid, utc_now
from ..unit_of_work import UnitOfWork
from .ledger import PositionLedger
from .schemas import (
    BoardCreate,
    BoardUpdate,
    CardCreate,
    CardUpdate,
    ColumnUpdate,
    PermissionMode,
)

logger = structlog.get_logger()


def board_lock_key(board_id: str) -> str:
    return f"board:{board_id}"


def apply_card_status(card: BoardCardModel, status: str) -> None:
    """Set a card status and keep the completion/archival stamps consistent."""
    if card.status == status:
        return
    now = utc_now()
    card.status = status
    card.completed_at = now if status == "done" else None
    card.archived_at = now if status == "archived" else None


class BoardService(UnitOfWork):
    """Service for managing boards, columns, cards and permissions."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[ChangeDispatcher] = None,
    ):
        super().__init__(db, audit=audit, dispatcher=dispatcher)
        self.column_ledger = PositionLedger(
            db, BoardColumnModel, scope_attr="board_id", entity_kind="column"
        )
        self.card_ledger = PositionLedger(
            db, BoardCardModel, scope_attr="column_id", entity_kind="card"
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_board(self, board_id: str) -> BoardModel:
        board = self.db.query(BoardModel).filter(BoardModel.id == board_id).first()
        if not board:
            raise NotFound("Board", board_id)
        return board

    def get_column(self, column_id: str) -> BoardColumnModel:
        column = (
            self.db.query(BoardColumnModel)
            .filter(BoardColumnModel.id == column_id)
            .first()
        )
        if not column:
            raise NotFound("Column", column_id)
        return column

    def get_card(self, card_id: str) -> BoardCardModel:
        card = self.db.query(BoardCardModel).filter(BoardCardModel.id == card_id).first()
        if not card:
            raise NotFound("Card", card_id)
        return card

    def get_card_for_plan(self, action_plan_id: str) -> Optional[BoardCardModel]:
        return (
            self.db.query(BoardCardModel)
            .filter(BoardCardModel.action_plan_id == action_plan_id)
            .first()
        )

    def ensure_team(self, team_id: Optional[str]) -> None:
        if team_id and not self.db.get(TeamModel, team_id):
            raise NotFound("Team", team_id)

    def first_column(self, board_id: str) -> BoardColumnModel:
        columns = self.column_ledger.siblings(board_id)
        if not columns:
            raise ValidationError(
                f"Board '{board_id}' has no columns", details={"board_id": board_id}
            )
        return columns[0]

    # =========================================================================
    # Reads (not permission-gated)
    # =========================================================================

    def list_boards(self, actor: Actor) -> List[Dict[str, Any]]:
        """List boards by name with the actor's edit flag and team permissions."""
        boards = self.db.query(BoardModel).order_by(BoardModel.name, BoardModel.id).all()
        result = []
        for board in boards:
            data = board.to_dict()
            data["is_editable"] = can_edit(board, board.permissions, actor)
            data["permissions"] = [p.to_dict() for p in board.permissions]
            result.append(data)
        return result

    def get_board_detail(self, board_id: str, actor: Actor) -> Dict[str, Any]:
        """Board with ordered columns, ordered cards and permissions."""
        board = self.get_board(board_id)
        columns = self.column_ledger.siblings(board.id)
        column_order = {column.id: column.position for column in columns}
        cards = (
            self.db.query(BoardCardModel)
            .filter(BoardCardModel.board_id == board.id)
            .all()
        )
        cards.sort(key=lambda card: (column_order.get(card.column_id, 0), card.position))

        data = board.to_dict()
        data["is_editable"] = can_edit(board, board.permissions, actor)
        data["access_mode"] = effective_mode(board, board.permissions, actor)
        return {
            "board": data,
            "columns": [column.to_dict() for column in columns],
            "cards": [card.to_dict() for card in cards],
            "permissions": [p.to_dict() for p in board.permissions],
        }

    # =========================================================================
    # Boards
    # =========================================================================

    def create_board(self, data: BoardCreate, actor: Actor) -> BoardModel:
        """Create a board with its initial (or default) columns."""
        require_admin(actor)
        self.ensure_team(data.default_team_id)

        board = BoardModel(
            id=generate_ulid(),
            name=data.name,
            description=data.description,
            visibility=data.visibility.value,
            card_type=data.card_type.value,
            default_team_id=data.default_team_id,
        )
        self.db.add(board)

        if data.initial_columns:
            specs = [(c.name, c.wip_limit) for c in data.initial_columns]
        else:
            specs = [(name, None) for name in get_settings().default_column_names()]

        with self._board_scope(board.id):
            self.db.flush()
            for name, wip_limit in specs:
                column = BoardColumnModel(
                    id=generate_ulid(), board_id=board.id, name=name, wip_limit=wip_limit
                )
                self.db.add(column)
                self.column_ledger.insert(board.id, column)

            self.audit.record(
                "created", "Board", board.id, actor_id=actor.id, after=board.to_dict()
            )
            self.queue(ChangeType.BOARD, ChangeAction.CREATED, board.id, {"name": board.name})
            self.commit()

        logger.info("Board created", board_id=board.id, columns=len(specs), actor=actor.id)
        return board

    def update_board(self, board_id: str, data: BoardUpdate, actor: Actor) -> BoardModel:
        require_admin(actor)
        board = self.get_board(board_id)
        fields = data.model_fields_set

        if "name" in fields and data.name is None:
            raise ValidationError("Board name cannot be cleared")
        if "default_team_id" in fields:
            self.ensure_team(data.default_team_id)

        before = board.to_dict()
        if "name" in fields:
            board.name = data.name
        if "description" in fields:
            board.description = data.description
        if "visibility" in fields and data.visibility is not None:
            board.visibility = data.visibility.value
        if "card_type" in fields and data.card_type is not None:
            board.card_type = data.card_type.value
        if "default_team_id" in fields:
            board.default_team_id = data.default_team_id
        board.updated_at = utc_now()

        self.db.flush()
        self.audit.record(
            "updated", "Board", board.id, actor_id=actor.id, before=before, after=board.to_dict()
        )
        self.queue(ChangeType.BOARD, ChangeAction.UPDATED, board.id, {"name": board.name})
        self.commit()
        return board

    def delete_board(self, board_id: str, actor: Actor) -> None:
        """Delete a board and, explicitly, its cards, columns and permissions."""
        require_admin(actor)
        board = self.get_board(board_id)

        with self._board_scope(board.id):
            before = board.to_dict()
            columns = self.column_ledger.siblings(board.id)
            column_ids = [c.id for c in columns]

            card_count = (
                self.db.query(BoardCardModel)
                .filter(BoardCardModel.board_id == board.id)
                .delete(synchronize_session="fetch")
            )
            self._detach_rule_targets(board_id=board.id, column_ids=column_ids)
            for permission in list(board.permissions):
                self.db.delete(permission)
            for column in columns:
                self.db.delete(column)
            self.db.delete(board)

            self.audit.record(
                "deleted",
                "Board",
                board_id,
                actor_id=actor.id,
                before=before,
                note=f"Cascade deleted {len(column_ids)} columns and {card_count} cards",
            )
            self.queue(ChangeType.BOARD, ChangeAction.DELETED, board_id)
            self.commit()

        logger.info("Board deleted", board_id=board_id, cards=card_count, actor=actor.id)

    # =========================================================================
    # Columns
    # =========================================================================

    def create_column(
        self,
        board_id: str,
        name: str,
        actor: Actor,
        wip_limit: Optional[int] = None,
    ) -> BoardColumnModel:
        """Append a column to a board."""
        self.get_board(board_id)
        with self._board_scope(board_id):
            board = self.lock_board(board_id)
            require_edit(board, board.permissions, actor)

            column = BoardColumnModel(
                id=generate_ulid(), board_id=board.id, name=name, wip_limit=wip_limit
            )
            self.db.add(column)
            self.column_ledger.insert(board.id, column)

            self.audit.record(
                "created", "Column", column.id, actor_id=actor.id, after=column.to_dict()
            )
            self.queue(
                ChangeType.BOARD, ChangeAction.UPDATED, board.id, {"columnAdded": column.id}
            )
            self.commit()
        return column

    def update_column(
        self, column_id: str, data: ColumnUpdate, actor: Actor
    ) -> BoardColumnModel:
        """Rename a column or change its advisory WIP limit (null clears it)."""
        column = self.get_column(column_id)
        board = self.get_board(column.board_id)
        require_edit(board, board.permissions, actor)
        fields = data.model_fields_set

        if "name" in fields and data.name is None:
            raise ValidationError("Column name cannot be cleared")

        before = column.to_dict()
        if "name" in fields:
            column.name = data.name
        if "wip_limit" in fields:
            column.wip_limit = data.wip_limit
        column.updated_at = utc_now()

        self.db.flush()
        self.audit.record(
            "updated", "Column", column.id, actor_id=actor.id, before=before, after=column.to_dict()
        )
        self.queue(
            ChangeType.BOARD, ChangeAction.UPDATED, board.id, {"columnUpdated": column.id}
        )
        self.commit()
        return column

    def reorder_columns(
        self, board_id: str, column_ids: List[str], actor: Actor
    ) -> List[BoardColumnModel]:
        """Reorder every column of a board; positions become 0..n-1."""
        self.get_board(board_id)
        with self._board_scope(board_id):
            board = self.lock_board(board_id)
            require_edit(board, board.permissions, actor)

            before = [c.id for c in self.column_ledger.siblings(board.id)]
            columns = self.column_ledger.reorder_siblings(board.id, column_ids)

            self.audit.record(
                "reordered",
                "Board",
                board.id,
                actor_id=actor.id,
                before={"column_ids": before},
                after={"column_ids": list(column_ids)},
            )
            self.queue(
                ChangeType.BOARD, ChangeAction.UPDATED, board.id, {"columnsReordered": True}
            )
            self.commit()
        return columns

    def delete_column(self, column_id: str, actor: Actor) -> None:
        """Delete a column with its cards and close the gap among siblings."""
        column = self.get_column(column_id)
        board_id = column.board_id

        with self._board_scope(board_id):
            board = self.lock_board(board_id)
            require_edit(board, board.permissions, actor)
            self.db.refresh(column)

            before = column.to_dict()
            card_count = (
                self.db.query(BoardCardModel)
                .filter(BoardCardModel.column_id == column.id)
                .delete(synchronize_session="fetch")
            )
            self._detach_rule_targets(column_ids=[column.id])
            self.column_ledger.remove(column)
            self.db.delete(column)

            self.audit.record(
                "deleted",
                "Column",
                column_id,
                actor_id=actor.id,
                before=before,
                note=f"Cascade deleted {card_count} cards",
            )
            self.queue(
                ChangeType.BOARD, ChangeAction.UPDATED, board_id, {"columnDeleted": column_id}
            )
            self.commit()

    # =========================================================================
    # Permissions
    # =========================================================================

    def add_permission(
        self, board_id: str, team_id: str, mode: PermissionMode, actor: Actor
    ) -> BoardPermissionModel:
        require_admin(actor)
        board = self.get_board(board_id)
        self.ensure_team(team_id)

        existing = (
            self.db.query(BoardPermissionModel)
            .filter(
                BoardPermissionModel.board_id == board.id,
                BoardPermissionModel.team_id == team_id,
            )
            .first()
        )
        if existing:
            raise ValidationError(
                f"Team '{team_id}' already has access to board '{board.id}'",
                details={"permission_id": existing.id},
            )

        permission = BoardPermissionModel(
            id=generate_ulid(),
            board_id=board.id,
            team_id=team_id,
            mode=PermissionMode(mode).value,
        )
        self.db.add(permission)
        self.db.flush()
        self.audit.record(
            "created", "Permission", permission.id, actor_id=actor.id, after=permission.to_dict()
        )
        self.queue(
            ChangeType.BOARD, ChangeAction.UPDATED, board.id, {"permissionAdded": permission.id}
        )
        self.commit()
        return permission

    def remove_permission(self, permission_id: str, actor: Actor) -> None:
        require_admin(actor)
        permission = self.db.get(BoardPermissionModel, permission_id)
        if not permission:
            raise NotFound("Permission", permission_id)

        board_id = permission.board_id
        before = permission.to_dict()
        self.db.delete(permission)
        self.audit.record(
            "deleted", "Permission", permission_id, actor_id=actor.id, before=before
        )
        self.queue(
            ChangeType.BOARD, ChangeAction.UPDATED, board_id, {"permissionRemoved": permission_id}
        )
        self.commit()

    # =========================================================================
    # Cards
    # =========================================================================

    def create_card(self, data: CardCreate, actor: Actor) -> BoardCardModel:
        """Create a card in a column; appended unless a position is given."""
        self.get_board(data.board_id)
        with self._board_scope(data.board_id):
            board = self.lock_board(data.board_id)
            require_edit(board, board.permissions, actor)

            column = self.get_column(data.column_id)
            if column.board_id != board.id:
                raise ValidationError(
                    f"Column '{column.id}' does not belong to board '{board.id}'",
                    details={"column_id": column.id, "board_id": board.id},
                )
            self.ensure_team(data.assignee_team_id)
            if data.action_plan_id:
                self._ensure_plan_unlinked(data.action_plan_id)

            card = BoardCardModel(
                id=generate_ulid(),
                board_id=board.id,
                column_id=column.id,
                action_plan_id=data.action_plan_id,
                customer_id=data.customer_id,
                title=data.title,
                description=data.description,
                card_type=data.card_type.value if data.card_type else board.card_type,
                assignee_team_id=data.assignee_team_id,
                assignee_user_id=data.assignee_user_id,
                meta=data.metadata,
            )
            apply_card_status(card, data.status.value)
            self.db.add(card)
            self.card_ledger.insert(column.id, card, data.position)

            self.audit.record(
                "created", "Card", card.id, actor_id=actor.id, after=card.to_dict()
            )
            self.queue(
                ChangeType.CARD,
                ChangeAction.CREATED,
                card.id,
                {"boardId": board.id, "columnId": column.id, "position": card.position},
            )
            self.commit()
        return card

    def update_card(self, card_id: str, data: CardUpdate, actor: Actor) -> BoardCardModel:
        """Partial update of card fields; moves are rejected here."""
        fields = data.model_fields_set
        if "column_id" in fields or "position" in fields:
            raise ValidationError(
                "Cards change column or position only through the move operation",
                details={"card_id": card_id},
            )

        card = self.get_card(card_id)
        board = self.get_board(card.board_id)
        require_edit(board, board.permissions, actor)

        if "title" in fields and data.title is None:
            raise ValidationError("Card title cannot be cleared")
        if "assignee_team_id" in fields:
            self.ensure_team(data.assignee_team_id)

        before = card.to_dict()
        if "title" in fields:
            card.title = data.title
        if "description" in fields:
            card.description = data.description
        if "card_type" in fields and data.card_type is not None:
            card.card_type = data.card_type.value
        if "assignee_team_id" in fields:
            card.assignee_team_id = data.assignee_team_id
        if "assignee_user_id" in fields:
            card.assignee_user_id = data.assignee_user_id
        if "metadata" in fields:
            card.meta = data.metadata
        if "status" in fields and data.status is not None and data.status.value != card.status:
            old_status = card.status
            apply_card_status(card, data.status.value)
            self.audit.record_status_change(
                "Card", card.id, old_status, card.status, actor_id=actor.id
            )
        card.updated_at = utc_now()

        self.db.flush()
        self.audit.record(
            "updated", "Card", card.id, actor_id=actor.id, before=before, after=card.to_dict()
        )
        self.queue(
            ChangeType.CARD,
            ChangeAction.UPDATED,
            card.id,
            {"boardId": card.board_id, "status": card.status},
        )
        self.commit()
        return card

    def move_card(
        self,
        card_id: str,
        column_id: str,
        position: Optional[int],
        actor: Actor,
    ) -> BoardCardModel:
        """Move a card to a column of the same board at a clamped position."""
        card = self.get_card(card_id)
        board_id = card.board_id

        with self._board_scope(board_id):
            board = self.lock_board(board_id)
            self.db.refresh(card)
            if card.board_id != board_id:
                raise ConflictError(
                    f"Card '{card.id}' changed board while waiting to move",
                    details={"card_id": card.id},
                )
            require_edit(board, board.permissions, actor)

            column = self.get_column(column_id)
            if column.board_id != card.board_id:
                raise ValidationError(
                    "Cards cannot move to a column of another board",
                    details={
                        "card_id": card.id,
                        "board_id": card.board_id,
                        "column_id": column.id,
                        "column_board_id": column.board_id,
                    },
                )

            before = {"column_id": card.column_id, "position": card.position}
            self.card_ledger.move(card, column.id, position)
            card.updated_at = utc_now()

            self.audit.record(
                "moved",
                "Card",
                card.id,
                actor_id=actor.id,
                before=before,
                after={"column_id": card.column_id, "position": card.position},
            )
            self.queue(
                ChangeType.CARD,
                ChangeAction.UPDATED,
                card.id,
                {
                    "change": "moved",
                    "boardId": card.board_id,
                    "columnId": card.column_id,
                    "position": card.position,
                },
            )
            self.commit()
        return card

    def delete_card(self, card_id: str, actor: Actor) -> None:
        card = self.get_card(card_id)
        board_id = card.board_id

        with self._board_scope(board_id):
            board = self.lock_board(board_id)
            require_edit(board, board.permissions, actor)
            self.db.refresh(card)

            before = card.to_dict()
            self.card_ledger.remove(card)
            self.db.delete(card)

            self.audit.record("deleted", "Card", card_id, actor_id=actor.id, before=before)
            self.queue(
                ChangeType.CARD,
                ChangeAction.DELETED,
                card_id,
                {"boardId": board_id, "actionPlanId": before["action_plan_id"]},
            )
            self.commit()

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextmanager
    def _board_scope(self, *board_ids: str) -> Iterator[None]:
        """Serialize position-affecting work on the given boards."""
        with self.locked(*(board_lock_key(b) for b in board_ids)):
            yield

    def lock_board(self, board_id: str) -> BoardModel:
        """Reload the board row with a row lock (no-op on SQLite)."""
        board = (
            self.db.query(BoardModel)
            .filter(BoardModel.id == board_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if not board:
            raise NotFound("Board", board_id)
        return board

    def _ensure_plan_unlinked(self, action_plan_id: str) -> None:
        if not self.db.get(ActionPlanModel, action_plan_id):
            raise NotFound("ActionPlan", action_plan_id)
        existing = self.get_card_for_plan(action_plan_id)
        if existing:
            raise ValidationError(
                f"Action plan '{action_plan_id}' already has card '{existing.id}'; promote it instead",
                details={"card_id": existing.id},
            )

    def _detach_rule_targets(
        self, board_id: Optional[str] = None, column_ids: Optional[List[str]] = None
    ) -> None:
        """Point routing rules away from a board/columns about to disappear."""
        if board_id:
            self.db.query(RoutingRuleModel).filter(
                RoutingRuleModel.target_board_id == board_id
            ).update(
                {"target_board_id": None, "target_column_id": None},
                synchronize_session="fetch",
            )
        if column_ids:
            self.db.query(RoutingRuleModel).filter(
                RoutingRuleModel.target_column_id.in_(column_ids)
            ).update({"target_column_id": None}, synchronize_session="fetch")


class TeamService:
    """Minimal team registry used to validate team references."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, team_id: Optional[str] = None) -> TeamModel:
        team = TeamModel(id=team_id or generate_ulid(), name=name)
        self.db.add(team)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ValidationError(f"Team '{team.id}' already exists") from exc
        self.db.refresh(team)
        return team

    def get(self, team_id: str) -> TeamModel:
        team = self.db.get(TeamModel, team_id)
        if not team:
            raise NotFound("Team", team_id)
        return team

    def list(self) -> List[TeamModel]:
        return self.db.query(TeamModel).order_by(TeamModel.name).all()
