"""
Board API Routes.

REST endpoints for boards, columns, cards and team permissions.
All board endpoints are prefixed with /boards.

Handlers are plain ``def`` so FastAPI runs them in its threadpool; the
services serialize per board with process-wide locks.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..access import Actor, get_actor
from ..db.base import get_db
from ..events import ChangeDispatcher, get_dispatcher
from .schemas import (
    BoardCreate,
    BoardUpdate,
    CardCreate,
    CardMove,
    CardUpdate,
    ColumnCreate,
    ColumnReorder,
    ColumnUpdate,
    PermissionCreate,
    TeamCreate,
)
from .services import BoardService, TeamService

router = APIRouter(prefix="/boards", tags=["Boards"])
teams_router = APIRouter(prefix="/teams", tags=["Teams"])


def _service(db: Session, dispatcher: ChangeDispatcher) -> BoardService:
    return BoardService(db, dispatcher=dispatcher)


# =============================================================================
# Board Endpoints
# =============================================================================


@router.get("")
def list_boards(
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> List[Dict[str, Any]]:
    """List boards ordered by name, with the caller's edit flag."""
    return _service(db, dispatcher).list_boards(actor)


@router.post("", status_code=201)
def create_board(
    board: BoardCreate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Create a board with its initial columns (admin only)."""
    service = _service(db, dispatcher)
    db_board = service.create_board(board, actor)
    return {
        "status": "success",
        **service.get_board_detail(db_board.id, actor),
    }


@router.get("/{board_id}")
def get_board(
    board_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Get a board with its ordered columns, cards and permissions."""
    return _service(db, dispatcher).get_board_detail(board_id, actor)


@router.patch("/{board_id}")
def update_board(
    board_id: str,
    update: BoardUpdate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Update board fields (admin only)."""
    service = _service(db, dispatcher)
    board = service.update_board(board_id, update, actor)
    return {"status": "success", "board": board.to_dict()}


@router.delete("/{board_id}")
def delete_board(
    board_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Delete a board with its columns, cards and permissions (admin only)."""
    _service(db, dispatcher).delete_board(board_id, actor)
    return {"status": "success", "deleted": board_id}


# =============================================================================
# Column Endpoints
# =============================================================================


@router.post("/{board_id}/columns", status_code=201)
def create_column(
    board_id: str,
    column: ColumnCreate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Append a column to a board."""
    db_column = _service(db, dispatcher).create_column(
        board_id, column.name, actor, wip_limit=column.wip_limit
    )
    return {"status": "success", "column": db_column.to_dict()}


@router.put("/{board_id}/columns/order")
def reorder_columns(
    board_id: str,
    order: ColumnReorder,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Reorder all columns of a board."""
    columns = _service(db, dispatcher).reorder_columns(board_id, order.column_ids, actor)
    return {"status": "success", "columns": [c.to_dict() for c in columns]}


@router.patch("/columns/{column_id}")
def update_column(
    column_id: str,
    update: ColumnUpdate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Rename a column or change its WIP limit."""
    column = _service(db, dispatcher).update_column(column_id, update, actor)
    return {"status": "success", "column": column.to_dict()}


@router.delete("/columns/{column_id}")
def delete_column(
    column_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Delete a column and its cards."""
    _service(db, dispatcher).delete_column(column_id, actor)
    return {"status": "success", "deleted": column_id}


# =============================================================================
# Card Endpoints
# =============================================================================


@router.post("/cards", status_code=201)
def create_card(
    card: CardCreate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Create a card in a column."""
    db_card = _service(db, dispatcher).create_card(card, actor)
    return {"status": "success", "card": db_card.to_dict()}


@router.patch("/cards/{card_id}")
def update_card(
    card_id: str,
    update: CardUpdate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Update card fields. Column and position changes go through /move."""
    card = _service(db, dispatcher).update_card(card_id, update, actor)
    return {"status": "success", "card": card.to_dict()}


@router.post("/cards/{card_id}/move")
def move_card(
    card_id: str,
    move: CardMove,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Move a card to a column of the same board."""
    card = _service(db, dispatcher).move_card(card_id, move.column_id, move.position, actor)
    return {"status": "success", "card": card.to_dict()}


@router.delete("/cards/{card_id}")
def delete_card(
    card_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Delete a card and close the gap in its column."""
    _service(db, dispatcher).delete_card(card_id, actor)
    return {"status": "success", "deleted": card_id}


# =============================================================================
# Permission Endpoints
# =============================================================================


@router.post("/{board_id}/permissions", status_code=201)
def add_permission(
    board_id: str,
    permission: PermissionCreate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Grant a team view or edit access to a board (admin only)."""
    db_permission = _service(db, dispatcher).add_permission(
        board_id, permission.team_id, permission.mode, actor
    )
    return {"status": "success", "permission": db_permission.to_dict()}


@router.delete("/permissions/{permission_id}")
def remove_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Revoke a team permission (admin only)."""
    _service(db, dispatcher).remove_permission(permission_id, actor)
    return {"status": "success", "deleted": permission_id}


# =============================================================================
# Team Endpoints
# =============================================================================


@teams_router.post("", status_code=201)
def create_team(team: TeamCreate, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Register a team."""
    db_team = TeamService(db).create(team.name, team_id=team.id)
    return {"status": "success", "team": db_team.to_dict()}


@teams_router.get("")
def list_teams(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    """List teams by name."""
    return [t.to_dict() for t in TeamService(db).list()]
