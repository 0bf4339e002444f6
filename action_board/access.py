"""
Actor context and effective board access.

Authentication is handled upstream; the transport hands us the actor's id,
team memberships and admin flag. A team's effective access to a board is the
union of org-wide visibility (edit for everyone), explicit permission rows,
and the board's default team (edit).
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from fastapi import Header

from .db.models import BoardModel, BoardPermissionModel
from .errors import Forbidden

EDIT = "edit"
VIEW = "view"


@dataclass(frozen=True)
class Actor:
    """Who is calling, and which teams they belong to."""

    id: str
    team_ids: FrozenSet[str] = field(default_factory=frozenset)
    is_admin: bool = False

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", is_admin=True)


def effective_mode(
    board: BoardModel,
    permissions: Iterable[BoardPermissionModel],
    actor: Actor,
) -> Optional[str]:
    """Return "edit", "view" or None for the actor on this board."""
    if actor.is_admin or board.visibility == "org":
        return EDIT
    if board.default_team_id and board.default_team_id in actor.team_ids:
        return EDIT

    mode: Optional[str] = None
    for permission in permissions:
        if permission.team_id not in actor.team_ids:
            continue
        if permission.mode == EDIT:
            return EDIT
        mode = VIEW
    return mode


def can_edit(board: BoardModel, permissions: Iterable[BoardPermissionModel], actor: Actor) -> bool:
    return effective_mode(board, permissions, actor) == EDIT


def require_edit(
    board: BoardModel,
    permissions: Iterable[BoardPermissionModel],
    actor: Actor,
) -> None:
    if not can_edit(board, permissions, actor):
        raise Forbidden(
            f"Actor '{actor.id}' has no edit access to board '{board.id}'",
            details={"board_id": board.id, "actor_id": actor.id},
        )


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Forbidden("Administrator rights required", details={"actor_id": actor.id})


def parse_team_ids(raw: Optional[str]) -> FrozenSet[str]:
    """
    Parse a comma-separated team id header.

    Examples:
        "team-a, team-b" -> {"team-a", "team-b"}
        "" -> set()
    """
    if not raw or not raw.strip():
        return frozenset()
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_teams: Optional[str] = Header(default=None),
    x_actor_admin: Optional[str] = Header(default=None),
) -> Actor:
    """FastAPI dependency building the actor from transport headers."""
    return Actor(
        id=x_actor_id or "anonymous",
        team_ids=parse_team_ids(x_actor_teams),
        is_admin=(x_actor_admin or "").strip().lower() in {"1", "true", "yes"},
    )
