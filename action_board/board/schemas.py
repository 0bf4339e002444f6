"""
Board request schemas and enums.

Fields left out of an update request are not changed; fields sent as null
are cleared where the column is nullable.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, constr


class BoardVisibility(str, Enum):
    ORG = "org"
    TEAM = "team"


class CardType(str, Enum):
    LEAD = "lead"
    CASE = "case"
    DEAL = "deal"
    TASK = "task"
    CUSTOM = "custom"


class CardStatus(str, Enum):
    ACTIVE = "active"
    DONE = "done"
    ARCHIVED = "archived"


class PermissionMode(str, Enum):
    EDIT = "edit"
    VIEW = "view"


class ColumnSpec(BaseModel):
    """An initial column supplied with a new board."""

    model_config = ConfigDict(extra="forbid")

    name: constr(min_length=1, max_length=256)
    wip_limit: Optional[conint(ge=0)] = None


class BoardCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: constr(min_length=2, max_length=256)
    description: Optional[str] = None
    visibility: BoardVisibility = BoardVisibility.ORG
    card_type: CardType = CardType.CUSTOM
    default_team_id: Optional[str] = None
    initial_columns: Optional[List[ColumnSpec]] = Field(
        None, description="Columns to create; the configured defaults when omitted"
    )


class BoardUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[constr(min_length=2, max_length=256)] = None
    description: Optional[str] = None
    visibility: Optional[BoardVisibility] = None
    card_type: Optional[CardType] = None
    default_team_id: Optional[str] = None


class ColumnCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: constr(min_length=1, max_length=256)
    wip_limit: Optional[conint(ge=0)] = None


class ColumnUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[constr(min_length=1, max_length=256)] = None
    wip_limit: Optional[conint(ge=0)] = None


class ColumnReorder(BaseModel):
    model_config = ConfigDict(extra="forbid")

    column_ids: List[str]


class CardCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    board_id: str
    column_id: str
    title: constr(min_length=1, max_length=512)
    description: Optional[str] = None
    status: CardStatus = CardStatus.ACTIVE
    card_type: Optional[CardType] = None
    position: Optional[conint(ge=0)] = None
    assignee_team_id: Optional[str] = None
    assignee_user_id: Optional[str] = None
    action_plan_id: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class CardUpdate(BaseModel):
    """Partial card update.

    ``column_id`` and ``position`` are accepted only so they can be rejected
    with a clear error: moves go through the move operation.
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[constr(min_length=1, max_length=512)] = None
    description: Optional[str] = None
    status: Optional[CardStatus] = None
    card_type: Optional[CardType] = None
    assignee_team_id: Optional[str] = None
    assignee_user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    column_id: Optional[str] = None
    position: Optional[int] = None


class CardMove(BaseModel):
    model_config = ConfigDict(extra="forbid")

    column_id: str
    position: Optional[conint(ge=0)] = None


class PermissionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    team_id: str
    mode: PermissionMode = PermissionMode.VIEW


class TeamCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[constr(min_length=1, max_length=128)] = None
    name: constr(min_length=1, max_length=256)
