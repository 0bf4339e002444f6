"""
Action plan and promotion request schemas.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, constr

from ..routing.conditions import Badge, Channel


class ActionPlanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


class ActionPlanUpsert(BaseModel):
    """An action plan as published by the customer-signal processor."""

    model_config = ConfigDict(extra="forbid")

    customer_id: constr(min_length=1, max_length=128)
    badge: Badge
    status: ActionPlanStatus = ActionPlanStatus.ACTIVE
    title: constr(max_length=512) = ""
    description: Optional[str] = None
    intent: Optional[constr(max_length=128)] = None
    urgency: Optional[constr(max_length=64)] = None
    customer_segment: Optional[constr(max_length=128)] = None
    channel: Optional[Channel] = None
    assignee_team_id: Optional[str] = None
    assignee_user_id: Optional[str] = None
    custom: Dict[str, bool] = Field(
        default_factory=dict, description="Flags consulted by custom routing conditions"
    )


class StatusChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: ActionPlanStatus


class PromoteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    board_id: str
    column_id: str
    title: Optional[constr(min_length=1, max_length=512)] = None
    description: Optional[str] = None
    assignee_team_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
