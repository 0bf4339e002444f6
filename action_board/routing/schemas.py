"""
Routing rule request schemas.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr

from .conditions import Channel, ConditionType, WorkItem


class RoutingRuleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: constr(min_length=2, max_length=256)
    channel: Optional[Channel] = Field(None, description="Only match items from this channel")
    condition_type: ConditionType
    condition_value: Optional[constr(max_length=256)] = Field(
        None, description='Value to compare; null or "*" matches anything'
    )
    target_team_id: str
    target_board_id: Optional[str] = None
    target_column_id: Optional[str] = None
    priority: Optional[int] = Field(
        None, description="Lower runs first; appended after the last rule when omitted"
    )
    enabled: bool = True
    metadata: Optional[Dict[str, Any]] = None


class RoutingRuleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[constr(min_length=2, max_length=256)] = None
    channel: Optional[Channel] = None
    condition_type: Optional[ConditionType] = None
    condition_value: Optional[constr(max_length=256)] = None
    target_team_id: Optional[str] = None
    target_board_id: Optional[str] = None
    target_column_id: Optional[str] = None
    priority: Optional[int] = None
    enabled: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


class RuleReorder(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rule_ids: List[str]


class WorkItemIn(BaseModel):
    """A work item submitted for a dry-run evaluation."""

    model_config = ConfigDict(extra="forbid")

    badge: Optional[str] = None
    intent: Optional[str] = None
    urgency: Optional[str] = None
    customer_segment: Optional[str] = None
    channel: Optional[str] = None
    custom: Dict[str, bool] = Field(default_factory=dict)

    def to_work_item(self) -> WorkItem:
        return WorkItem(
            badge=self.badge,
            intent=self.intent,
            urgency=self.urgency,
            customer_segment=self.customer_segment,
            channel=self.channel,
            custom=dict(self.custom),
        )
