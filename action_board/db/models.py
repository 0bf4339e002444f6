"""
SQLAlchemy database models for boards, routing rules and action plans.

Position columns are plain integers. Their contiguity (0..n-1 per scope) is
maintained by the PositionLedger, not by database constraints, because the
renumbering updates would transiently collide with a unique index.
"""

from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..primitives import isoformat, utc_now
from .base import Base


# =============================================================================
# Database Enums
# =============================================================================

# These mirror action_board/board/schemas.py and action_board/routing/conditions.py
board_visibility_enum = Enum("org", "team", name="board_visibility")

board_card_type_enum = Enum(
    "lead", "case", "deal", "task", "custom", name="board_card_type"
)

board_card_status_enum = Enum("active", "done", "archived", name="board_card_status")

board_permission_mode_enum = Enum("edit", "view", name="board_permission_mode")

routing_condition_type_enum = Enum(
    "badge",
    "intent",
    "urgency",
    "customer_segment",
    "channel",
    "custom",
    name="routing_condition_type",
)

channel_enum = Enum(
    "phone",
    "email",
    "chat",
    "video",
    "sms",
    "ai-call",
    "voice-message",
    name="channel",
)

badge_enum = Enum(
    "at-risk", "opportunity", "lead", "follow-up", "no-action", name="badge"
)

action_plan_status_enum = Enum(
    "active", "completed", "canceled", name="action_plan_status"
)


# =============================================================================
# Models
# =============================================================================


class TeamModel(Base):
    """A team that boards, cards and routing rules can be assigned to."""

    __tablename__ = "teams"

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class BoardModel(Base):
    """A workspace holding ordered columns of cards."""

    __tablename__ = "boards"

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=False, index=True)
    description = Column(Text, nullable=True)
    visibility = Column(board_visibility_enum, nullable=False, default="org")
    card_type = Column(board_card_type_enum, nullable=False, default="custom")
    default_team_id = Column(
        String(128), ForeignKey("teams.id"), nullable=True, index=True
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships (children are deleted explicitly by the service)
    columns = relationship(
        "BoardColumnModel",
        back_populates="board",
        order_by="BoardColumnModel.position",
    )
    permissions = relationship("BoardPermissionModel", back_populates="board")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "visibility": self.visibility,
            "card_type": self.card_type,
            "default_team_id": self.default_team_id,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class BoardColumnModel(Base):
    """A stage on a board. Position is contiguous within the board."""

    __tablename__ = "board_columns"

    id = Column(String(128), primary_key=True)
    board_id = Column(String(128), ForeignKey("boards.id"), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    # Advisory only: reported, never enforced on insertion
    wip_limit = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    board = relationship("BoardModel", back_populates="columns")

    __table_args__ = (Index("ix_board_columns_board_position", "board_id", "position"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "name": self.name,
            "position": self.position,
            "wip_limit": self.wip_limit,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class BoardCardModel(Base):
    """A unit of work owned by exactly one column."""

    __tablename__ = "board_cards"

    id = Column(String(128), primary_key=True)
    board_id = Column(String(128), ForeignKey("boards.id"), nullable=False, index=True)
    column_id = Column(
        String(128), ForeignKey("board_columns.id"), nullable=False, index=True
    )
    # At most one card per action plan
    action_plan_id = Column(
        String(128), ForeignKey("action_plans.id"), nullable=True, unique=True
    )
    customer_id = Column(String(128), nullable=True, index=True)

    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)
    card_type = Column(board_card_type_enum, nullable=False, default="custom")
    status = Column(board_card_status_enum, nullable=False, default="active", index=True)
    position = Column(Integer, nullable=False, default=0)

    assignee_team_id = Column(String(128), ForeignKey("teams.id"), nullable=True)
    assignee_user_id = Column(String(128), nullable=True)

    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_board_cards_column_position", "column_id", "position"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "column_id": self.column_id,
            "action_plan_id": self.action_plan_id,
            "customer_id": self.customer_id,
            "title": self.title,
            "description": self.description,
            "card_type": self.card_type,
            "status": self.status,
            "position": self.position,
            "assignee_team_id": self.assignee_team_id,
            "assignee_user_id": self.assignee_user_id,
            "metadata": self.meta,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "completed_at": isoformat(self.completed_at),
            "archived_at": isoformat(self.archived_at),
        }


class BoardPermissionModel(Base):
    """Explicit team access to a board."""

    __tablename__ = "board_team_permissions"

    id = Column(String(128), primary_key=True)
    board_id = Column(String(128), ForeignKey("boards.id"), nullable=False, index=True)
    team_id = Column(String(128), ForeignKey("teams.id"), nullable=False, index=True)
    mode = Column(board_permission_mode_enum, nullable=False, default="view")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    board = relationship("BoardModel", back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("board_id", "team_id", name="uq_board_team_permission"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "team_id": self.team_id,
            "mode": self.mode,
            "created_at": isoformat(self.created_at),
        }


class RoutingRuleModel(Base):
    """An ordered condition -> team/board/column assignment."""

    __tablename__ = "routing_rules"

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=False)
    channel = Column(channel_enum, nullable=True)
    condition_type = Column(routing_condition_type_enum, nullable=False)
    condition_value = Column(String(256), nullable=True)

    target_team_id = Column(String(128), ForeignKey("teams.id"), nullable=False)
    target_board_id = Column(String(128), ForeignKey("boards.id"), nullable=True)
    target_column_id = Column(
        String(128), ForeignKey("board_columns.id"), nullable=True
    )

    # Lower priority is evaluated first; sequence breaks ties by insertion order
    priority = Column(Integer, nullable=False, default=100)
    sequence = Column(Integer, nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=True)
    meta = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (Index("ix_routing_rules_order", "priority", "sequence"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "channel": self.channel,
            "condition_type": self.condition_type,
            "condition_value": self.condition_value,
            "target_team_id": self.target_team_id,
            "target_board_id": self.target_board_id,
            "target_column_id": self.target_column_id,
            "priority": self.priority,
            "sequence": self.sequence,
            "enabled": self.enabled,
            "metadata": self.meta,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class ActionPlanModel(Base):
    """Local mirror of an action plan produced by the customer-signal processor."""

    __tablename__ = "action_plans"

    id = Column(String(128), primary_key=True)
    customer_id = Column(String(128), nullable=False, index=True)
    badge = Column(badge_enum, nullable=False, index=True)
    status = Column(action_plan_status_enum, nullable=False, default="active")

    title = Column(String(512), nullable=False, default="")
    description = Column(Text, nullable=True)

    # Routing attributes
    intent = Column(String(128), nullable=True)
    urgency = Column(String(64), nullable=True)
    customer_segment = Column(String(128), nullable=True)
    channel = Column(channel_enum, nullable=True)

    assignee_team_id = Column(String(128), ForeignKey("teams.id"), nullable=True)
    assignee_user_id = Column(String(128), nullable=True)
    routing_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self, board_card: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "badge": self.badge,
            "status": self.status,
            "title": self.title,
            "description": self.description,
            "intent": self.intent,
            "urgency": self.urgency,
            "customer_segment": self.customer_segment,
            "channel": self.channel,
            "assignee_team_id": self.assignee_team_id,
            "assignee_user_id": self.assignee_user_id,
            "routing_metadata": self.routing_metadata,
            "board_card": board_card,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "completed_at": isoformat(self.completed_at),
            "canceled_at": isoformat(self.canceled_at),
        }
