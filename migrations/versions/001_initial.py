"""Create initial tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

CHANNELS = ("phone", "email", "chat", "video", "sms", "ai-call", "voice-message")
CARD_TYPES = ("lead", "case", "deal", "task", "custom")


def _existing_enum(*values: str, name: str) -> sa.Enum:
    """Reference an enum type that an earlier table already created."""
    if op.get_bind().dialect.name == "postgresql":
        return postgresql.ENUM(*values, name=name, create_type=False)
    return sa.Enum(*values, name=name)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "boards",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False, index=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "visibility",
            sa.Enum("org", "team", name="board_visibility"),
            nullable=False,
        ),
        sa.Column("card_type", sa.Enum(*CARD_TYPES, name="board_card_type"), nullable=False),
        sa.Column("default_team_id", sa.String(128), sa.ForeignKey("teams.id"), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "board_columns",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("board_id", sa.String(128), sa.ForeignKey("boards.id"), nullable=False, index=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("wip_limit", sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_board_columns_board_position", "board_columns", ["board_id", "position"])

    op.create_table(
        "action_plans",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("customer_id", sa.String(128), nullable=False, index=True),
        sa.Column(
            "badge",
            sa.Enum("at-risk", "opportunity", "lead", "follow-up", "no-action", name="badge"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "canceled", name="action_plan_status"),
            nullable=False,
        ),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("intent", sa.String(128), nullable=True),
        sa.Column("urgency", sa.String(64), nullable=True),
        sa.Column("customer_segment", sa.String(128), nullable=True),
        sa.Column("channel", sa.Enum(*CHANNELS, name="channel"), nullable=True),
        sa.Column("assignee_team_id", sa.String(128), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("assignee_user_id", sa.String(128), nullable=True),
        sa.Column("routing_metadata", sa.JSON, nullable=True),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "board_cards",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("board_id", sa.String(128), sa.ForeignKey("boards.id"), nullable=False, index=True),
        sa.Column(
            "column_id", sa.String(128), sa.ForeignKey("board_columns.id"), nullable=False, index=True
        ),
        sa.Column(
            "action_plan_id",
            sa.String(128),
            sa.ForeignKey("action_plans.id"),
            nullable=True,
            unique=True,
        ),
        sa.Column("customer_id", sa.String(128), nullable=True, index=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "card_type",
            _existing_enum(*CARD_TYPES, name="board_card_type"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("active", "done", "archived", name="board_card_status"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("assignee_team_id", sa.String(128), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("assignee_user_id", sa.String(128), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_board_cards_column_position", "board_cards", ["column_id", "position"])

    op.create_table(
        "board_team_permissions",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("board_id", sa.String(128), sa.ForeignKey("boards.id"), nullable=False, index=True),
        sa.Column("team_id", sa.String(128), sa.ForeignKey("teams.id"), nullable=False, index=True),
        sa.Column("mode", sa.Enum("edit", "view", name="board_permission_mode"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("board_id", "team_id", name="uq_board_team_permission"),
    )

    op.create_table(
        "routing_rules",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column(
            "channel", _existing_enum(*CHANNELS, name="channel"), nullable=True
        ),
        sa.Column(
            "condition_type",
            sa.Enum(
                "badge",
                "intent",
                "urgency",
                "customer_segment",
                "channel",
                "custom",
                name="routing_condition_type",
            ),
            nullable=False,
        ),
        sa.Column("condition_value", sa.String(256), nullable=True),
        sa.Column("target_team_id", sa.String(128), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("target_board_id", sa.String(128), sa.ForeignKey("boards.id"), nullable=True),
        sa.Column(
            "target_column_id", sa.String(128), sa.ForeignKey("board_columns.id"), nullable=True
        ),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False, unique=True),
        sa.Column("enabled", sa.Boolean, nullable=False),
        sa.Column("metadata", sa.JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_routing_rules_order", "routing_rules", ["priority", "sequence"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column(
            "actor_kind", sa.Enum("human", "system", name="audit_actor_kind"), nullable=False
        ),
        sa.Column("actor_id", sa.String(128), nullable=False, index=True),
        sa.Column(
            "action",
            sa.Enum(
                "created",
                "updated",
                "status_changed",
                "deleted",
                "moved",
                "reordered",
                "promoted",
                name="audit_action",
            ),
            nullable=False,
            index=True,
        ),
        sa.Column("entity_kind", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(128), nullable=False, index=True),
        sa.Column("before", sa.JSON, nullable=True),
        sa.Column("after", sa.JSON, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_entity_ts", "audit_log", ["entity_kind", "entity_id", "ts"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("routing_rules")
    op.drop_table("board_team_permissions")
    op.drop_table("board_cards")
    op.drop_table("action_plans")
    op.drop_table("board_columns")
    op.drop_table("boards")
    op.drop_table("teams")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "audit_action",
            "audit_actor_kind",
            "routing_condition_type",
            "board_permission_mode",
            "board_card_status",
            "action_plan_status",
            "channel",
            "badge",
            "board_card_type",
            "board_visibility",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
