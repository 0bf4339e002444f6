"""
Database package for Action Board.
"""

from .audit_models import AuditLogModel
from .base import Base, get_db, get_engine, get_session_local, init_database
from .models import (
    ActionPlanModel,
    BoardCardModel,
    BoardColumnModel,
    BoardModel,
    BoardPermissionModel,
    RoutingRuleModel,
    TeamModel,
)

__all__ = [
    "ActionPlanModel",
    "AuditLogModel",
    "Base",
    "BoardCardModel",
    "BoardColumnModel",
    "BoardModel",
    "BoardPermissionModel",
    "RoutingRuleModel",
    "TeamModel",
    "get_db",
    "get_engine",
    "get_session_local",
    "init_database",
]
