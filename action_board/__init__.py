"""
Action Board

Routes customer action plans to team queues and tracks them on ordered
column boards until resolution.
"""

import importlib.metadata

__version__ = importlib.metadata.version("action-board")

from .errors import (
    ActionBoardError,
    ConflictError,
    Forbidden,
    NotFound,
    ValidationError,
)
from .events.models import ChangeAction, ChangeEvent, ChangeType

__all__ = [
    "ActionBoardError",
    "ChangeAction",
    "ChangeEvent",
    "ChangeType",
    "ConflictError",
    "Forbidden",
    "NotFound",
    "ValidationError",
]
