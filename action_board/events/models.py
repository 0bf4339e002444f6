"""
Change event models for Action Board.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..primitives import utc_now


class ChangeType(str, Enum):
    """Entity types that publish change events."""

    CUSTOMER = "customer"
    CONVERSATION = "conversation"
    ACTION_PLAN = "actionPlan"
    ACTION_ITEM = "actionItem"
    TASK = "task"
    CSV_JOB = "csvJob"
    BOARD = "board"
    CARD = "card"
    ROUTING_RULE = "routingRule"


class ChangeAction(str, Enum):
    """What happened to the entity."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent:
    """
    A coarse-grained domain change: entity type, action, id and an optional
    payload fragment.

    Events carry just enough data for consumers to decide which read-models
    are stale (e.g. ``data["customerId"]`` on conversation events); they are
    not full entity snapshots.
    """

    def __init__(
        self,
        change_type: ChangeType,
        action: ChangeAction,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ):
        self.type = ChangeType(change_type)
        self.action = ChangeAction(action)
        self.id = entity_id
        self.data = data or {}
        self.timestamp = timestamp or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert the event to a dictionary."""
        return {
            "type": self.type.value,
            "action": self.action.value,
            "id": self.id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeEvent":
        """Create an event from a dictionary."""
        timestamp = data.get("timestamp")
        return cls(
            change_type=ChangeType(data["type"]),
            action=ChangeAction(data["action"]),
            entity_id=data["id"],
            data=data.get("data"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        )

    def __str__(self) -> str:
        return f"ChangeEvent({self.type.value}.{self.action.value}, id={self.id})"

    def __repr__(self) -> str:
        return self.__str__()
