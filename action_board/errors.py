"""
Error taxonomy for Action Board.

Every error carries a stable code for programmatic handling and maps to one
HTTP status at the API edge. A routing non-match is not an error: the engine
returns None and promotion reports a ``no_match`` outcome.
"""

from typing import Any, Dict, Optional


class ActionBoardError(Exception):
    """Base class for errors surfaced to callers of the core services.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
        details: Optional structured context (ids, fields)
    """

    code = "ACTION_BOARD_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(f"{self.code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(ActionBoardError):
    """A referenced board, column, card, rule, team, plan or permission does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_kind: str, entity_id: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(
            f"{entity_kind} '{entity_id}' not found",
            details={"entity_kind": entity_kind, "entity_id": entity_id},
        )


class ValidationError(ActionBoardError):
    code = "VALIDATION_ERROR"
    status_code = 422


class Forbidden(ActionBoardError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(ActionBoardError):
    """Raised when a concurrent writer left state we refuse to overwrite."""

    code = "CONFLICT"
    status_code = 409
