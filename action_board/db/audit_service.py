"""
Audit Log Service.

Entries are added to the caller's session and flushed, never committed here:
the audit row lands in the same transaction as the change it describes.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..primitives import generate_ulid, utc_now
from .audit_models import AuditLogModel


class AuditService:
    """Service for recording and querying audit log entries.

    Usage:
        audit = AuditService(db_session)
        audit.record("created", "Card", card.id, actor_id="user-1", after=card.to_dict())
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        entity_kind: str,
        entity_id: str,
        actor_id: str = "system",
        actor_kind: str = "human",
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Add an audit entry to the current transaction.

        Args:
            action: One of created, updated, status_changed, deleted, moved,
                reordered, promoted
            entity_kind: Type of entity (e.g., "Board", "Card", "RoutingRule")
            entity_id: ID of the entity
            actor_id: ID of the actor
            actor_kind: "human" or "system"
            before: State before the change
            after: State after the change
            note: Optional human-readable note

        Returns:
            The pending AuditLogModel
        """
        entry = AuditLogModel(
            id=generate_ulid(),
            ts=utc_now(),
            actor_kind=actor_kind,
            actor_id=actor_id,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            before=before,
            after=after,
            note=note,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def record_status_change(
        self,
        entity_kind: str,
        entity_id: str,
        old_status: str,
        new_status: str,
        actor_id: str = "system",
        actor_kind: str = "human",
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Add a status transition entry."""
        return self.record(
            "status_changed",
            entity_kind,
            entity_id,
            actor_id=actor_id,
            actor_kind=actor_kind,
            before={"status": old_status},
            after={"status": new_status},
            note=note or f"Status changed: {old_status} -> {new_status}",
        )

    # =========================================================================
    # Query Methods
    # =========================================================================

    def get_by_entity(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
    ) -> List[AuditLogModel]:
        """Get the history of one entity, oldest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(AuditLogModel.ts, AuditLogModel.id)
            .limit(limit)
            .all()
        )

    def get_by_actor(self, actor_id: str, limit: int = 100) -> List[AuditLogModel]:
        """Get entries created by one actor, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(AuditLogModel.actor_id == actor_id)
            .order_by(desc(AuditLogModel.ts))
            .limit(limit)
            .all()
        )

    def get_recent(
        self,
        action: Optional[str] = None,
        entity_kind: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditLogModel]:
        """Get recent entries with optional filtering."""
        query = self.db.query(AuditLogModel)

        if action:
            query = query.filter(AuditLogModel.action == action)
        if entity_kind:
            query = query.filter(AuditLogModel.entity_kind == entity_kind)

        return query.order_by(desc(AuditLogModel.ts)).limit(limit).all()
