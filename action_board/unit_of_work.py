"""
Shared commit/publish behaviour for the services.

A service method stages rows, audit entries and change events, then calls
``commit()`` once. Events are only published after the commit succeeds.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .board.ledger import scope_locks
from .db.audit_service import AuditService
from .errors import ConflictError
from .events import ChangeAction, ChangeDispatcher, ChangeEvent, ChangeType


class UnitOfWork:
    """Base class for services that write, audit and announce changes."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[ChangeDispatcher] = None,
    ):
        self.db = db
        self.audit = audit or AuditService(db)
        self.dispatcher = dispatcher
        self._pending_events: List[ChangeEvent] = []

    def queue(
        self,
        change_type: ChangeType,
        action: ChangeAction,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._pending_events.append(ChangeEvent(change_type, action, entity_id, data))

    @contextmanager
    def locked(self, *keys: str) -> Iterator[None]:
        """Hold the named scope locks; roll back if the block raises."""
        with scope_locks.hold(*keys):
            try:
                yield
            except Exception:
                self.rollback()
                raise

    def rollback(self) -> None:
        self.db.rollback()
        self._pending_events.clear()

    def commit(self) -> None:
        """Commit the unit of work, then publish its queued events."""
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.rollback()
            raise ConflictError(
                "Concurrent update rejected by a uniqueness constraint",
                details={"reason": str(exc.orig)},
            ) from exc

        events, self._pending_events = self._pending_events, []
        if self.dispatcher is not None:
            for event in events:
                self.dispatcher.publish(event)
