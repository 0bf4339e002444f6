"""
Dense integer ordering of rows inside a scope.

The same ledger orders cards inside a column, columns inside a board and
routing rules globally. Positions are 0-based, unique and contiguous within
a scope. Every operation renumbers the affected scope explicitly, so the
invariant holds after each call regardless of the starting request.

The ledger does not lock. Callers hold the owning board's lock from
``scope_locks`` for the whole read-modify-commit, so two writers never
interleave inside one scope.
"""

import logging
import threading
from collections import Counter
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)


class ScopeLocks:
    """Process-wide registry of reentrant locks keyed by scope name."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold several locks at once, always acquired in sorted order."""
        locks = [self.get(key) for key in sorted(set(keys))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


scope_locks = ScopeLocks()


def clamp_index(desired_index: Optional[int], length: int) -> int:
    """Append when omitted, otherwise clamp into [0, length]."""
    if desired_index is None:
        return length
    return max(0, min(desired_index, length))


class PositionLedger:
    """
    Insert/move/remove/reorder over one ORM model's position column.

    Args:
        db: Session the rows live in; the ledger flushes, never commits
        model: Mapped class holding the rows
        scope_attr: Attribute naming the owning scope (None for one global scope)
        position_attr: Integer attribute holding the position
        tiebreak_attr: Secondary sort key when loading a scope
        entity_kind: Name used in error messages
    """

    def __init__(
        self,
        db: Session,
        model: Any,
        scope_attr: Optional[str],
        position_attr: str = "position",
        tiebreak_attr: str = "id",
        entity_kind: str = "item",
    ):
        self.db = db
        self.model = model
        self.scope_attr = scope_attr
        self.position_attr = position_attr
        self.tiebreak_attr = tiebreak_attr
        self.entity_kind = entity_kind

    # =========================================================================
    # Reads
    # =========================================================================

    def siblings(self, scope_id: Optional[str]) -> List[Any]:
        """Rows of one scope in position order, read fresh from the database.

        Pending changes are flushed first so a fresh read cannot discard them.
        """
        self.db.flush()
        query = self.db.query(self.model).populate_existing()
        if self.scope_attr is not None:
            query = query.filter(getattr(self.model, self.scope_attr) == scope_id)
        return query.order_by(
            getattr(self.model, self.position_attr),
            getattr(self.model, self.tiebreak_attr),
        ).all()

    def verify(self, scope_id: Optional[str]) -> None:
        """Raise ConflictError unless positions in the scope are exactly 0..n-1."""
        self._check_contiguous(scope_id, self.siblings(scope_id))

    # =========================================================================
    # Mutations
    # =========================================================================

    def insert(self, scope_id: Optional[str], item: Any, desired_index: Optional[int] = None) -> int:
        """Place a row that is not yet in the scope; returns its final index."""
        others = [row for row in self.siblings(scope_id) if row.id != item.id]
        self._check_contiguous(scope_id, others)

        index = clamp_index(desired_index, len(others))
        if self.scope_attr is not None:
            setattr(item, self.scope_attr, scope_id)
        self._renumber(others[:index] + [item] + others[index:])
        self.db.flush()
        return index

    def move(self, item: Any, to_scope_id: Optional[str], desired_index: Optional[int] = None) -> int:
        """Move a row within its scope or into another one; returns its final index."""
        from_scope_id = getattr(item, self.scope_attr) if self.scope_attr else None

        if from_scope_id == to_scope_id:
            current = self.siblings(to_scope_id)
            self._check_contiguous(to_scope_id, current)
            others = [row for row in current if row.id != item.id]
            index = clamp_index(desired_index, len(others))
            self._renumber(others[:index] + [item] + others[index:])
            self.db.flush()
            return index

        # Close the gap in the source scope first
        source = self.siblings(from_scope_id)
        self._check_contiguous(from_scope_id, source)
        self._renumber([row for row in source if row.id != item.id])

        others = [row for row in self.siblings(to_scope_id) if row.id != item.id]
        self._check_contiguous(to_scope_id, others)
        index = clamp_index(desired_index, len(others))
        setattr(item, self.scope_attr, to_scope_id)
        self._renumber(others[:index] + [item] + others[index:])
        self.db.flush()

        logger.debug(
            f"Moved {self.entity_kind} {item.id} from {from_scope_id} to {to_scope_id} at {index}"
        )
        return index

    def remove(self, item: Any) -> None:
        """Take a row out of its scope and close the gap.

        The row itself is left for the caller to delete or re-insert.
        """
        scope_id = getattr(item, self.scope_attr) if self.scope_attr else None
        current = self.siblings(scope_id)
        self._check_contiguous(scope_id, current)
        self._renumber([row for row in current if row.id != item.id])
        self.db.flush()

    def reorder_siblings(self, scope_id: Optional[str], ordered_ids: Sequence[str]) -> List[Any]:
        """Assign positions 0..n-1 following ``ordered_ids``.

        ``ordered_ids`` must be a permutation of every id in the scope.
        """
        current = self.siblings(scope_id)
        existing = {row.id: row for row in current}

        duplicates = sorted(i for i, count in Counter(ordered_ids).items() if count > 1)
        missing = sorted(set(existing) - set(ordered_ids))
        unknown = sorted(set(ordered_ids) - set(existing))
        if duplicates or missing or unknown:
            raise ValidationError(
                f"Reorder ids must list every {self.entity_kind} in the scope exactly once",
                details={
                    "scope_id": scope_id,
                    "missing": missing,
                    "unknown": unknown,
                    "duplicates": duplicates,
                },
            )

        ordered = [existing[i] for i in ordered_ids]
        self._renumber(ordered)
        self.db.flush()
        return ordered

    # =========================================================================
    # Helpers
    # =========================================================================

    def _renumber(self, rows: Sequence[Any]) -> None:
        for index, row in enumerate(rows):
            if getattr(row, self.position_attr) != index:
                setattr(row, self.position_attr, index)

    def _check_contiguous(self, scope_id: Optional[str], rows: Sequence[Any]) -> None:
        positions = [getattr(row, self.position_attr) for row in rows]
        if positions != list(range(len(rows))):
            raise ConflictError(
                f"Positions of {self.entity_kind}s in scope '{scope_id}' are out of sync",
                details={"scope_id": scope_id, "positions": positions},
            )
