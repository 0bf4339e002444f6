"""
Change subscription endpoint.

``GET /subscriptions/changes`` streams change events as server-sent events,
optionally filtered by entity type and action.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..errors import ValidationError
from . import get_dispatcher
from .dispatcher import ChangeDispatcher
from .models import ChangeAction, ChangeType
from .stream import ChangeStream

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def _parse_filter(raw: Optional[str], enum_cls, label: str) -> Optional[List]:
    if not raw:
        return None
    values = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            values.append(enum_cls(part))
        except ValueError as exc:
            raise ValidationError(
                f"Unknown {label} '{part}'",
                details={"allowed": [member.value for member in enum_cls]},
            ) from exc
    return values or None


@router.get("/changes")
async def stream_changes(
    types: Optional[str] = Query(None, description="Comma-separated entity types"),
    actions: Optional[str] = Query(None, description="Comma-separated actions"),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
) -> StreamingResponse:
    """Stream change events as text/event-stream."""
    stream = ChangeStream(
        dispatcher,
        types=_parse_filter(types, ChangeType, "change type"),
        actions=_parse_filter(actions, ChangeAction, "change action"),
    )
    # The stream subscribes on first iteration
    return StreamingResponse(
        stream.server_sent_events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
