"""
Change events and the debounced fan-out dispatcher.
"""

import threading
from typing import Optional

from ..config import get_settings
from .dispatcher import ChangeDispatcher
from .fanout import FanOutTable, ViewContext
from .limiter import RefreshLimiter
from .models import ChangeAction, ChangeEvent, ChangeType

_dispatcher: Optional[ChangeDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> ChangeDispatcher:
    """Return the process-wide dispatcher, building it on first use."""
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            limiter = RefreshLimiter(window_ms=get_settings().refresh_window_ms)
            _dispatcher = ChangeDispatcher(limiter=limiter)
        return _dispatcher


__all__ = [
    "ChangeAction",
    "ChangeDispatcher",
    "ChangeEvent",
    "ChangeType",
    "FanOutTable",
    "RefreshLimiter",
    "ViewContext",
    "get_dispatcher",
]
