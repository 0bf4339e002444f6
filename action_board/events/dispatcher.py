"""
Change dispatcher.

Delivers change events to subscribers and turns each event into debounced
refresh signals. Delivery is independent per handler: one failing handler is
logged and skipped, the rest still run and the publisher never sees the error.
"""

import fnmatch
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set

from .fanout import FanOutTable, ViewContext
from .limiter import RefreshLimiter
from .models import ChangeAction, ChangeEvent, ChangeType

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], None]
RefreshHandler = Callable[[str, ChangeEvent], None]


@dataclass
class _Subscription:
    types: Optional[Set[ChangeType]]
    actions: Optional[Set[ChangeAction]]
    handler: EventHandler

    def wants(self, event: ChangeEvent) -> bool:
        if self.types is not None and event.type not in self.types:
            return False
        if self.actions is not None and event.action not in self.actions:
            return False
        return True


@dataclass
class _RefreshSubscription:
    pattern: str
    handler: RefreshHandler


class ChangeDispatcher:
    """
    Fans change events out to subscribers and debounced refresh handlers.

    Args:
        limiter: Shared per-key rate limiter deciding whether a key fires
        fanout: Table mapping event types to refresh keys
        context_provider: Returns what the consumer is currently viewing
    """

    def __init__(
        self,
        limiter: RefreshLimiter,
        fanout: Optional[FanOutTable] = None,
        context_provider: Optional[Callable[[], ViewContext]] = None,
    ):
        self.limiter = limiter
        self.fanout = fanout or FanOutTable()
        self.context_provider = context_provider or ViewContext
        self._subscriptions: List[_Subscription] = []
        self._refresh_subscriptions: List[_RefreshSubscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        types: Optional[Iterable[ChangeType]],
        actions: Optional[Iterable[ChangeAction]],
        handler: EventHandler,
    ) -> Callable[[], None]:
        """Receive every event whose type and action pass the filters.

        ``None`` for a filter means "all". Returns an unsubscribe function.
        """
        subscription = _Subscription(
            types={ChangeType(t) for t in types} if types is not None else None,
            actions={ChangeAction(a) for a in actions} if actions is not None else None,
            handler=handler,
        )
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def on_refresh(self, pattern: str, handler: RefreshHandler) -> Callable[[], None]:
        """Run ``handler(key, event)`` whenever a refresh key matching the glob fires."""
        subscription = _RefreshSubscription(pattern=pattern, handler=handler)
        with self._lock:
            self._refresh_subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._refresh_subscriptions:
                    self._refresh_subscriptions.remove(subscription)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> List[str]:
        """Deliver an event and fire its refresh keys.

        Returns:
            The refresh keys that fired (keys inside their window are dropped)
        """
        logger.debug(f"Publishing change event: {event}")

        with self._lock:
            subscriptions = list(self._subscriptions)
            refresh_subscriptions = list(self._refresh_subscriptions)

        for subscription in subscriptions:
            if subscription.wants(event):
                self._deliver(subscription.handler, event)

        fired: List[str] = []
        for key in self.fanout.keys_for(event, self.context_provider()):
            if not self.limiter.should_fire(key):
                logger.debug(f"Refresh suppressed inside window: {key}")
                continue
            fired.append(key)
            for subscription in refresh_subscriptions:
                if fnmatch.fnmatchcase(key, subscription.pattern):
                    self._refresh(subscription.handler, key, event)

        return fired

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions) + len(self._refresh_subscriptions)

    def _deliver(self, handler: EventHandler, event: ChangeEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(f"Change handler failed for {event}")

    def _refresh(self, handler: RefreshHandler, key: str, event: ChangeEvent) -> None:
        try:
            handler(key, event)
        except Exception:
            logger.exception(f"Refresh handler failed for key {key}")
