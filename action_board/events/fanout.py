"""
Fan-out table: which refresh keys a change event makes stale.

Each change type maps to an ordered list of key resolvers. A resolver takes
the event and the consumer's view context and returns a refresh key, or None
when it does not apply. Keys are logical read-model names such as
``customers-list`` or ``conversations-{customerId}``.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .models import ChangeEvent, ChangeType


@dataclass(frozen=True)
class ViewContext:
    """What the consumer is currently looking at."""

    current_customer_id: Optional[str] = None
    current_action_plan_id: Optional[str] = None


KeyResolver = Callable[[ChangeEvent, ViewContext], Optional[str]]


def static(key: str) -> KeyResolver:
    """Always refresh ``key``."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        return key

    return resolve


def from_payload(prefix: str, field: str) -> KeyResolver:
    """Refresh ``{prefix}-{data[field]}`` when the payload carries the field."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        value = event.data.get(field)
        return f"{prefix}-{value}" if value else None

    return resolve


def from_entity(prefix: str) -> KeyResolver:
    """Refresh ``{prefix}-{event.id}``."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        return f"{prefix}-{event.id}"

    return resolve


def viewed_customer_entity(prefix: str) -> KeyResolver:
    """Refresh ``{prefix}-{id}`` only while that customer is being viewed."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        if context.current_customer_id == event.id:
            return f"{prefix}-{event.id}"
        return None

    return resolve


def payload_customer_or_viewed(prefix: str) -> KeyResolver:
    """Use ``data.customerId``; fall back to the viewed customer."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        customer_id = event.data.get("customerId") or context.current_customer_id
        return f"{prefix}-{customer_id}" if customer_id else None

    return resolve


def viewed_customer_or_payload(prefix: str) -> KeyResolver:
    """Use the viewed customer; fall back to ``data.customerId``."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        customer_id = context.current_customer_id or event.data.get("customerId")
        return f"{prefix}-{customer_id}" if customer_id else None

    return resolve


def viewed_action_plan(prefix: str) -> KeyResolver:
    """Refresh the viewed plan when the event is about it."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        if context.current_action_plan_id and context.current_action_plan_id == event.id:
            return f"{prefix}-{event.id}"
        return None

    return resolve


def viewed_parent_action_plan(prefix: str) -> KeyResolver:
    """Refresh the viewed plan when an item of it changed."""

    def resolve(event: ChangeEvent, context: ViewContext) -> Optional[str]:
        plan_id = event.data.get("actionPlanId")
        if plan_id and plan_id == context.current_action_plan_id:
            return f"{prefix}-{plan_id}"
        return None

    return resolve


CUSTOMERS_LIST = "customers-list"
DASHBOARD_STATS = "dashboard-stats"
BOARDS_LIST = "boards-list"
ROUTING_RULES = "routing-rules"


DEFAULT_FANOUT: Dict[ChangeType, List[KeyResolver]] = {
    ChangeType.CUSTOMER: [
        static(CUSTOMERS_LIST),
        static(DASHBOARD_STATS),
        viewed_customer_entity("customer"),
    ],
    ChangeType.CONVERSATION: [
        static(CUSTOMERS_LIST),
        static(DASHBOARD_STATS),
        payload_customer_or_viewed("conversations"),
    ],
    ChangeType.ACTION_PLAN: [
        static(CUSTOMERS_LIST),
        static(DASHBOARD_STATS),
        viewed_customer_or_payload("actionplan-customer"),
        viewed_action_plan("actionplan"),
    ],
    ChangeType.ACTION_ITEM: [viewed_parent_action_plan("actionplan")],
    ChangeType.TASK: [static(DASHBOARD_STATS)],
    # Jobs emit their own customer/conversation/actionPlan events
    ChangeType.CSV_JOB: [],
    ChangeType.BOARD: [static(BOARDS_LIST), from_entity("board")],
    ChangeType.CARD: [from_payload("board", "boardId")],
    ChangeType.ROUTING_RULE: [static(ROUTING_RULES)],
}


class FanOutTable:
    """Resolves the refresh keys for an event, deduplicated, in table order."""

    def __init__(self, table: Optional[Dict[ChangeType, List[KeyResolver]]] = None):
        self.table = dict(DEFAULT_FANOUT if table is None else table)

    def keys_for(self, event: ChangeEvent, context: ViewContext) -> List[str]:
        keys: List[str] = []
        for resolve in self.table.get(event.type, []):
            key = resolve(event, context)
            if key and key not in keys:
                keys.append(key)
        return keys
