"""
Rule-based routing of work items to team queues.
"""

from .conditions import Badge, Channel, ConditionType, WorkItem, parse_condition
from .engine import RoutingDecision, RoutingRuleEngine, RuleSnapshot

__all__ = [
    "Badge",
    "Channel",
    "ConditionType",
    "RoutingDecision",
    "RoutingRuleEngine",
    "RuleSnapshot",
    "WorkItem",
    "parse_condition",
]
