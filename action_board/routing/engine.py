"""
Routing rule engine.

Evaluation is a pure function of (rules, work item): enabled rules are sorted
by (priority, sequence) and the first rule whose channel filter and condition
both match wins. No match is a normal outcome and yields None.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .conditions import Condition, Predicate, WorkItem, parse_condition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleSnapshot:
    """Immutable view of one routing rule, detached from the session."""

    id: str
    name: str
    condition: Condition
    target_team_id: str
    priority: int
    sequence: int
    channel: Optional[str] = None
    target_board_id: Optional[str] = None
    target_column_id: Optional[str] = None
    enabled: bool = True

    @classmethod
    def from_model(cls, rule: Any) -> "RuleSnapshot":
        return cls(
            id=rule.id,
            name=rule.name,
            condition=parse_condition(rule.condition_type, rule.condition_value),
            target_team_id=rule.target_team_id,
            priority=rule.priority,
            sequence=rule.sequence,
            channel=rule.channel,
            target_board_id=rule.target_board_id,
            target_column_id=rule.target_column_id,
            enabled=rule.enabled,
        )

    def matches(self, item: WorkItem, predicates: Mapping[str, Predicate]) -> bool:
        if self.channel is not None and self.channel != item.channel:
            return False
        return self.condition.matches(item, predicates)


@dataclass(frozen=True)
class RoutingDecision:
    """Which rule matched and where it sends the work item."""

    rule_id: str
    rule_name: str
    priority: int
    target_team_id: str
    target_board_id: Optional[str] = None
    target_column_id: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: RuleSnapshot) -> "RoutingDecision":
        return cls(
            rule_id=rule.id,
            rule_name=rule.name,
            priority=rule.priority,
            target_team_id=rule.target_team_id,
            target_board_id=rule.target_board_id,
            target_column_id=rule.target_column_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "priority": self.priority,
            "target_team_id": self.target_team_id,
            "target_board_id": self.target_board_id,
            "target_column_id": self.target_column_id,
        }


class RoutingRuleEngine:
    """
    First-match evaluation over an ordered rule set.

    Args:
        rules: Rule snapshots in any order
        predicates: Named predicates for custom conditions
    """

    def __init__(
        self,
        rules: Iterable[RuleSnapshot],
        predicates: Optional[Mapping[str, Predicate]] = None,
    ):
        self._rules = sorted(
            (rule for rule in rules if rule.enabled),
            key=lambda rule: (rule.priority, rule.sequence),
        )
        self._predicates: Dict[str, Predicate] = dict(predicates or {})

    @property
    def rules(self) -> List[RuleSnapshot]:
        """Enabled rules in evaluation order."""
        return list(self._rules)

    def evaluate(self, item: WorkItem) -> Optional[RoutingDecision]:
        for rule in self._rules:
            if rule.matches(item, self._predicates):
                logger.debug(f"Work item matched rule {rule.id} ({rule.name})")
                return RoutingDecision.from_rule(rule)
        logger.debug("Work item matched no routing rule")
        return None
