"""
Routing Rule Service Layer.

CRUD and ordering for routing rules, plus evaluation against a snapshot of
the stored rules. Creates, updates, deletes and reorders serialize on one
process-wide lock so priorities and sequence numbers never interleave.
"""

from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..access import Actor, require_admin
from ..board.ledger import PositionLedger
from ..db.audit_service import AuditService
from ..db.models import BoardColumnModel, BoardModel, RoutingRuleModel, TeamModel
from ..errors import NotFound, ValidationError
from ..events import ChangeAction, ChangeDispatcher, ChangeType
from ..primitives import generate_ulid, utc_now
from ..unit_of_work import UnitOfWork
from .conditions import Predicate, WorkItem, parse_condition
from .engine import RoutingDecision, RoutingRuleEngine, RuleSnapshot
from .schemas import RoutingRuleCreate, RoutingRuleUpdate

logger = structlog.get_logger()

ROUTING_RULES_LOCK = "routing-rules"

_registered_predicates: Dict[str, Predicate] = {}


def register_predicate(name: str, predicate: Predicate) -> None:
    """Make a named predicate available to custom conditions in every service."""
    _registered_predicates[name] = predicate


def unregister_predicate(name: str) -> None:
    _registered_predicates.pop(name, None)


class RoutingRuleService(UnitOfWork):
    """Service for managing and evaluating routing rules."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[ChangeDispatcher] = None,
        predicates: Optional[Mapping[str, Predicate]] = None,
    ):
        super().__init__(db, audit=audit, dispatcher=dispatcher)
        self.predicates: Dict[str, Predicate] = dict(_registered_predicates)
        self.predicates.update(predicates or {})
        self.ledger = PositionLedger(
            db,
            RoutingRuleModel,
            scope_attr=None,
            position_attr="priority",
            tiebreak_attr="sequence",
            entity_kind="routing rule",
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def list(self, enabled_only: bool = False) -> List[RoutingRuleModel]:
        """Rules in evaluation order: priority, then creation sequence."""
        query = self.db.query(RoutingRuleModel)
        if enabled_only:
            query = query.filter(RoutingRuleModel.enabled.is_(True))
        return query.order_by(RoutingRuleModel.priority, RoutingRuleModel.sequence).all()

    def get(self, rule_id: str) -> RoutingRuleModel:
        rule = self.db.get(RoutingRuleModel, rule_id)
        if not rule:
            raise NotFound("RoutingRule", rule_id)
        return rule

    def engine(self) -> RoutingRuleEngine:
        """Build an engine over the current rule set."""
        snapshots = [RuleSnapshot.from_model(rule) for rule in self.list(enabled_only=True)]
        return RoutingRuleEngine(snapshots, predicates=self.predicates)

    def evaluate(self, item: WorkItem) -> Optional[RoutingDecision]:
        """Dry-run the current rules against a work item."""
        return self.engine().evaluate(item)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(self, data: RoutingRuleCreate, actor: Actor) -> RoutingRuleModel:
        """Create a rule; appended after the last rule unless a priority is given."""
        require_admin(actor)
        self._check_condition(data.condition_type.value, data.condition_value)
        self._check_targets(data.target_team_id, data.target_board_id, data.target_column_id)

        with self.locked(ROUTING_RULES_LOCK):
            max_priority, max_sequence = self.db.query(
                func.max(RoutingRuleModel.priority), func.max(RoutingRuleModel.sequence)
            ).one()

            if data.priority is not None:
                priority = data.priority
            else:
                priority = 0 if max_priority is None else max_priority + 1

            rule = RoutingRuleModel(
                id=generate_ulid(),
                name=data.name,
                channel=data.channel.value if data.channel else None,
                condition_type=data.condition_type.value,
                condition_value=data.condition_value,
                target_team_id=data.target_team_id,
                target_board_id=data.target_board_id,
                target_column_id=data.target_column_id,
                priority=priority,
                sequence=0 if max_sequence is None else max_sequence + 1,
                enabled=data.enabled,
                meta=data.metadata,
            )
            self.db.add(rule)
            self.db.flush()

            self.audit.record(
                "created", "RoutingRule", rule.id, actor_id=actor.id, after=rule.to_dict()
            )
            self.queue(ChangeType.ROUTING_RULE, ChangeAction.CREATED, rule.id)
            self.commit()

        logger.info("Routing rule created", rule_id=rule.id, priority=rule.priority)
        return rule

    def update(self, rule_id: str, data: RoutingRuleUpdate, actor: Actor) -> RoutingRuleModel:
        """Partial update. Priority is only editable while the rule stands alone."""
        require_admin(actor)
        fields = data.model_fields_set
        for required in ("name", "condition_type", "target_team_id"):
            if required in fields and getattr(data, required) is None:
                raise ValidationError(f"Routing rule {required} cannot be cleared")

        with self.locked(ROUTING_RULES_LOCK):
            rule = self.get(rule_id)
            self.db.refresh(rule)

            if "priority" in fields and data.priority != rule.priority:
                total = self.db.query(func.count(RoutingRuleModel.id)).scalar()
                if total > 1:
                    raise ValidationError(
                        "Priority of one rule among several is changed through reorder",
                        details={"rule_id": rule.id, "rule_count": total},
                    )

            changes: Dict[str, Any] = {}
            for name in fields:
                value = getattr(data, name)
                if name in ("channel", "condition_type") and value is not None:
                    value = value.value
                changes[name] = value

            condition_type = changes.get("condition_type", rule.condition_type)
            condition_value = changes.get("condition_value", rule.condition_value)
            self._check_condition(condition_type, condition_value)

            target_board_id = changes.get("target_board_id", rule.target_board_id)
            target_column_id = changes.get("target_column_id", rule.target_column_id)
            if "target_board_id" in changes and "target_column_id" not in changes:
                if target_board_id != rule.target_board_id:
                    target_column_id = None
                    changes["target_column_id"] = None
            self._check_targets(
                changes.get("target_team_id", rule.target_team_id),
                target_board_id,
                target_column_id,
            )

            before = rule.to_dict()
            for name, value in changes.items():
                setattr(rule, "meta" if name == "metadata" else name, value)
            rule.updated_at = utc_now()
            self.db.flush()

            self.audit.record(
                "updated",
                "RoutingRule",
                rule.id,
                actor_id=actor.id,
                before=before,
                after=rule.to_dict(),
            )
            self.queue(ChangeType.ROUTING_RULE, ChangeAction.UPDATED, rule.id)
            self.commit()
        return rule

    def delete(self, rule_id: str, actor: Actor) -> None:
        require_admin(actor)
        with self.locked(ROUTING_RULES_LOCK):
            rule = self.get(rule_id)
            before = rule.to_dict()
            self.db.delete(rule)
            self.audit.record("deleted", "RoutingRule", rule_id, actor_id=actor.id, before=before)
            self.queue(ChangeType.ROUTING_RULE, ChangeAction.DELETED, rule_id)
            self.commit()

    def reorder(self, rule_ids: List[str], actor: Actor) -> List[RoutingRuleModel]:
        """Assign priorities 0..n-1 following ``rule_ids`` (every rule, once)."""
        require_admin(actor)
        with self.locked(ROUTING_RULES_LOCK):
            before = [(rule.id, rule.priority) for rule in self.ledger.siblings(None)]
            rules = self.ledger.reorder_siblings(None, rule_ids)

            self.audit.record(
                "reordered",
                "RoutingRule",
                ROUTING_RULES_LOCK,
                actor_id=actor.id,
                before={"priorities": dict(before)},
                after={"priorities": {rule.id: rule.priority for rule in rules}},
            )
            self.queue(
                ChangeType.ROUTING_RULE,
                ChangeAction.UPDATED,
                ROUTING_RULES_LOCK,
                {"change": "reordered", "ruleIds": list(rule_ids)},
            )
            self.commit()

        logger.info("Routing rules reordered", count=len(rules), actor=actor.id)
        return rules

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_condition(self, condition_type: str, condition_value: Optional[str]) -> None:
        try:
            parse_condition(condition_type, condition_value)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {condition_type} condition value '{condition_value}'",
                details={"condition_type": condition_type, "condition_value": condition_value},
            ) from exc

    def _check_targets(
        self,
        team_id: str,
        board_id: Optional[str],
        column_id: Optional[str],
    ) -> None:
        if not self.db.get(TeamModel, team_id):
            raise NotFound("Team", team_id)
        if board_id and not self.db.get(BoardModel, board_id):
            raise NotFound("Board", board_id)
        if column_id:
            if not board_id:
                raise ValidationError(
                    "A target column needs a target board",
                    details={"target_column_id": column_id},
                )
            column = self.db.get(BoardColumnModel, column_id)
            if not column:
                raise NotFound("Column", column_id)
            if column.board_id != board_id:
                raise ValidationError(
                    f"Column '{column_id}' does not belong to board '{board_id}'",
                    details={"target_board_id": board_id, "target_column_id": column_id},
                )
