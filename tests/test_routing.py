"""
Tests for routing conditions, the rule engine and RoutingRuleService.

Verifies:
- Exact-match and wildcard semantics per condition type
- First match by (priority, sequence); no match is None
- Channel filters and custom predicates
- Rule CRUD validation and reorder flipping the winner
"""

import pytest
from conftest import ADMIN, column_ids
from pydantic import ValidationError as PydanticValidationError

from action_board.access import Actor
from action_board.errors import Forbidden, NotFound, ValidationError
from action_board.events import ChangeType
from action_board.routing.conditions import (
    BadgeCondition,
    CustomCondition,
    WorkItem,
    parse_condition,
)
from action_board.routing.engine import RoutingRuleEngine, RuleSnapshot
from action_board.routing.schemas import RoutingRuleCreate, RoutingRuleUpdate
from action_board.routing.services import (
    RoutingRuleService,
    register_predicate,
    unregister_predicate,
)


def snapshot(rule_id, priority, condition_type, value, team, sequence=None, **kwargs):
    return RuleSnapshot(
        id=rule_id,
        name=rule_id,
        condition=parse_condition(condition_type, value),
        target_team_id=team,
        priority=priority,
        sequence=sequence if sequence is not None else priority,
        **kwargs,
    )


class TestConditions:
    """Tests for condition parsing and matching."""

    def test_parse_is_discriminated_by_type(self):
        assert isinstance(parse_condition("badge", "at-risk"), BadgeCondition)
        assert isinstance(parse_condition("custom", "vip"), CustomCondition)

    def test_unknown_badge_rejected(self):
        with pytest.raises(PydanticValidationError):
            parse_condition("badge", "sparkly")

    def test_unknown_channel_rejected(self):
        with pytest.raises(PydanticValidationError):
            parse_condition("channel", "pigeon")

    @pytest.mark.parametrize("value", [None, "*"])
    def test_wildcard_matches_anything(self, value):
        condition = parse_condition("intent", value)
        assert condition.matches(WorkItem(), {})
        assert condition.matches(WorkItem(intent="cancel"), {})

    def test_exact_equality(self):
        condition = parse_condition("urgency", "high")
        assert condition.matches(WorkItem(urgency="high"), {})
        assert not condition.matches(WorkItem(urgency="HIGH"), {})
        assert not condition.matches(WorkItem(), {})

    def test_custom_uses_item_lookup_first(self):
        condition = parse_condition("custom", "vip")
        assert condition.matches(WorkItem(custom={"vip": True}), {})
        assert condition.matches(WorkItem(lookup=lambda name: name == "vip"), {})
        assert not condition.matches(WorkItem(), {})

    def test_custom_falls_back_to_registered_predicate(self):
        condition = parse_condition("custom", "enterprise")
        predicates = {"enterprise": lambda item: item.customer_segment == "enterprise"}
        assert condition.matches(WorkItem(customer_segment="enterprise"), predicates)
        assert not condition.matches(WorkItem(customer_segment="smb"), predicates)


class TestRoutingRuleEngine:
    """Tests for RoutingRuleEngine.evaluate()."""

    def test_first_match_by_priority(self):
        engine = RoutingRuleEngine(
            [
                snapshot("catch-all", 20, "badge", "*", "team-y"),
                snapshot("at-risk", 10, "badge", "at-risk", "team-x"),
            ]
        )

        assert engine.evaluate(WorkItem(badge="at-risk")).target_team_id == "team-x"
        assert engine.evaluate(WorkItem(badge="opportunity")).target_team_id == "team-y"

    def test_no_match_returns_none(self):
        engine = RoutingRuleEngine([snapshot("at-risk", 10, "badge", "at-risk", "team-x")])
        assert engine.evaluate(WorkItem(badge="opportunity")) is None

    def test_ties_broken_by_sequence(self):
        engine = RoutingRuleEngine(
            [
                snapshot("second", 5, "badge", "*", "team-b", sequence=2),
                snapshot("first", 5, "badge", "*", "team-a", sequence=1),
            ]
        )
        assert engine.evaluate(WorkItem(badge="lead")).rule_id == "first"

    def test_disabled_rules_skipped(self):
        engine = RoutingRuleEngine(
            [
                snapshot("off", 1, "badge", "*", "team-a", enabled=False),
                snapshot("on", 2, "badge", "*", "team-b"),
            ]
        )
        assert engine.evaluate(WorkItem(badge="lead")).rule_id == "on"
        assert [r.id for r in engine.rules] == ["on"]

    def test_channel_filter(self):
        engine = RoutingRuleEngine(
            [
                snapshot("phone-only", 1, "badge", "*", "team-phone", channel="phone"),
                snapshot("rest", 2, "badge", "*", "team-rest"),
            ]
        )
        assert engine.evaluate(WorkItem(channel="phone")).rule_id == "phone-only"
        assert engine.evaluate(WorkItem(channel="email")).rule_id == "rest"
        assert engine.evaluate(WorkItem()).rule_id == "rest"

    def test_decision_records_rule(self):
        engine = RoutingRuleEngine(
            [snapshot("r1", 3, "badge", "lead", "team-x", target_board_id="b1")]
        )
        decision = engine.evaluate(WorkItem(badge="lead"))
        assert decision.to_dict() == {
            "rule_id": "r1",
            "rule_name": "r1",
            "priority": 3,
            "target_team_id": "team-x",
            "target_board_id": "b1",
            "target_column_id": None,
        }

    def test_evaluation_is_repeatable(self):
        rules = [
            snapshot("a", 10, "badge", "at-risk", "team-x"),
            snapshot("b", 20, "badge", "*", "team-y"),
        ]
        item = WorkItem(badge="at-risk")
        decisions = {RoutingRuleEngine(rules).evaluate(item) for _ in range(5)}
        assert len(decisions) == 1


@pytest.fixture
def rule_service(db_session, dispatcher):
    return RoutingRuleService(db_session, dispatcher=dispatcher)


def create_rule(service, name, value, team, **kwargs):
    return service.create(
        RoutingRuleCreate(
            name=name,
            condition_type=kwargs.pop("condition_type", "badge"),
            condition_value=value,
            target_team_id=team,
            **kwargs,
        ),
        ADMIN,
    )


class TestRoutingRuleService:
    """Tests for rule management."""

    def test_create_appends_priority_and_sequence(self, rule_service, teams):
        first = create_rule(rule_service, "At risk", "at-risk", "team-support")
        second = create_rule(rule_service, "Anything", "*", "team-sales")

        assert (first.priority, first.sequence) == (0, 0)
        assert (second.priority, second.sequence) == (1, 1)
        assert [r.id for r in rule_service.list()] == [first.id, second.id]

    def test_explicit_priority(self, rule_service, teams):
        rule = create_rule(rule_service, "Late", "*", "team-sales", priority=100)
        early = create_rule(rule_service, "Early", "lead", "team-sales", priority=10)

        assert [r.id for r in rule_service.list()] == [early.id, rule.id]

    def test_create_requires_admin(self, rule_service, teams):
        with pytest.raises(Forbidden):
            rule_service.create(
                RoutingRuleCreate(
                    name="Nope", condition_type="badge", target_team_id="team-sales"
                ),
                Actor(id="agent"),
            )

    def test_create_validates_targets(self, rule_service, board_service, board, team_board):
        with pytest.raises(NotFound):
            create_rule(rule_service, "Ghost", "*", "team-ghost")
        with pytest.raises(NotFound):
            create_rule(rule_service, "No board", "*", "team-sales", target_board_id="nope")

        foreign_column = column_ids(board_service, team_board.id)[0]
        with pytest.raises(ValidationError):
            create_rule(
                rule_service,
                "Mismatch",
                "*",
                "team-sales",
                target_board_id=board.id,
                target_column_id=foreign_column,
            )

    def test_create_rejects_bad_condition_value(self, rule_service, teams):
        with pytest.raises(ValidationError):
            create_rule(rule_service, "Odd", "pigeon", "team-sales", condition_type="channel")

    def test_priority_update_only_for_sole_rule(self, rule_service, teams):
        only = create_rule(rule_service, "Only", "*", "team-sales")
        updated = rule_service.update(only.id, RoutingRuleUpdate(priority=7), ADMIN)
        assert updated.priority == 7

        create_rule(rule_service, "Another", "lead", "team-sales")
        with pytest.raises(ValidationError):
            rule_service.update(only.id, RoutingRuleUpdate(priority=0), ADMIN)

    def test_update_partial(self, rule_service, teams):
        rule = create_rule(rule_service, "At risk", "at-risk", "team-support")
        updated = rule_service.update(
            rule.id, RoutingRuleUpdate(enabled=False, condition_value="lead"), ADMIN
        )
        assert updated.enabled is False
        assert updated.condition_value == "lead"
        assert updated.name == "At risk"

    def test_reorder_flips_winner(self, rule_service, teams):
        at_risk = create_rule(rule_service, "At risk", "at-risk", "team-support")
        catch_all = create_rule(rule_service, "Anything", "*", "team-sales")
        item = WorkItem(badge="at-risk")

        assert rule_service.evaluate(item).rule_id == at_risk.id

        rules = rule_service.reorder([catch_all.id, at_risk.id], ADMIN)

        assert [(r.id, r.priority) for r in rules] == [(catch_all.id, 0), (at_risk.id, 1)]
        assert rule_service.evaluate(item).rule_id == catch_all.id

    def test_reorder_requires_every_rule(self, rule_service, teams):
        a = create_rule(rule_service, "A rule", "lead", "team-sales")
        create_rule(rule_service, "B rule", "*", "team-sales")
        with pytest.raises(ValidationError):
            rule_service.reorder([a.id], ADMIN)

    def test_delete(self, rule_service, teams):
        rule = create_rule(rule_service, "Gone", "*", "team-sales")
        rule_service.delete(rule.id, ADMIN)
        with pytest.raises(NotFound):
            rule_service.get(rule.id)

    def test_registered_predicate(self, db_session, rule_service, teams):
        create_rule(rule_service, "Big fish", "big-fish", "team-sales", condition_type="custom")
        register_predicate("big-fish", lambda item: item.customer_segment == "enterprise")
        try:
            service = RoutingRuleService(db_session)
            assert service.evaluate(WorkItem(customer_segment="enterprise")) is not None
            assert service.evaluate(WorkItem(customer_segment="smb")) is None
        finally:
            unregister_predicate("big-fish")

    def test_mutations_publish_routing_rule_events(self, rule_service, teams, published):
        rule = create_rule(rule_service, "Any", "*", "team-sales")
        rule_service.delete(rule.id, ADMIN)

        assert [e.type for e in published] == [ChangeType.ROUTING_RULE] * 2
