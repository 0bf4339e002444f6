"""
Tests for the promotion workflow and the action plan mirror.

Verifies:
- One card per action plan across repeated promotions
- Relocation keeps position in the same column and appends otherwise
- Card status follows plan status
- Auto-routing outcomes and board resolution
"""

import pytest
from conftest import ADMIN, column_ids

from action_board.access import Actor
from action_board.board.schemas import BoardCreate, CardCreate, CardUpdate
from action_board.config import settings
from action_board.db.models import BoardCardModel
from action_board.errors import Forbidden, NotFound, ValidationError
from action_board.events import ChangeAction, ChangeType
from action_board.promotion.plans import ActionPlanService
from action_board.promotion.schemas import ActionPlanUpsert
from action_board.promotion.workflow import NO_MATCH, PromotionWorkflow
from action_board.routing.schemas import RoutingRuleCreate
from action_board.routing.services import RoutingRuleService


@pytest.fixture
def plans(db_session, dispatcher):
    return ActionPlanService(db_session, dispatcher=dispatcher)


@pytest.fixture
def workflow(db_session, dispatcher):
    return PromotionWorkflow(db_session, dispatcher=dispatcher)


@pytest.fixture
def plan(plans, teams):
    return plans.upsert(
        "plan-1",
        ActionPlanUpsert(
            customer_id="cust-1",
            badge="at-risk",
            title="Save the account",
            intent="cancel",
            channel="phone",
        ),
    )


def add_rule(db_session, **kwargs):
    return RoutingRuleService(db_session).create(RoutingRuleCreate(**kwargs), ADMIN)


class TestActionPlanMirror:
    """Tests for ActionPlanService."""

    def test_upsert_creates_then_updates(self, plans, plan, published):
        assert plan.badge == "at-risk"

        plans.upsert(
            "plan-1",
            ActionPlanUpsert(customer_id="cust-1", badge="opportunity", title="Upsell"),
        )

        data = plans.get("plan-1")
        assert data["badge"] == "opportunity"
        assert data["title"] == "Upsell"
        assert data["board_card"] is None
        assert published[-1].type == ChangeType.ACTION_PLAN
        assert published[-1].action == ChangeAction.UPDATED

    def test_get_missing(self, plans, teams):
        with pytest.raises(NotFound):
            plans.get("nope")


class TestPromote:
    """Tests for PromotionWorkflow.promote()."""

    def test_first_promotion_creates_card(self, workflow, board_service, board, plan):
        backlog = column_ids(board_service, board.id)[0]

        result = workflow.promote(plan.id, board.id, backlog, ADMIN)

        assert result.outcome == "created"
        assert result.created is True
        assert result.card.action_plan_id == plan.id
        assert result.card.title == "Save the account"
        assert result.card.position == 0
        assert plan.routing_metadata["last_board_id"] == board.id
        assert plan.routing_metadata["source"] == "manual"

    def test_promote_twice_keeps_one_card(
        self, db_session, workflow, board_service, board, team_board, plan
    ):
        backlog = column_ids(board_service, board.id)[0]
        working = column_ids(board_service, team_board.id)[1]

        first = workflow.promote(plan.id, board.id, backlog, ADMIN)
        second = workflow.promote(plan.id, team_board.id, working, ADMIN)

        cards = db_session.query(BoardCardModel).filter_by(action_plan_id=plan.id).all()
        assert len(cards) == 1
        assert second.outcome == "relocated"
        assert second.card.id == first.card.id
        assert (cards[0].board_id, cards[0].column_id) == (team_board.id, working)
        assert board_service.card_ledger.siblings(backlog) == []

    def test_same_column_keeps_position(self, workflow, board_service, board, plan):
        backlog = column_ids(board_service, board.id)[0]
        first = workflow.promote(plan.id, board.id, backlog, ADMIN)
        board_service.create_card(
            CardCreate(board_id=board.id, column_id=backlog, title="other", position=1), ADMIN
        )

        again = workflow.promote(plan.id, board.id, backlog, ADMIN, title="Renamed")

        assert again.card.position == first.card.position == 0
        assert again.card.title == "Renamed"

    def test_other_column_appends(self, workflow, board_service, board, plan):
        backlog, doing, _ = column_ids(board_service, board.id)
        board_service.create_card(
            CardCreate(board_id=board.id, column_id=doing, title="existing"), ADMIN
        )
        workflow.promote(plan.id, board.id, backlog, ADMIN)

        moved = workflow.promote(plan.id, board.id, doing, ADMIN)

        assert moved.card.position == 1
        assert [c.title for c in board_service.card_ledger.siblings(doing)] == [
            "existing",
            "Save the account",
        ]

    def test_card_status_mirrors_plan_status(self, plans, workflow, board_service, board, plan):
        plans.set_status(plan.id, "completed", ADMIN)
        backlog = column_ids(board_service, board.id)[0]

        result = workflow.promote(plan.id, board.id, backlog, ADMIN)

        assert result.card.status == "done"
        assert result.card.completed_at is not None

    def test_column_must_belong_to_board(self, workflow, board_service, board, team_board, plan):
        foreign = column_ids(board_service, team_board.id)[0]
        with pytest.raises(NotFound):
            workflow.promote(plan.id, board.id, foreign, ADMIN)

    def test_requires_edit_access(self, workflow, board_service, team_board, plan):
        new = column_ids(board_service, team_board.id)[0]
        with pytest.raises(Forbidden):
            workflow.promote(plan.id, team_board.id, new, Actor(id="x", team_ids=frozenset({"team-sales"})))

    def test_unknown_team(self, workflow, board_service, board, plan):
        backlog = column_ids(board_service, board.id)[0]
        with pytest.raises(NotFound):
            workflow.promote(plan.id, board.id, backlog, ADMIN, assignee_team_id="team-ghost")

    def test_events(self, workflow, board_service, board, plan, published):
        backlog = column_ids(board_service, board.id)[0]
        published.clear()
        result = workflow.promote(plan.id, board.id, backlog, ADMIN)

        assert [(e.type, e.action) for e in published] == [
            (ChangeType.CARD, ChangeAction.CREATED),
            (ChangeType.ACTION_PLAN, ChangeAction.UPDATED),
        ]
        assert published[0].id == result.card.id
        assert published[1].data["customerId"] == "cust-1"

    def test_deleted_card_unpromotes(self, plans, workflow, board_service, board, plan):
        backlog = column_ids(board_service, board.id)[0]
        result = workflow.promote(plan.id, board.id, backlog, ADMIN)
        board_service.delete_card(result.card.id, ADMIN)

        assert plans.get(plan.id)["board_card"] is None
        again = workflow.promote(plan.id, board.id, backlog, ADMIN)
        assert again.outcome == "created"


class TestStatusSync:
    """Tests for ActionPlanService.set_status()."""

    @pytest.mark.parametrize(
        "plan_status,card_status",
        [("completed", "done"), ("canceled", "archived")],
    )
    def test_card_follows_plan(
        self, plans, workflow, board_service, board, plan, plan_status, card_status
    ):
        backlog = column_ids(board_service, board.id)[0]
        card_id = workflow.promote(plan.id, board.id, backlog, ADMIN).card.id

        plans.set_status(plan.id, plan_status, ADMIN)

        card = board_service.get_card(card_id)
        assert card.status == card_status
        summary = plans.get(plan.id)["board_card"]
        assert summary["status"] == card_status
        assert summary["column_name"] == "Backlog"

    def test_reactivation(self, plans, workflow, board_service, board, plan):
        backlog = column_ids(board_service, board.id)[0]
        card_id = workflow.promote(plan.id, board.id, backlog, ADMIN).card.id
        plans.set_status(plan.id, "completed", ADMIN)

        plans.set_status(plan.id, "active", ADMIN)

        card = board_service.get_card(card_id)
        assert card.status == "active"
        assert card.completed_at is None

    def test_card_status_edit_keeps_link(self, plans, workflow, board_service, board, plan):
        backlog = column_ids(board_service, board.id)[0]
        card_id = workflow.promote(plan.id, board.id, backlog, ADMIN).card.id

        board_service.update_card(card_id, CardUpdate(status="done"), ADMIN)

        assert plans.get(plan.id)["board_card"]["id"] == card_id


class TestAutoPromote:
    """Tests for PromotionWorkflow.auto_promote()."""

    def test_no_match_is_an_outcome(self, workflow, plan):
        result = workflow.auto_promote(plan.id, ADMIN)

        assert result.outcome == NO_MATCH
        assert result.card is None
        assert result.to_dict()["card"] is None

    def test_rule_with_board_and_column(self, db_session, workflow, board_service, board, plan):
        doing = column_ids(board_service, board.id)[1]
        rule = add_rule(
            db_session,
            name="At risk",
            condition_type="badge",
            condition_value="at-risk",
            target_team_id="team-support",
            target_board_id=board.id,
            target_column_id=doing,
        )

        result = workflow.auto_promote(plan.id, ADMIN)

        assert result.outcome == "created"
        assert result.card.column_id == doing
        assert result.card.assignee_team_id == "team-support"
        assert result.decision.rule_id == rule.id
        assert plan.routing_metadata["rule_id"] == rule.id
        assert plan.routing_metadata["source"] == "rule"
        assert plan.assignee_team_id == "team-support"

    def test_rule_without_board_uses_team_default_board(
        self, db_session, workflow, board_service, team_board, plan
    ):
        add_rule(
            db_session,
            name="Cancel intent",
            condition_type="intent",
            condition_value="cancel",
            target_team_id="team-support",
        )

        result = workflow.auto_promote(plan.id, ADMIN)

        assert result.card.board_id == team_board.id
        assert result.card.column_id == column_ids(board_service, team_board.id)[0]

    def test_rule_without_any_board_is_rejected(self, db_session, workflow, plan, monkeypatch):
        monkeypatch.setattr(settings, "default_board_id", None)
        add_rule(
            db_session,
            name="Phone calls",
            condition_type="channel",
            condition_value="phone",
            target_team_id="team-billing",
        )

        with pytest.raises(ValidationError):
            workflow.auto_promote(plan.id, ADMIN)

    def test_manual_promote_clears_rule_stamp(self, db_session, workflow, board_service, board, plan):
        doing = column_ids(board_service, board.id)[1]
        add_rule(
            db_session,
            name="At risk",
            condition_type="badge",
            condition_value="at-risk",
            target_team_id="team-support",
            target_board_id=board.id,
        )
        workflow.auto_promote(plan.id, ADMIN)

        workflow.promote(plan.id, board.id, doing, ADMIN)

        routing = plan.routing_metadata
        assert routing["source"] == "manual"
        assert routing["last_column_id"] == doing
        for key in ("rule_id", "rule_name", "routed_at"):
            assert key not in routing

    def test_configured_default_board(
        self, db_session, workflow, board_service, board, plan, monkeypatch
    ):
        monkeypatch.setattr(settings, "default_board_id", board.id)
        add_rule(
            db_session,
            name="Phone calls",
            condition_type="channel",
            condition_value="phone",
            target_team_id="team-billing",
        )

        result = workflow.auto_promote(plan.id, ADMIN)

        assert result.card.board_id == board.id

    def test_custom_flags_from_upsert(self, db_session, plans, workflow, board_service, board, teams):
        plans.upsert(
            "plan-vip",
            ActionPlanUpsert(customer_id="c9", badge="lead", custom={"vip": True}),
        )
        add_rule(
            db_session,
            name="VIP",
            condition_type="custom",
            condition_value="vip",
            target_team_id="team-sales",
            target_board_id=board.id,
        )

        result = workflow.auto_promote("plan-vip", ADMIN)

        assert result.outcome == "created"
        assert result.card.title == "plan-vip"


class TestBoardCardTypeOnPromotion:
    def test_card_type_follows_board(self, workflow, board_service, teams, plan):
        cases = board_service.create_board(BoardCreate(name="Cases", card_type="case"), ADMIN)
        new = column_ids(board_service, cases.id)[0]

        result = workflow.promote(plan.id, cases.id, new, ADMIN)

        assert result.card.card_type == "case"
