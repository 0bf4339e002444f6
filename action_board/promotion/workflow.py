"""
Promotion Workflow.

Links an action plan to exactly one board card. The first promotion creates
the card; every later one updates it in place, relocating it to the requested
board/column (appended, unless it already sits in that column). The unique
constraint on ``board_cards.action_plan_id`` backs the one-card-per-plan rule.

Auto-routing asks the routing engine for a target first. No matching rule is
an outcome (``no_match``), not an error.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog
from sqlalchemy.orm import Session

from ..access import Actor, require_edit
from ..board.services import BoardService, apply_card_status, board_lock_key
from ..config import get_settings
from ..db.audit_service import AuditService
from ..db.models import ActionPlanModel, BoardCardModel, BoardModel
from ..errors import ConflictError, NotFound, ValidationError
from ..events import ChangeAction, ChangeDispatcher, ChangeType
from ..primitives import generate_ulid, isoformat, utc_now
from ..routing.conditions import Predicate, WorkItem
from ..routing.engine import RoutingDecision
from ..routing.services import RoutingRuleService
from ..unit_of_work import UnitOfWork

logger = structlog.get_logger()

CREATED = "created"
RELOCATED = "relocated"
NO_MATCH = "no_match"

ROUTED_KEYS = ("rule_id", "rule_name", "routed_at")

_CARD_STATUS_FOR_PLAN_STATUS = {
    "active": "active",
    "completed": "done",
    "canceled": "archived",
}


def card_status_for_plan_status(plan_status: str) -> str:
    return _CARD_STATUS_FOR_PLAN_STATUS.get(plan_status, "active")


def plan_lock_key(action_plan_id: str) -> str:
    return f"plan:{action_plan_id}"


@dataclass
class PromotionResult:
    """What a promotion did: created a card, relocated it, or found no rule."""

    outcome: str
    action_plan: ActionPlanModel
    card: Optional[BoardCardModel] = None
    decision: Optional[RoutingDecision] = None

    @property
    def created(self) -> bool:
        return self.outcome == CREATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "created": self.created,
            "card": self.card.to_dict() if self.card is not None else None,
            "decision": self.decision.to_dict() if self.decision is not None else None,
            "action_plan": self.action_plan.to_dict(),
        }


class PromotionWorkflow(UnitOfWork):
    """Creates or relocates the single card of an action plan."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[ChangeDispatcher] = None,
        predicates: Optional[Mapping[str, Predicate]] = None,
    ):
        super().__init__(db, audit=audit, dispatcher=dispatcher)
        # Lookups and the card ledger only; events are published by this workflow.
        self.boards = BoardService(db, audit=self.audit)
        self.rules = RoutingRuleService(db, audit=self.audit, predicates=predicates)

    def get_plan(self, action_plan_id: str) -> ActionPlanModel:
        plan = self.db.get(ActionPlanModel, action_plan_id)
        if not plan:
            raise NotFound("ActionPlan", action_plan_id)
        return plan

    def promote(
        self,
        action_plan_id: str,
        board_id: str,
        column_id: str,
        actor: Actor,
        assignee_team_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        decision: Optional[RoutingDecision] = None,
    ) -> PromotionResult:
        """Put the plan's card on ``board_id``/``column_id``, creating it if needed."""
        plan = self.get_plan(action_plan_id)
        existing = self.boards.get_card_for_plan(plan.id)
        lock_keys = [plan_lock_key(plan.id), board_lock_key(board_id)]
        if existing is not None:
            lock_keys.append(board_lock_key(existing.board_id))
        source_board_id = existing.board_id if existing is not None else None

        with self.locked(*lock_keys):
            self.db.refresh(plan)
            card = self.boards.get_card_for_plan(plan.id)
            if card is not None:
                self.db.refresh(card)
            if (card.board_id if card is not None else None) != source_board_id:
                raise ConflictError(
                    f"Card of action plan '{plan.id}' changed while promoting",
                    details={"action_plan_id": plan.id},
                )

            board = self.boards.lock_board(board_id)
            require_edit(board, board.permissions, actor)
            column = self.boards.get_column(column_id)
            if column.board_id != board.id:
                raise NotFound("Column", column_id)

            team_id = assignee_team_id or plan.assignee_team_id
            self.boards.ensure_team(team_id)

            card_status = card_status_for_plan_status(plan.status)
            if card is None:
                card = self._create_card(plan, board, column.id, actor, team_id, metadata, title, description)
                outcome = CREATED
            else:
                self._relocate_card(card, plan, board, column.id, actor, team_id, metadata, title, description)
                outcome = RELOCATED
            apply_card_status(card, card_status)

            self._stamp_plan(plan, board.id, column.id, actor, team_id, decision)
            self.db.flush()

            self.audit.record(
                "promoted",
                "ActionPlan",
                plan.id,
                actor_id=actor.id,
                after={
                    "card_id": card.id,
                    "board_id": board.id,
                    "column_id": column.id,
                    "outcome": outcome,
                    "rule_id": decision.rule_id if decision else None,
                },
            )
            self.queue(
                ChangeType.CARD,
                ChangeAction.CREATED if outcome == CREATED else ChangeAction.UPDATED,
                card.id,
                {"boardId": board.id, "columnId": column.id, "actionPlanId": plan.id},
            )
            if source_board_id is not None and source_board_id != board.id:
                self.queue(
                    ChangeType.BOARD,
                    ChangeAction.UPDATED,
                    source_board_id,
                    {"cardRemoved": card.id},
                )
            self.queue(
                ChangeType.ACTION_PLAN,
                ChangeAction.UPDATED,
                plan.id,
                {
                    "customerId": plan.customer_id,
                    "assigneeTeamId": team_id,
                    "promotedTo": {"boardId": board.id, "columnId": column.id},
                },
            )
            self.commit()

        logger.info(
            "Action plan promoted",
            action_plan_id=plan.id,
            card_id=card.id,
            board_id=board_id,
            outcome=outcome,
            actor=actor.id,
        )
        return PromotionResult(outcome=outcome, action_plan=plan, card=card, decision=decision)

    def auto_promote(self, action_plan_id: str, actor: Actor) -> PromotionResult:
        """Route the plan through the rules, then promote to the chosen target."""
        plan = self.get_plan(action_plan_id)
        decision = self.rules.evaluate(WorkItem.from_action_plan(plan))
        if decision is None:
            logger.info("No routing rule matched", action_plan_id=plan.id)
            return PromotionResult(outcome=NO_MATCH, action_plan=plan)

        board = self._resolve_board(decision)
        if decision.target_column_id:
            column_id = decision.target_column_id
        else:
            column_id = self.boards.first_column(board.id).id

        return self.promote(
            plan.id,
            board.id,
            column_id,
            actor,
            assignee_team_id=decision.target_team_id,
            decision=decision,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_board(self, decision: RoutingDecision) -> BoardModel:
        """Rule board, else the team's default board, else the configured default."""
        if decision.target_board_id:
            return self.boards.get_board(decision.target_board_id)

        team_board = (
            self.db.query(BoardModel)
            .filter(BoardModel.default_team_id == decision.target_team_id)
            .order_by(BoardModel.name, BoardModel.id)
            .first()
        )
        if team_board is not None:
            return team_board

        default_board_id = get_settings().default_board_id
        if default_board_id:
            return self.boards.get_board(default_board_id)

        raise ValidationError(
            f"Rule '{decision.rule_name}' names no board and team "
            f"'{decision.target_team_id}' has no default board",
            details={"rule_id": decision.rule_id, "target_team_id": decision.target_team_id},
        )

    def _create_card(
        self,
        plan: ActionPlanModel,
        board: BoardModel,
        column_id: str,
        actor: Actor,
        team_id: Optional[str],
        metadata: Optional[Dict[str, Any]],
        title: Optional[str],
        description: Optional[str],
    ) -> BoardCardModel:
        card = BoardCardModel(
            id=generate_ulid(),
            board_id=board.id,
            column_id=column_id,
            action_plan_id=plan.id,
            customer_id=plan.customer_id,
            title=title or plan.title or plan.id,
            description=description if description is not None else plan.description,
            card_type=board.card_type,
            assignee_team_id=team_id,
            assignee_user_id=plan.assignee_user_id,
            meta=metadata if metadata is not None else {"promoted_by": actor.id},
        )
        self.db.add(card)
        self.boards.card_ledger.insert(column_id, card)
        return card

    def _relocate_card(
        self,
        card: BoardCardModel,
        plan: ActionPlanModel,
        board: BoardModel,
        column_id: str,
        actor: Actor,
        team_id: Optional[str],
        metadata: Optional[Dict[str, Any]],
        title: Optional[str],
        description: Optional[str],
    ) -> None:
        before = {"board_id": card.board_id, "column_id": card.column_id, "position": card.position}
        if card.column_id != column_id:
            self.boards.card_ledger.move(card, column_id)
            card.board_id = board.id
            self.audit.record(
                "moved",
                "Card",
                card.id,
                actor_id=actor.id,
                before=before,
                after={"board_id": card.board_id, "column_id": card.column_id, "position": card.position},
            )

        if title:
            card.title = title
        if description is not None:
            card.description = description
        if metadata is not None:
            card.meta = metadata
        card.assignee_team_id = team_id
        if plan.assignee_user_id:
            card.assignee_user_id = plan.assignee_user_id
        card.updated_at = utc_now()

    def _stamp_plan(
        self,
        plan: ActionPlanModel,
        board_id: str,
        column_id: str,
        actor: Actor,
        team_id: Optional[str],
        decision: Optional[RoutingDecision],
    ) -> None:
        now = utc_now()
        routing = dict(plan.routing_metadata or {})
        routing.update(
            {
                "last_promoted_at": isoformat(now),
                "last_promoted_by": actor.id,
                "last_board_id": board_id,
                "last_column_id": column_id,
                "source": "rule" if decision else "manual",
            }
        )
        if decision is not None:
            routing.update(
                {
                    "rule_id": decision.rule_id,
                    "rule_name": decision.rule_name,
                    "routed_at": isoformat(now),
                }
            )
        else:
            # A manual placement is no longer the work of the earlier rule
            for key in ROUTED_KEYS:
                routing.pop(key, None)
        # Reassign so the JSON column is seen as changed
        plan.routing_metadata = routing
        plan.assignee_team_id = team_id
        plan.updated_at = now
