"""
Action Plan Service Layer.

Keeps the local mirror of externally produced action plans, and keeps a
promoted plan's card status in step with the plan status.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..access import Actor
from ..board.services import BoardService, apply_card_status, board_lock_key
from ..db.audit_service import AuditService
from ..db.models import ActionPlanModel, BoardCardModel
from ..errors import NotFound
from ..events import ChangeAction, ChangeDispatcher, ChangeType
from ..primitives import utc_now
from ..unit_of_work import UnitOfWork
from .schemas import ActionPlanStatus, ActionPlanUpsert
from .workflow import card_status_for_plan_status, plan_lock_key

logger = structlog.get_logger()


class ActionPlanService(UnitOfWork):
    """Service for the action plan mirror."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[ChangeDispatcher] = None,
    ):
        super().__init__(db, audit=audit, dispatcher=dispatcher)
        self.boards = BoardService(db, audit=self.audit)

    def get_model(self, action_plan_id: str) -> ActionPlanModel:
        plan = self.db.get(ActionPlanModel, action_plan_id)
        if not plan:
            raise NotFound("ActionPlan", action_plan_id)
        return plan

    def get(self, action_plan_id: str) -> Dict[str, Any]:
        """The plan with a summary of its board card, if promoted."""
        plan = self.get_model(action_plan_id)
        return plan.to_dict(board_card=self.card_summary(plan.id))

    def card_summary(self, action_plan_id: str) -> Optional[Dict[str, Any]]:
        card = self.boards.get_card_for_plan(action_plan_id)
        if card is None:
            return None
        board = self.boards.get_board(card.board_id)
        column = self.boards.get_column(card.column_id)
        return {
            "id": card.id,
            "board_id": board.id,
            "board_name": board.name,
            "column_id": column.id,
            "column_name": column.name,
            "position": card.position,
            "status": card.status,
            "assignee_team_id": card.assignee_team_id,
        }

    def upsert(
        self,
        action_plan_id: str,
        data: ActionPlanUpsert,
        actor: Optional[Actor] = None,
    ) -> ActionPlanModel:
        """Create or replace the mirrored fields of a plan."""
        actor = actor or Actor.system()
        self.boards.ensure_team(data.assignee_team_id)

        with self.locked(*self._lock_keys(action_plan_id)):
            plan = self.db.get(ActionPlanModel, action_plan_id)
            created = plan is None
            before = None if created else plan.to_dict()
            if created:
                plan = ActionPlanModel(id=action_plan_id, status=ActionPlanStatus.ACTIVE.value)
                self.db.add(plan)

            plan.customer_id = data.customer_id
            plan.badge = data.badge.value
            plan.title = data.title
            plan.description = data.description
            plan.intent = data.intent
            plan.urgency = data.urgency
            plan.customer_segment = data.customer_segment
            plan.channel = data.channel.value if data.channel else None
            plan.assignee_team_id = data.assignee_team_id
            plan.assignee_user_id = data.assignee_user_id
            routing = dict(plan.routing_metadata or {})
            routing["custom"] = dict(data.custom)
            plan.routing_metadata = routing
            plan.updated_at = utc_now()
            self.db.flush()

            if plan.status != data.status.value:
                self._apply_status(plan, data.status.value, actor)

            self.audit.record(
                "created" if created else "updated",
                "ActionPlan",
                plan.id,
                actor_id=actor.id,
                actor_kind="system" if actor.id == "system" else "human",
                before=before,
                after=plan.to_dict(),
            )
            self.queue(
                ChangeType.ACTION_PLAN,
                ChangeAction.CREATED if created else ChangeAction.UPDATED,
                plan.id,
                {"customerId": plan.customer_id, "badge": plan.badge},
            )
            self.commit()
        return plan

    def set_status(
        self, action_plan_id: str, status: ActionPlanStatus, actor: Actor
    ) -> ActionPlanModel:
        """Change the plan status and mirror it onto the plan's card."""
        self.get_model(action_plan_id)
        with self.locked(*self._lock_keys(action_plan_id)):
            plan = self.get_model(action_plan_id)
            self.db.refresh(plan)
            if plan.status != ActionPlanStatus(status).value:
                self._apply_status(plan, ActionPlanStatus(status).value, actor)
                self.queue(
                    ChangeType.ACTION_PLAN,
                    ChangeAction.UPDATED,
                    plan.id,
                    {"customerId": plan.customer_id, "status": plan.status},
                )
            self.commit()
        return plan

    def _lock_keys(self, action_plan_id: str) -> List[str]:
        keys = [plan_lock_key(action_plan_id)]
        card = self.boards.get_card_for_plan(action_plan_id)
        if card is not None:
            keys.append(board_lock_key(card.board_id))
        return keys

    def _apply_status(self, plan: ActionPlanModel, status: str, actor: Actor) -> None:
        old_status = plan.status
        now = utc_now()
        plan.status = status
        plan.completed_at = now if status == ActionPlanStatus.COMPLETED.value else None
        plan.canceled_at = now if status == ActionPlanStatus.CANCELED.value else None
        plan.updated_at = now
        self.audit.record_status_change(
            "ActionPlan", plan.id, old_status, status, actor_id=actor.id
        )

        card: Optional[BoardCardModel] = self.boards.get_card_for_plan(plan.id)
        if card is None:
            return
        card_status = card_status_for_plan_status(status)
        if card.status != card_status:
            old_card_status = card.status
            apply_card_status(card, card_status)
            card.updated_at = now
            self.audit.record_status_change(
                "Card",
                card.id,
                old_card_status,
                card_status,
                actor_id=actor.id,
                note=f"Synced from action plan {plan.id}",
            )
            self.queue(
                ChangeType.CARD,
                ChangeAction.UPDATED,
                card.id,
                {"boardId": card.board_id, "status": card.status},
            )
        logger.info(
            "Action plan status changed",
            action_plan_id=plan.id,
            status=status,
            card_id=card.id,
        )
