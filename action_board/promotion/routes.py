"""
Action Plan API Routes.

The customer-signal processor upserts plans here; users and automations
promote them onto boards. All endpoints are prefixed with /action-plans.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..access import Actor, get_actor
from ..db.base import get_db
from ..events import ChangeDispatcher, get_dispatcher
from .plans import ActionPlanService
from .schemas import ActionPlanUpsert, PromoteRequest, StatusChange
from .workflow import PromotionWorkflow

router = APIRouter(prefix="/action-plans", tags=["Action Plans"])


@router.put("/{action_plan_id}")
def upsert_action_plan(
    action_plan_id: str,
    plan: ActionPlanUpsert,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Create or update the mirrored action plan."""
    service = ActionPlanService(db, dispatcher=dispatcher)
    db_plan = service.upsert(action_plan_id, plan, actor)
    return {"status": "success", "action_plan": service.get(db_plan.id)}


@router.get("/{action_plan_id}")
def get_action_plan(action_plan_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Get an action plan with its board card summary."""
    return ActionPlanService(db).get(action_plan_id)


@router.post("/{action_plan_id}/status")
def change_status(
    action_plan_id: str,
    change: StatusChange,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Complete, cancel or reactivate a plan; its card follows."""
    service = ActionPlanService(db, dispatcher=dispatcher)
    service.set_status(action_plan_id, change.status, actor)
    return {"status": "success", "action_plan": service.get(action_plan_id)}


@router.post("/{action_plan_id}/promote")
def promote_action_plan(
    action_plan_id: str,
    request: PromoteRequest,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Create or relocate the plan's card on the given board and column."""
    result = PromotionWorkflow(db, dispatcher=dispatcher).promote(
        action_plan_id,
        request.board_id,
        request.column_id,
        actor,
        assignee_team_id=request.assignee_team_id,
        metadata=request.metadata,
        title=request.title,
        description=request.description,
    )
    return {"status": "success", **result.to_dict()}


@router.post("/{action_plan_id}/auto-route")
def auto_route_action_plan(
    action_plan_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Promote the plan wherever the first matching routing rule points."""
    result = PromotionWorkflow(db, dispatcher=dispatcher).auto_promote(action_plan_id, actor)
    return {"status": "success", **result.to_dict()}
