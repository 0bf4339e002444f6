"""
Routing Rule API Routes.

All endpoints are prefixed with /routing-rules.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..access import Actor, get_actor
from ..db.base import get_db
from ..events import ChangeDispatcher, get_dispatcher
from .schemas import RoutingRuleCreate, RoutingRuleUpdate, RuleReorder, WorkItemIn
from .services import RoutingRuleService

router = APIRouter(prefix="/routing-rules", tags=["Routing"])


@router.get("")
def list_rules(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    """List rules in evaluation order."""
    return [rule.to_dict() for rule in RoutingRuleService(db).list()]


@router.post("", status_code=201)
def create_rule(
    rule: RoutingRuleCreate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Create a routing rule (admin only)."""
    db_rule = RoutingRuleService(db, dispatcher=dispatcher).create(rule, actor)
    return {"status": "success", "rule": db_rule.to_dict()}


@router.put("/order")
def reorder_rules(
    order: RuleReorder,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Reorder every rule; priorities become 0..n-1."""
    rules = RoutingRuleService(db, dispatcher=dispatcher).reorder(order.rule_ids, actor)
    return {"status": "success", "rules": [rule.to_dict() for rule in rules]}


@router.post("/evaluate")
def evaluate_rules(
    item: WorkItemIn,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Dry-run the current rules against a work item."""
    decision = RoutingRuleService(db).evaluate(item.to_work_item())
    return {
        "outcome": "matched" if decision else "no_match",
        "decision": decision.to_dict() if decision else None,
    }


@router.get("/{rule_id}")
def get_rule(rule_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Get a routing rule by ID."""
    return RoutingRuleService(db).get(rule_id).to_dict()


@router.patch("/{rule_id}")
def update_rule(
    rule_id: str,
    update: RoutingRuleUpdate,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Update a routing rule (admin only)."""
    rule = RoutingRuleService(db, dispatcher=dispatcher).update(rule_id, update, actor)
    return {"status": "success", "rule": rule.to_dict()}


@router.delete("/{rule_id}")
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    """Delete a routing rule (admin only)."""
    RoutingRuleService(db, dispatcher=dispatcher).delete(rule_id, actor)
    return {"status": "success", "deleted": rule_id}
