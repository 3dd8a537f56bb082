# SPDX-License-Identifier: AGPL-3.0-or-later
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from bottleops import journal
from bottleops.api.schemas import (
    ActorIn,
    MergeIn,
    OutputIn,
    PlanRequest,
    SplitIn,
    StepAdvanceIn,
    batch_out,
)
from bottleops.appdb.audit import audit_trail
from bottleops.appdb.engine import get_session
from bottleops.appdb.models import ProductionBatch
from bottleops.orders.service import after_commit, load_order
from bottleops.production.common import BATCH_ENTITY, load_batch
from bottleops.production.planner import plan_batches, quick_plan, remaining_by_line
from bottleops.production.split_merge import merge_batches, split_batch
from bottleops.production.workflow import (
    advance_workflow_step,
    hold_batch,
    record_batch_output,
    release_batch,
)

router = APIRouter(prefix="/production", tags=["production"])


def _journal(kind: str, actor, **fields) -> None:
    journal.append_batch_journal({"type": f"batch.{kind}", "actor": actor, **fields})


@router.get("/history")
def batch_history(days: int = Query(30, ge=1, le=365)):
    return {"events": journal.load_recent(journal.BATCHES, days)}


@router.get("/orders/{order_id}/remaining")
def order_remaining(order_id: int, db: Session = Depends(get_session)):
    remaining = remaining_by_line(db, order_id)
    return {"order_id": order_id, "lines": [{"order_line_id": k, "remaining": v} for k, v in remaining.items()]}


@router.get("/orders/{order_id}/batches")
def order_batches(order_id: int, db: Session = Depends(get_session)):
    load_order(db, order_id)
    batches = db.execute(
        select(ProductionBatch)
        .where(ProductionBatch.order_id == order_id)
        .order_by(ProductionBatch.priority, ProductionBatch.id)
    ).scalars()
    return {"batches": [batch_out(b) for b in batches]}


@router.post("/orders/{order_id}/plan", status_code=201)
def plan(order_id: int, body: PlanRequest, db: Session = Depends(get_session)):
    plans = quick_plan(db, order_id) if body.quick else [p.model_dump() for p in body.plans]
    created = plan_batches(db, order_id, plans, body.actor)
    _journal("plan", body.actor, order_id=order_id, batches=[b.number for b in created])
    return {"ok": True, "batches": [batch_out(b) for b in created]}


@router.get("/batches/{batch_id}")
def read_batch(batch_id: int, db: Session = Depends(get_session)):
    return batch_out(load_batch(db, batch_id))


@router.get("/batches/{batch_id}/audit")
def batch_audit(batch_id: int, db: Session = Depends(get_session)):
    return {"entries": audit_trail(db, BATCH_ENTITY, batch_id)}


@router.post("/batches/{batch_id}/split")
def split(batch_id: int, body: SplitIn, db: Session = Depends(get_session)):
    created = split_batch(db, batch_id, body.quantities, body.actor)
    _journal("split", body.actor, batch_id=batch_id, batches=[b.number for b in created])
    return {"ok": True, "batches": [batch_out(b) for b in created]}


@router.post("/batches/{batch_id}/merge")
def merge(batch_id: int, body: MergeIn, db: Session = Depends(get_session)):
    target = merge_batches(db, batch_id, body.source_ids, body.actor)
    _journal("merge", body.actor, batch_id=batch_id, source_ids=body.source_ids, qty_planned=target.qty_planned)
    return {"ok": True, "batch": batch_out(target)}


@router.post("/batches/{batch_id}/advance")
def advance(batch_id: int, body: StepAdvanceIn, db: Session = Depends(get_session)):
    result = advance_workflow_step(db, batch_id, body.kind.value, body.operator)
    _journal(
        "advance_step",
        body.operator,
        batch_id=batch_id,
        step=result.step.kind,
        status=result.step.status,
        out_of_order=bool(result.step.out_of_order),
    )
    order_transition = None
    if result.order_transition is not None:
        order = result.batch.order
        after_commit(order.id, order.number, result.order_transition)
        order_transition = result.order_transition.as_dict()
    return {
        "ok": True,
        "batch": batch_out(result.batch),
        "deviation": None
        if result.deviation is None
        else {"step": result.deviation.step, "missing": list(result.deviation.missing)},
        "batch_completed": result.batch_completed,
        "order_transition": order_transition,
    }


@router.post("/batches/{batch_id}/output")
def output(batch_id: int, body: OutputIn, db: Session = Depends(get_session)):
    batch = record_batch_output(db, batch_id, body.good, body.scrap, body.actor)
    _journal("output", body.actor, batch_id=batch_id, good=body.good, scrap=body.scrap)
    return batch_out(batch)


@router.post("/batches/{batch_id}/hold")
def hold(batch_id: int, body: ActorIn, db: Session = Depends(get_session)):
    batch = hold_batch(db, batch_id, body.actor, body.reason)
    _journal("hold", body.actor, batch_id=batch_id, reason=body.reason)
    return batch_out(batch)


@router.post("/batches/{batch_id}/release")
def release(batch_id: int, body: ActorIn, db: Session = Depends(get_session)):
    batch = release_batch(db, batch_id, body.actor)
    _journal("release", body.actor, batch_id=batch_id, status=batch.status)
    return batch_out(batch)
