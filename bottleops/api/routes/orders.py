# SPDX-License-Identifier: AGPL-3.0-or-later
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bottleops import journal
from bottleops.api.schemas import (
    ActorIn,
    AddOnIn,
    DepositIn,
    LinesReplace,
    OrderCreate,
    TransitionIn,
    addon_out,
    order_out,
)
from bottleops.appdb.audit import audit_trail
from bottleops.appdb.engine import get_session
from bottleops.fulfillment.consolidate import consolidated_order
from bottleops.orders.addons import approve_addon, create_addon, reject_addon
from bottleops.orders.service import (
    create_order,
    hard_delete_order,
    load_order,
    release_order_hold,
    replace_lines,
    transition_order,
    update_deposit,
)
from bottleops.orders.state_machine import allowed_targets

router = APIRouter(prefix="/orders", tags=["orders"])


def _lines(body_lines) -> list[dict]:
    return [line.model_dump(mode="json") for line in body_lines]


@router.post("", status_code=201)
def new_order(body: OrderCreate, db: Session = Depends(get_session)):
    order = create_order(
        db,
        _lines(body.lines),
        body.actor,
        source_channel=body.source_channel.value,
        is_internal=body.is_internal,
        label_required=body.label_required,
        deposit_required=body.deposit_required,
        deposit_percent=body.deposit_percent,
        customer_ref=body.customer_ref,
        notes=body.notes,
    )
    return order_out(order)


@router.get("/history")
def order_history(days: int = Query(30, ge=1, le=365)):
    return {"transitions": journal.load_recent(journal.ORDERS, days)}


@router.post("/addons/{addon_id}/approve")
def approve(addon_id: int, body: ActorIn, db: Session = Depends(get_session)):
    return addon_out(approve_addon(db, addon_id, body.actor))


@router.post("/addons/{addon_id}/reject")
def reject(addon_id: int, body: ActorIn, db: Session = Depends(get_session)):
    return addon_out(reject_addon(db, addon_id, body.actor, body.reason))


@router.get("/{order_id}")
def read_order(order_id: int, db: Session = Depends(get_session)):
    order = load_order(db, order_id)
    out = order_out(order)
    out["allowed_targets"] = sorted(
        s.value for s in allowed_targets(order.status, order.pre_hold_status)
    )
    return out


@router.put("/{order_id}/lines")
def put_lines(order_id: int, body: LinesReplace, db: Session = Depends(get_session)):
    return order_out(replace_lines(db, order_id, _lines(body.lines), body.actor))


@router.patch("/{order_id}/deposit")
def patch_deposit(order_id: int, body: DepositIn, db: Session = Depends(get_session)):
    order, result = update_deposit(
        db,
        order_id,
        body.actor,
        deposit_required=body.deposit_required,
        deposit_percent=body.deposit_percent,
        deposit_status=body.deposit_status,
    )
    out = order_out(order)
    out["auto_transition"] = result.as_dict() if result else None
    return out


@router.post("/{order_id}/transition")
def post_transition(order_id: int, body: TransitionIn, db: Session = Depends(get_session)):
    result = transition_order(db, order_id, body.target.value, body.actor, body.hold_reason)
    return {"ok": True, **result.as_dict(), "order": order_out(load_order(db, order_id))}


@router.post("/{order_id}/release")
def post_release(order_id: int, body: ActorIn, db: Session = Depends(get_session)):
    result = release_order_hold(db, order_id, body.actor)
    return {"ok": True, **result.as_dict(), "order": order_out(load_order(db, order_id))}


@router.delete("/{order_id}")
def delete_order(order_id: int, actor: str = Query("api"), db: Session = Depends(get_session)):
    return {"ok": True, **hard_delete_order(db, order_id, actor)}


@router.get("/{order_id}/audit")
def order_audit(order_id: int, db: Session = Depends(get_session)):
    load_order(db, order_id)
    return {"entries": audit_trail(db, "order", order_id)}


@router.post("/{order_id}/addons", status_code=201)
def post_addon(order_id: int, body: AddOnIn, db: Session = Depends(get_session)):
    link = create_addon(db, order_id, _lines(body.lines), body.actor, body.reason)
    return {**addon_out(link), "addon_order": order_out(link.addon_order)}


@router.get("/{order_id}/consolidated")
def read_consolidated(order_id: int, db: Session = Depends(get_session)):
    return consolidated_order(db, order_id).as_dict()
