# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import select

from bottleops import journal
from bottleops.appdb.models import AuditLog
from bottleops.errors import ConservationViolation, InvalidBatchState, InvalidQuantity
from bottleops.orders.service import release_order_hold
from bottleops.production.planner import plan_batches
from bottleops.production.workflow import (
    advance_workflow_step,
    hold_batch,
    ready_for_status,
    record_batch_output,
    release_batch,
)
from bottleops.settings import get_settings

KINDS = ("produce", "bottle_cap", "label", "pack")


def _plan(session, order, *quantities):
    line_id = order.lines[0].id
    return plan_batches(session, order.id, [{"order_line_id": line_id, "quantity": q} for q in quantities])


def _finish(session, batch_id, kinds=KINDS):
    result = None
    for kind in kinds:
        advance_workflow_step(session, batch_id, kind, "dana")
        result = advance_workflow_step(session, batch_id, kind, "dana")
    return result


def test_first_advance_starts_the_batch(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 500)
    result = advance_workflow_step(session, batch.id, "produce", "dana")

    assert result.step.status == "wip"
    assert result.step.operator == "dana"
    assert result.step.started_at is not None
    assert result.batch.status == "wip"
    assert result.batch.actual_start is not None
    assert result.deviation is None
    assert not result.batch_completed


def test_finishing_last_batch_moves_order_to_packing(session, order_in_queue, move):
    move(order_in_queue.id, "in_production")
    (batch,) = _plan(session, order_in_queue, 500)

    result = _finish(session, batch.id)

    assert result.batch_completed
    assert result.batch.status == "complete"
    assert result.batch.actual_finish is not None
    assert result.order_transition.to_status.value == "in_packing"
    session.expire_all()
    assert order_in_queue.status == "in_packing"
    last = session.execute(
        select(AuditLog)
        .where(AuditLog.entity == "order", AuditLog.entity_id == order_in_queue.id)
        .order_by(AuditLog.id.desc())
    ).scalars().first()
    assert last.action == "transition"
    assert last.actor == "system"


def test_release_advances_order_whose_production_finished_on_hold(session, order_in_queue, move):
    move(order_in_queue.id, "in_production")
    (batch,) = _plan(session, order_in_queue, 500)
    move(order_in_queue.id, "on_hold_materials", hold_reason="carton delivery late")

    assert _finish(session, batch.id).order_transition is None
    session.expire_all()
    assert order_in_queue.status == "on_hold_materials"

    released = release_order_hold(session, order_in_queue.id, "alice")

    assert released.to_status.value == "in_production"
    assert released.follow_up.to_status.value == "in_packing"
    assert released.follow_up.actor == "system"
    session.expire_all()
    assert order_in_queue.status == "in_packing"
    assert order_in_queue.pre_hold_status is None
    entries = journal.load_recent(journal.ORDERS)
    assert sorted(e["to_status"] for e in entries) == ["in_packing", "in_production"]


def test_labelled_orders_move_to_labeling(session, make_product, make_order, move):
    product = make_product("LBL", pack_size=1, kit=400)
    order = make_order([{"product_id": product.id, "quantity": 20}], label_required=True)
    move(order.id, "in_queue", "in_production")
    (batch,) = _plan(session, order, 20)

    result = _finish(session, batch.id)

    assert result.order_transition.to_status.value == "in_labeling"


def test_order_waits_for_every_batch(session, order_in_queue, move):
    move(order_in_queue.id, "in_production")
    first, second = _plan(session, order_in_queue, 250, 250)

    result = _finish(session, first.id)
    assert result.batch_completed
    assert result.order_transition is None
    session.expire_all()
    assert order_in_queue.status == "in_production"

    assert _finish(session, second.id).order_transition is not None


def test_out_of_order_finish_is_flagged(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 500)
    advance_workflow_step(session, batch.id, "label", "dana")
    result = advance_workflow_step(session, batch.id, "label", "dana")

    assert result.step.status == "done"
    assert result.step.out_of_order
    assert result.deviation.step == "label"
    assert result.deviation.missing == ("produce", "bottle_cap")


def test_strict_mode_refuses_out_of_order_finish(session, order_in_queue, monkeypatch):
    monkeypatch.setenv("BOTTLEOPS_STRICT_STEP_ORDER", "true")
    get_settings.cache_clear()
    (batch,) = _plan(session, order_in_queue, 500)
    advance_workflow_step(session, batch.id, "pack", "dana")
    with pytest.raises(InvalidBatchState):
        advance_workflow_step(session, batch.id, "pack", "dana")
    session.expire_all()
    assert [s.status for s in batch.steps] == ["pending", "pending", "pending", "wip"]


def test_done_step_cannot_advance(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 500)
    _finish(session, batch.id, ("produce",))
    with pytest.raises(InvalidBatchState):
        advance_workflow_step(session, batch.id, "produce", "dana")


def test_unknown_step_kind_rejected(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 500)
    with pytest.raises(ValueError):
        advance_workflow_step(session, batch.id, "polish", "dana")


def test_ready_for_status_gates():
    steps = [
        SimpleNamespace(kind="produce", status="done"),
        SimpleNamespace(kind="bottle_cap", status="done"),
        SimpleNamespace(kind="label", status="pending"),
        SimpleNamespace(kind="pack", status="pending"),
    ]
    assert ready_for_status(steps, "in_labeling", label_required=True)
    assert ready_for_status(steps, "in_packing", label_required=False)
    assert not ready_for_status(steps, "in_packing", label_required=True)
    steps[1].status = "wip"
    assert not ready_for_status(steps, "in_labeling", label_required=True)


def test_output_is_bounded_by_plan(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 500)
    updated = record_batch_output(session, batch.id, 480, 20, "dana")
    assert (updated.qty_good, updated.qty_scrap) == (480, 20)

    with pytest.raises(ConservationViolation):
        record_batch_output(session, batch.id, 490, 20, "dana")
    with pytest.raises(InvalidQuantity):
        record_batch_output(session, batch.id, -1, 0, "dana")
    session.expire_all()
    assert (batch.qty_good, batch.qty_scrap) == (480, 20)


def test_hold_and_release_restore_prior_status(session, order_in_queue):
    started, idle = _plan(session, order_in_queue, 250, 250)
    advance_workflow_step(session, started.id, "produce", "dana")

    assert hold_batch(session, started.id, "dana", "mould cracked").status == "hold"
    with pytest.raises(InvalidBatchState):
        advance_workflow_step(session, started.id, "produce", "dana")
    assert release_batch(session, started.id, "dana").status == "wip"

    hold_batch(session, idle.id, "dana")
    assert release_batch(session, idle.id, "dana").status == "queued"
    with pytest.raises(InvalidBatchState):
        release_batch(session, idle.id, "dana")
