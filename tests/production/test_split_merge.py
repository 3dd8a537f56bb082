# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

import pytest
from sqlalchemy import select

from bottleops.appdb.models import ProductionBatch, WorkflowStep
from bottleops.errors import ConservationViolation, InvalidBatchState, InvalidQuantity, NotFound
from bottleops.production.planner import plan_batches, remaining_by_line
from bottleops.production.split_merge import merge_batches, split_batch
from bottleops.production.workflow import advance_workflow_step


def _plan(session, order, *quantities):
    line_id = order.lines[0].id
    return plan_batches(session, order.id, [{"order_line_id": line_id, "quantity": q} for q in quantities])


def _finish_all_steps(session, batch_id):
    for kind in ("produce", "bottle_cap", "label", "pack"):
        advance_workflow_step(session, batch_id, kind, "op")
        advance_workflow_step(session, batch_id, kind, "op")


def test_split_replaces_batch_with_fresh_children(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 300)
    old_id, old_number = batch.id, batch.number

    children = split_batch(session, old_id, [100, 100, 100], "planner")

    assert [c.qty_planned for c in children] == [100, 100, 100]
    assert old_number not in [c.number for c in children]
    assert session.get(ProductionBatch, old_id) is None
    assert session.execute(select(WorkflowStep).where(WorkflowStep.batch_id == old_id)).first() is None
    for child in children:
        assert child.status == "queued"
        assert [s.status for s in child.steps] == ["pending"] * 4
        assert sum(a.qty for a in child.allocations) == child.qty_planned
    assert remaining_by_line(session, order_in_queue.id) == {order_in_queue.lines[0].id: 200}


def test_split_must_conserve_quantity(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 300)
    with pytest.raises(ConservationViolation):
        split_batch(session, batch.id, [100, 100])
    session.expire_all()
    assert batch.qty_planned == 300


def test_split_needs_two_positive_parts(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 300)
    with pytest.raises(InvalidQuantity):
        split_batch(session, batch.id, [300])
    with pytest.raises(InvalidQuantity):
        split_batch(session, batch.id, [300, 0])


def test_started_batches_cannot_be_split(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 300)
    advance_workflow_step(session, batch.id, "produce", "op")
    with pytest.raises(InvalidBatchState):
        split_batch(session, batch.id, [150, 150])


def test_merge_folds_sources_into_target(session, order_in_queue):
    first, second, third = _plan(session, order_in_queue, 100, 150, 50)
    target_number = first.number
    source_ids = [second.id, third.id]

    merged = merge_batches(session, first.id, source_ids, "planner")

    assert merged.number == target_number
    assert merged.qty_planned == 300
    assert [(a.order_line_id, a.qty) for a in merged.allocations] == [(order_in_queue.lines[0].id, 300)]
    for source_id in source_ids:
        assert session.get(ProductionBatch, source_id) is None
    assert remaining_by_line(session, order_in_queue.id) == {order_in_queue.lines[0].id: 200}


def test_merge_rejects_self_and_started_sources(session, order_in_queue):
    first, second = _plan(session, order_in_queue, 100, 100)
    with pytest.raises(InvalidBatchState):
        merge_batches(session, first.id, [first.id])

    advance_workflow_step(session, second.id, "produce", "op")
    with pytest.raises(InvalidBatchState):
        merge_batches(session, first.id, [second.id])
    session.expire_all()
    assert first.qty_planned == 100


def test_merge_into_complete_batch_rejected(session, order_in_queue):
    first, second = _plan(session, order_in_queue, 100, 100)
    _finish_all_steps(session, first.id)
    with pytest.raises(InvalidBatchState):
        merge_batches(session, first.id, [second.id])


def test_split_carves_allocations_in_order(session, make_product, make_order, move):
    product = make_product("MIX", pack_size=1, kit=500, piece=80)
    order = make_order(
        [
            {"product_id": product.id, "sell_mode": "kit", "quantity": 10},
            {"product_id": product.id, "sell_mode": "piece", "quantity": 6},
        ]
    )
    move(order.id, "in_queue")
    kit_line, piece_line = (line.id for line in order.lines)
    kit_batch, piece_batch = plan_batches(
        session,
        order.id,
        [{"order_line_id": kit_line, "quantity": 10}, {"order_line_id": piece_line, "quantity": 6}],
    )
    merged = merge_batches(session, kit_batch.id, [piece_batch.id])
    assert [(a.order_line_id, a.qty) for a in merged.allocations] == [(kit_line, 10), (piece_line, 6)]

    left, right = split_batch(session, merged.id, [8, 8])
    assert [(a.order_line_id, a.qty) for a in left.allocations] == [(kit_line, 8)]
    assert [(a.order_line_id, a.qty) for a in right.allocations] == [(kit_line, 2), (piece_line, 6)]
    assert remaining_by_line(session, order.id) == {kit_line: 0, piece_line: 0}


def test_split_batch_id_is_never_reused(session, order_in_queue):
    (batch,) = _plan(session, order_in_queue, 300)
    old_id = batch.id

    children = split_batch(session, old_id, [100, 100, 100])

    assert old_id not in [c.id for c in children]
    with pytest.raises(NotFound):
        advance_workflow_step(session, old_id, "produce", "op")
