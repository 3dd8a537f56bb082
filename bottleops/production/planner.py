# SPDX-License-Identifier: AGPL-3.0-or-later
"""Batch allocation planner.

Turns unallocated order-line quantity into queued production batches. A request is
all-or-nothing: if any line would be over-allocated, no batch is created.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import BatchAllocation, OrderLine, ProductionBatch
from bottleops.appdb.txn import transactional
from bottleops.errors import InvalidQuantity, InvalidTransition, NotFound, OverAllocation
from bottleops.orders.service import load_order
from bottleops.orders.state_machine import effective_status
from bottleops.production.common import (
    BATCH_ENTITY,
    batch_snapshot,
    new_batch,
    next_priority,
    touch_order,
)
from bottleops.statuses import PLANNABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchPlan:
    order_line_id: int
    quantity: int
    planned_start: Optional[datetime] = None
    priority: Optional[int] = None


def _coerce(plan: Any) -> BatchPlan:
    if isinstance(plan, BatchPlan):
        return plan
    if isinstance(plan, dict):
        return BatchPlan(
            order_line_id=plan["order_line_id"],
            quantity=plan["quantity"],
            planned_start=plan.get("planned_start"),
            priority=plan.get("priority"),
        )
    return BatchPlan(
        order_line_id=plan.order_line_id,
        quantity=plan.quantity,
        planned_start=getattr(plan, "planned_start", None),
        priority=getattr(plan, "priority", None),
    )


def allocated_by_line(session: Session, line_ids: Iterable[int]) -> Dict[int, int]:
    ids = list(line_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(BatchAllocation.order_line_id, func.coalesce(func.sum(BatchAllocation.qty), 0))
        .where(BatchAllocation.order_line_id.in_(ids))
        .group_by(BatchAllocation.order_line_id)
    ).all()
    totals = {line_id: 0 for line_id in ids}
    totals.update({int(line_id): int(total) for line_id, total in rows})
    return totals


def remaining_by_line(session: Session, order_id: int) -> Dict[int, int]:
    """Unallocated bottle quantity per order line."""
    order = load_order(session, order_id)
    allocated = allocated_by_line(session, [line.id for line in order.lines])
    return {line.id: int(line.bottle_qty) - allocated[line.id] for line in order.lines}


def quick_plan(session: Session, order_id: int) -> List[BatchPlan]:
    """One plan per line covering everything still unallocated."""
    return [
        BatchPlan(order_line_id=line_id, quantity=qty)
        for line_id, qty in remaining_by_line(session, order_id).items()
        if qty > 0
    ]


def _ensure_plannable(order) -> None:
    if effective_status(order) not in PLANNABLE_STATUSES:
        raise InvalidTransition(
            order.status,
            "plan_batches",
            "batches can be planned only once the order is in the queue or in production",
            order_id=order.id,
        )


@transactional
def plan_batches(
    session: Session, order_id: int, plans: Iterable[Any], actor: Optional[str] = None
) -> List[ProductionBatch]:
    requested = [_coerce(p) for p in plans]
    if not requested:
        raise InvalidQuantity("at least one plan is required", order_id=order_id)

    order = load_order(session, order_id, lock=True)
    _ensure_plannable(order)

    lines: Dict[int, OrderLine] = {line.id: line for line in order.lines}
    wanted: Dict[int, int] = defaultdict(int)
    for plan in requested:
        if plan.order_line_id not in lines:
            raise NotFound("order_line", plan.order_line_id)
        if plan.quantity is None or int(plan.quantity) < 1:
            raise InvalidQuantity(
                "batch quantity must be positive",
                order_line_id=plan.order_line_id,
                quantity=plan.quantity,
            )
        wanted[plan.order_line_id] += int(plan.quantity)

    # read inside the transaction, after the order row lock
    allocated = allocated_by_line(session, wanted.keys())
    for line_id, qty in wanted.items():
        line = lines[line_id]
        remaining = int(line.bottle_qty) - allocated[line_id]
        if qty > remaining:
            raise OverAllocation(line_id, qty, remaining, int(line.bottle_qty))

    priority = next_priority(session, order.id)
    created: List[ProductionBatch] = []
    for plan in requested:
        line = lines[plan.order_line_id]
        batch = new_batch(
            session,
            order,
            line.product,
            plan.quantity,
            priority=plan.priority if plan.priority is not None else priority,
            planned_start=plan.planned_start,
        )
        batch.allocations = [BatchAllocation(order_line_id=line.id, qty=int(plan.quantity))]
        priority += 1
        session.flush()
        write_audit(session, BATCH_ENTITY, batch.id, "plan", after=batch_snapshot(batch), actor=actor)
        created.append(batch)

    touch_order(order)
    logger.info(
        "planned %s batch(es) for order %s: %s",
        len(created),
        order.number,
        ", ".join(b.number for b in created),
    )
    return created


__all__ = [
    "BatchPlan",
    "allocated_by_line",
    "plan_batches",
    "quick_plan",
    "remaining_by_line",
]
