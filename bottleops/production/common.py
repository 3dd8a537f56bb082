# SPDX-License-Identifier: AGPL-3.0-or-later
"""Batch construction shared by the planner and the split/merge engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bottleops.appdb.models import Product, ProductionBatch, SalesOrder, WorkflowStep
from bottleops.appdb.sequences import next_batch_number
from bottleops.errors import NotFound
from bottleops.statuses import STEP_ORDER, BatchStatus, StepStatus

BATCH_ENTITY = "production_batch"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def batch_prefix(product: Product) -> str:
    return (product.batch_prefix or product.code).strip().upper()


def fresh_steps() -> list[WorkflowStep]:
    return [
        WorkflowStep(kind=kind.value, seq=i, status=StepStatus.PENDING.value)
        for i, kind in enumerate(STEP_ORDER, start=1)
    ]


def new_batch(
    session: Session,
    order: SalesOrder,
    product: Product,
    qty: int,
    *,
    priority: int = 0,
    planned_start: Optional[datetime] = None,
    planned_finish: Optional[datetime] = None,
) -> ProductionBatch:
    """A queued batch with a fresh number and its four pending steps; no allocations yet."""
    batch = ProductionBatch(
        number=next_batch_number(session, batch_prefix(product)),
        order_id=order.id,
        product_id=product.id,
        status=BatchStatus.QUEUED.value,
        qty_planned=int(qty),
        qty_good=0,
        qty_scrap=0,
        priority=priority,
        planned_start=planned_start,
        planned_finish=planned_finish,
    )
    batch.steps = fresh_steps()
    session.add(batch)
    return batch


def load_batch(session: Session, batch_id: int, lock: bool = False) -> ProductionBatch:
    batch = session.get(ProductionBatch, batch_id, with_for_update=lock)
    if batch is None:
        raise NotFound("production_batch", batch_id)
    return batch


def next_priority(session: Session, order_id: int) -> int:
    current = session.execute(
        select(func.max(ProductionBatch.priority)).where(ProductionBatch.order_id == order_id)
    ).scalar_one()
    return 0 if current is None else int(current) + 1


def touch_order(order: SalesOrder) -> None:
    """Bump the order row so a concurrent structural change on the same order goes stale."""
    order.updated_at = utcnow()


def batch_snapshot(batch: ProductionBatch) -> dict:
    return {
        "number": batch.number,
        "status": batch.status,
        "qty_planned": batch.qty_planned,
        "qty_good": batch.qty_good,
        "qty_scrap": batch.qty_scrap,
        "allocations": [
            {"order_line_id": a.order_line_id, "qty": a.qty} for a in batch.allocations
        ],
    }


__all__ = [
    "BATCH_ENTITY",
    "batch_prefix",
    "batch_snapshot",
    "fresh_steps",
    "load_batch",
    "new_batch",
    "next_priority",
    "touch_order",
    "utcnow",
]
