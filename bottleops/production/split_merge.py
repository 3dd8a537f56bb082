# SPDX-License-Identifier: AGPL-3.0-or-later
"""Restructure queued batches without changing the quantity allocated to any line."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import BatchAllocation, ProductionBatch
from bottleops.appdb.txn import transactional
from bottleops.errors import ConservationViolation, InvalidBatchState, InvalidQuantity
from bottleops.production.common import (
    BATCH_ENTITY,
    batch_snapshot,
    load_batch,
    new_batch,
    touch_order,
)
from bottleops.statuses import BatchStatus

logger = logging.getLogger(__name__)


def _check_conservation(batch: ProductionBatch) -> None:
    allocated = sum(int(a.qty) for a in batch.allocations)
    if allocated != int(batch.qty_planned):
        raise ConservationViolation(
            f"batch {batch.number}: allocations {allocated} do not match planned {batch.qty_planned}",
            batch_id=batch.id,
            planned=batch.qty_planned,
            allocated=allocated,
        )


def _carve(allocations: List[List[int]], qty: int) -> List[BatchAllocation]:
    """Take ``qty`` from the front of ``[[line_id, remaining], ...]`` in allocation order."""
    carved: List[BatchAllocation] = []
    need = qty
    while need > 0:
        line_id, available = allocations[0]
        take = min(available, need)
        carved.append(BatchAllocation(order_line_id=line_id, qty=take))
        need -= take
        allocations[0][1] -= take
        if allocations[0][1] == 0:
            allocations.pop(0)
    return carved


@transactional
def split_batch(
    session: Session, batch_id: int, quantities: Iterable[int], actor: Optional[str] = None
) -> List[ProductionBatch]:
    parts = [int(q) for q in quantities]
    batch = load_batch(session, batch_id, lock=True)

    if batch.status != BatchStatus.QUEUED.value:
        raise InvalidBatchState(
            f"batch {batch.number} is {batch.status}; only queued batches can be split",
            batch_id=batch.id,
            status=batch.status,
        )
    if len(parts) < 2:
        raise InvalidQuantity("a split needs at least two parts", batch_id=batch.id, quantities=parts)
    if any(q < 1 for q in parts):
        raise InvalidQuantity("split quantities must be positive", batch_id=batch.id, quantities=parts)
    if sum(parts) != int(batch.qty_planned):
        raise ConservationViolation(
            f"split quantities sum to {sum(parts)}, batch {batch.number} plans {batch.qty_planned}",
            batch_id=batch.id,
            planned=batch.qty_planned,
            requested=sum(parts),
            quantities=parts,
        )
    _check_conservation(batch)

    order = batch.order
    product = batch.product
    before = batch_snapshot(batch)
    pool = [[a.order_line_id, int(a.qty)] for a in batch.allocations]
    priority, planned_start, planned_finish = batch.priority, batch.planned_start, batch.planned_finish

    session.delete(batch)
    session.flush()

    created: List[ProductionBatch] = []
    for qty in parts:
        child = new_batch(
            session,
            order,
            product,
            qty,
            priority=priority,
            planned_start=planned_start,
            planned_finish=planned_finish,
        )
        child.allocations = _carve(pool, qty)
        created.append(child)
    session.flush()

    for child in created:
        _check_conservation(child)
    touch_order(order)
    write_audit(
        session,
        BATCH_ENTITY,
        batch_id,
        "split",
        before=before,
        after={"batches": [batch_snapshot(c) | {"id": c.id} for c in created]},
        actor=actor,
    )
    logger.info(
        "batch %s split into %s", before["number"], ", ".join(c.number for c in created)
    )
    return created


@transactional
def merge_batches(
    session: Session, target_id: int, source_ids: Iterable[int], actor: Optional[str] = None
) -> ProductionBatch:
    ids = [int(s) for s in source_ids]
    if not ids:
        raise InvalidBatchState("no source batches to merge", batch_id=target_id)
    if target_id in ids:
        raise InvalidBatchState("a batch cannot be merged into itself", batch_id=target_id)
    if len(set(ids)) != len(ids):
        raise InvalidBatchState("source batches must be distinct", batch_id=target_id, source_ids=ids)

    target = load_batch(session, target_id, lock=True)
    if target.status == BatchStatus.COMPLETE.value:
        raise InvalidBatchState(
            f"batch {target.number} is complete", batch_id=target.id, status=target.status
        )

    sources: List[ProductionBatch] = []
    for source_id in ids:
        source = load_batch(session, source_id, lock=True)
        if source.status != BatchStatus.QUEUED.value:
            raise InvalidBatchState(
                f"batch {source.number} is {source.status}; only queued batches can be merged",
                batch_id=source.id,
                status=source.status,
            )
        if source.order_id != target.order_id or source.product_id != target.product_id:
            raise InvalidBatchState(
                f"batch {source.number} belongs to a different order or product",
                batch_id=source.id,
                target_id=target.id,
            )
        _check_conservation(source)
        sources.append(source)

    before = batch_snapshot(target)
    planned_before = int(target.qty_planned)
    added = sum(int(s.qty_planned) for s in sources)

    by_line: "OrderedDict[int, BatchAllocation]" = OrderedDict(
        (a.order_line_id, a) for a in target.allocations
    )
    for source in sources:
        for alloc in source.allocations:
            existing = by_line.get(alloc.order_line_id)
            if existing is not None:
                existing.qty = int(existing.qty) + int(alloc.qty)
            else:
                fresh = BatchAllocation(order_line_id=alloc.order_line_id, qty=int(alloc.qty))
                target.allocations.append(fresh)
                by_line[alloc.order_line_id] = fresh

    target.qty_planned = planned_before + added
    for source in sources:
        session.delete(source)
    session.flush()

    _check_conservation(target)
    touch_order(target.order)
    write_audit(
        session,
        BATCH_ENTITY,
        target.id,
        "merge",
        before=before | {"sources": [s.number for s in sources]},
        after=batch_snapshot(target),
        actor=actor,
    )
    logger.info(
        "merged %s into %s (%s -> %s)",
        ", ".join(s.number for s in sources),
        target.number,
        planned_before,
        target.qty_planned,
    )
    return target


__all__ = ["merge_batches", "split_batch"]
