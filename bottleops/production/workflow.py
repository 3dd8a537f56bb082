# SPDX-License-Identifier: AGPL-3.0-or-later
"""Per-batch workflow: produce -> bottle_cap -> label -> pack.

Steps move ``pending -> wip -> done`` one status at a time. Finishing a step before
its predecessors is a process deviation: the step is flagged ``out_of_order`` and a
``WorkflowDeviation`` is returned, or the advance is refused when
``strict_step_order`` is configured.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import AuditLog, ProductionBatch, WorkflowStep
from bottleops.appdb.txn import transactional
from bottleops.errors import ConservationViolation, InvalidBatchState, InvalidQuantity
from bottleops.orders.service import advance_if_production_done
from bottleops.orders.state_machine import TransitionResult
from bottleops.production.common import BATCH_ENTITY, batch_snapshot, load_batch, utcnow
from bottleops.settings import get_settings
from bottleops.statuses import STEP_ORDER, BatchStatus, OrderStatus, StepKind, StepStatus

logger = logging.getLogger(__name__)

_NEXT = {StepStatus.PENDING: StepStatus.WIP, StepStatus.WIP: StepStatus.DONE}


@dataclass(frozen=True)
class WorkflowDeviation:
    batch_id: int
    batch_number: str
    step: str
    missing: tuple


@dataclass
class StepAdvance:
    batch: ProductionBatch
    step: WorkflowStep
    deviation: Optional[WorkflowDeviation] = None
    batch_completed: bool = False
    order_transition: Optional[TransitionResult] = None
    warnings: List[str] = field(default_factory=list)


def _step_status(steps: Iterable[Any], kind: StepKind) -> Optional[str]:
    for step in steps:
        if getattr(step, "kind", None) == kind.value:
            return getattr(step, "status", None)
    return None


def ready_for_status(steps: Iterable[Any], status: Any, label_required: bool) -> bool:
    """Whether a batch's steps allow its order to enter ``status``."""
    steps = list(steps)
    target = OrderStatus(status)
    done = StepStatus.DONE.value
    if target is OrderStatus.IN_LABELING:
        return _step_status(steps, StepKind.BOTTLE_CAP) == done
    if target is OrderStatus.IN_PACKING:
        gate = StepKind.LABEL if label_required else StepKind.BOTTLE_CAP
        return _step_status(steps, gate) == done
    return True


def _auto_advance(session: Session, batch: ProductionBatch) -> Optional[TransitionResult]:
    order = batch.order
    result = advance_if_production_done(session, order)
    if result is not None:
        logger.info("order %s advanced to %s after batch %s", order.number, order.status, batch.number)
    return result


@transactional
def advance_workflow_step(
    session: Session,
    batch_id: int,
    kind: str,
    operator: Optional[str] = None,
    strict: Optional[bool] = None,
) -> StepAdvance:
    step_kind = StepKind(kind)
    if strict is None:
        strict = get_settings().strict_step_order

    batch = load_batch(session, batch_id, lock=True)
    if batch.status in (BatchStatus.COMPLETE.value, BatchStatus.HOLD.value):
        raise InvalidBatchState(
            f"batch {batch.number} is {batch.status}", batch_id=batch.id, status=batch.status
        )

    step = next((s for s in batch.steps if s.kind == step_kind.value), None)
    if step is None:
        raise InvalidBatchState(
            f"batch {batch.number} has no {step_kind.value} step", batch_id=batch.id, step=step_kind.value
        )
    current = StepStatus(step.status)
    if current is StepStatus.DONE:
        raise InvalidBatchState(
            f"{step_kind.value} is already done on batch {batch.number}",
            batch_id=batch.id,
            step=step_kind.value,
            status=current.value,
        )
    new_status = _NEXT[current]
    now = utcnow()
    before = {"step": step_kind.value, "status": current.value, "batch_status": batch.status}

    deviation = None
    if new_status is StepStatus.DONE:
        position = STEP_ORDER.index(step_kind)
        by_kind = {s.kind: s.status for s in batch.steps}
        missing = tuple(
            k.value for k in STEP_ORDER[:position] if by_kind.get(k.value) != StepStatus.DONE.value
        )
        if missing:
            if strict:
                raise InvalidBatchState(
                    f"{step_kind.value} cannot finish before {', '.join(missing)}",
                    batch_id=batch.id,
                    step=step_kind.value,
                    missing=list(missing),
                )
            step.out_of_order = True
            deviation = WorkflowDeviation(batch.id, batch.number, step_kind.value, missing)
            logger.warning(
                "batch %s: %s finished before %s", batch.number, step_kind.value, ", ".join(missing)
            )
        step.finished_at = now
        if step.started_at is None:
            step.started_at = now
    else:
        step.started_at = now
    step.status = new_status.value
    step.operator = operator or step.operator

    if batch.status == BatchStatus.QUEUED.value:
        batch.status = BatchStatus.WIP.value
        batch.actual_start = now

    completed = all(s.status == StepStatus.DONE.value for s in batch.steps)
    if completed:
        batch.status = BatchStatus.COMPLETE.value
        batch.actual_finish = now
    session.flush()

    after = {
        "step": step_kind.value,
        "status": new_status.value,
        "batch_status": batch.status,
        "operator": step.operator,
        "out_of_order": bool(step.out_of_order),
    }
    write_audit(session, BATCH_ENTITY, batch.id, "advance_step", before=before, after=after, actor=operator)

    result = StepAdvance(batch=batch, step=step, deviation=deviation, batch_completed=completed)
    if completed:
        result.order_transition = _auto_advance(session, batch)
        if result.order_transition is not None:
            result.warnings.extend(result.order_transition.warnings)
    return result


@transactional
def record_batch_output(
    session: Session, batch_id: int, good: int, scrap: int = 0, actor: Optional[str] = None
) -> ProductionBatch:
    good, scrap = int(good), int(scrap)
    if good < 0 or scrap < 0:
        raise InvalidQuantity("output quantities cannot be negative", batch_id=batch_id, good=good, scrap=scrap)
    batch = load_batch(session, batch_id, lock=True)
    if good + scrap > int(batch.qty_planned):
        raise ConservationViolation(
            f"good {good} + scrap {scrap} exceeds planned {batch.qty_planned}",
            batch_id=batch.id,
            planned=batch.qty_planned,
            good=good,
            scrap=scrap,
        )
    before = batch_snapshot(batch)
    batch.qty_good = good
    batch.qty_scrap = scrap
    write_audit(session, BATCH_ENTITY, batch.id, "record_output", before=before, after=batch_snapshot(batch), actor=actor)
    return batch


@transactional
def hold_batch(session: Session, batch_id: int, actor: Optional[str] = None, reason: Optional[str] = None) -> ProductionBatch:
    batch = load_batch(session, batch_id, lock=True)
    if batch.status not in (BatchStatus.QUEUED.value, BatchStatus.WIP.value):
        raise InvalidBatchState(
            f"batch {batch.number} is {batch.status} and cannot be held", batch_id=batch.id, status=batch.status
        )
    prior = batch.status
    batch.status = BatchStatus.HOLD.value
    write_audit(
        session,
        BATCH_ENTITY,
        batch.id,
        "hold",
        before={"status": prior},
        after={"status": batch.status, "reason": reason},
        actor=actor,
    )
    return batch


def _status_before_hold(session: Session, batch: ProductionBatch) -> str:
    row = session.execute(
        select(AuditLog)
        .where(AuditLog.entity == BATCH_ENTITY, AuditLog.entity_id == batch.id, AuditLog.action == "hold")
        .order_by(AuditLog.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if row is not None and row.before:
        return json.loads(row.before)["status"]
    started = any(s.status != StepStatus.PENDING.value for s in batch.steps)
    return BatchStatus.WIP.value if started else BatchStatus.QUEUED.value


@transactional
def release_batch(session: Session, batch_id: int, actor: Optional[str] = None) -> ProductionBatch:
    batch = load_batch(session, batch_id, lock=True)
    if batch.status != BatchStatus.HOLD.value:
        raise InvalidBatchState(f"batch {batch.number} is not on hold", batch_id=batch.id, status=batch.status)
    batch.status = _status_before_hold(session, batch)
    write_audit(
        session, BATCH_ENTITY, batch.id, "release", before={"status": BatchStatus.HOLD.value}, after={"status": batch.status}, actor=actor
    )
    return batch


__all__ = [
    "StepAdvance",
    "WorkflowDeviation",
    "advance_workflow_step",
    "hold_batch",
    "ready_for_status",
    "record_batch_output",
    "release_batch",
]
