# SPDX-License-Identifier: AGPL-3.0-or-later
"""
Request bodies and response serializers for the JSON API.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from bottleops.appdb.models import OrderAddOn, ProductionBatch, SalesOrder
from bottleops.statuses import OrderStatus, SellMode, SourceChannel, StepKind

DEFAULT_ACTOR = "api"


class TierIn(BaseModel):
    min_quantity: int = Field(..., ge=1)
    max_quantity: Optional[int] = Field(None, ge=1)
    price_per_kit_cents: int = Field(..., ge=0)


class ProductIn(BaseModel):
    code: str = Field(..., min_length=1)
    description: Optional[str] = None
    batch_prefix: Optional[str] = None
    pack_size: int = Field(1, ge=1)
    price_per_kit_cents: int = Field(0, ge=0)
    price_per_piece_cents: int = Field(0, ge=0)
    tiers: List[TierIn] = Field(default_factory=list)
    actor: str = DEFAULT_ACTOR


class TiersIn(BaseModel):
    tiers: List[TierIn] = Field(default_factory=list)
    actor: str = DEFAULT_ACTOR


class LineIn(BaseModel):
    product_id: int
    sell_mode: SellMode = SellMode.KIT
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    lines: List[LineIn] = Field(default_factory=list)
    source_channel: SourceChannel = SourceChannel.STAFF
    is_internal: bool = False
    label_required: bool = False
    deposit_required: bool = False
    deposit_percent: Optional[int] = Field(None, ge=0, le=100)
    customer_ref: Optional[str] = None
    notes: Optional[str] = None
    actor: str = DEFAULT_ACTOR


class LinesReplace(BaseModel):
    lines: List[LineIn]
    actor: str = DEFAULT_ACTOR


class DepositIn(BaseModel):
    deposit_required: Optional[bool] = None
    deposit_percent: Optional[int] = Field(None, ge=0, le=100)
    deposit_status: Optional[str] = None
    actor: str = DEFAULT_ACTOR


class TransitionIn(BaseModel):
    target: OrderStatus
    hold_reason: Optional[str] = None
    actor: str = DEFAULT_ACTOR


class ActorIn(BaseModel):
    actor: str = DEFAULT_ACTOR
    reason: Optional[str] = None


class AddOnIn(BaseModel):
    lines: List[LineIn] = Field(..., min_length=1)
    reason: Optional[str] = None
    actor: str = DEFAULT_ACTOR


class PlanIn(BaseModel):
    order_line_id: int
    quantity: int
    planned_start: Optional[datetime] = None
    priority: Optional[int] = None


class PlanRequest(BaseModel):
    plans: List[PlanIn] = Field(default_factory=list)
    quick: bool = False
    actor: str = DEFAULT_ACTOR


class SplitIn(BaseModel):
    quantities: List[int]
    actor: str = DEFAULT_ACTOR


class MergeIn(BaseModel):
    source_ids: List[int]
    actor: str = DEFAULT_ACTOR


class StepAdvanceIn(BaseModel):
    kind: StepKind
    operator: Optional[str] = None


class OutputIn(BaseModel):
    good: int = Field(..., ge=0)
    scrap: int = Field(0, ge=0)
    actor: str = DEFAULT_ACTOR


def order_out(order: SalesOrder) -> dict:
    return {
        "id": order.id,
        "number": order.number,
        "status": order.status,
        "pre_hold_status": order.pre_hold_status,
        "hold_reason": order.hold_reason,
        "subtotal_cents": order.subtotal_cents,
        "deposit_required": bool(order.deposit_required),
        "deposit_percent": order.deposit_percent,
        "deposit_amount_cents": order.deposit_amount_cents,
        "deposit_status": order.deposit_status,
        "label_required": bool(order.label_required),
        "is_internal": bool(order.is_internal),
        "source_channel": order.source_channel,
        "parent_order_id": order.parent_order_id,
        "customer_ref": order.customer_ref,
        "version": order.version,
        "lines": [
            {
                "id": line.id,
                "product_id": line.product_id,
                "sell_mode": line.sell_mode,
                "qty_entered": line.qty_entered,
                "unit_price_cents": line.unit_price_cents,
                "bottle_qty": line.bottle_qty,
                "line_subtotal_cents": line.line_subtotal_cents,
            }
            for line in order.lines
        ],
    }


def batch_out(batch: ProductionBatch) -> dict:
    return {
        "id": batch.id,
        "number": batch.number,
        "order_id": batch.order_id,
        "product_id": batch.product_id,
        "status": batch.status,
        "qty_planned": batch.qty_planned,
        "qty_good": batch.qty_good,
        "qty_scrap": batch.qty_scrap,
        "priority": batch.priority,
        "planned_start": batch.planned_start,
        "actual_start": batch.actual_start,
        "actual_finish": batch.actual_finish,
        "allocations": [{"order_line_id": a.order_line_id, "qty": a.qty} for a in batch.allocations],
        "steps": [
            {
                "kind": s.kind,
                "status": s.status,
                "operator": s.operator,
                "started_at": s.started_at,
                "finished_at": s.finished_at,
                "out_of_order": bool(s.out_of_order),
            }
            for s in batch.steps
        ],
    }


def addon_out(link: OrderAddOn) -> dict:
    return {
        "id": link.id,
        "parent_order_id": link.parent_order_id,
        "addon_order_id": link.addon_order_id,
        "status": link.status,
        "reason": link.reason,
        "approved_by": link.approved_by,
        "approved_at": link.approved_at,
    }


__all__ = [
    "ActorIn",
    "AddOnIn",
    "DepositIn",
    "LineIn",
    "LinesReplace",
    "MergeIn",
    "OrderCreate",
    "OutputIn",
    "PlanIn",
    "PlanRequest",
    "ProductIn",
    "SplitIn",
    "StepAdvanceIn",
    "TierIn",
    "TiersIn",
    "TransitionIn",
    "addon_out",
    "batch_out",
    "order_out",
]
