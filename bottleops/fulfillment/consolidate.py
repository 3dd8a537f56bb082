# SPDX-License-Identifier: AGPL-3.0-or-later
"""Consolidated view of a parent order and its approved add-ons."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from bottleops.errors import ConsolidationNotAllowed
from bottleops.orders.addons import list_addons
from bottleops.orders.service import load_order
from bottleops.orders.state_machine import effective_status
from bottleops.statuses import FULFILLMENT_STATUSES, AddOnStatus, OrderStatus


@dataclass(frozen=True)
class ConsolidatedLine:
    source_order_id: int
    source_order_number: Optional[str]
    is_addon: bool
    product_id: int
    product_code: Optional[str]
    sell_mode: str
    qty_entered: int
    bottle_qty: int
    unit_price_cents: int
    line_subtotal_cents: int


@dataclass
class BreakdownRow:
    product_id: int
    product_code: Optional[str]
    sell_mode: str
    qty_entered: int = 0
    bottle_qty: int = 0
    subtotal_cents: int = 0
    source_order_ids: List[int] = field(default_factory=list)


@dataclass
class ConsolidatedView:
    parent_order_id: int
    parent_order_number: Optional[str]
    order_ids: List[int]
    lines: List[ConsolidatedLine]
    total_bottles: int
    total_value_cents: int
    line_count: int
    breakdown: List[BreakdownRow]

    def as_dict(self) -> dict:
        return asdict(self)


def _tag_lines(order: Any, is_addon: bool) -> List[ConsolidatedLine]:
    tagged = []
    for line in order.lines:
        product = getattr(line, "product", None)
        tagged.append(
            ConsolidatedLine(
                source_order_id=order.id,
                source_order_number=getattr(order, "number", None),
                is_addon=is_addon,
                product_id=line.product_id,
                product_code=getattr(product, "code", None),
                sell_mode=line.sell_mode,
                qty_entered=int(line.qty_entered),
                bottle_qty=int(line.bottle_qty),
                unit_price_cents=int(line.unit_price_cents),
                line_subtotal_cents=int(line.line_subtotal_cents),
            )
        )
    return tagged


def consolidate(parent: Any, add_ons: Iterable[Tuple[str, Any]]) -> ConsolidatedView:
    """Merge ``parent`` with the approved, non-cancelled orders in ``add_ons``.

    ``add_ons`` holds ``(relation status, add-on order)`` pairs; anything not
    approved is left out of every total, not just hidden.
    """
    status = effective_status(parent)
    if status not in FULFILLMENT_STATUSES:
        raise ConsolidationNotAllowed(
            f"order {getattr(parent, 'number', parent.id)} is {parent.status}; "
            "only fulfillment-phase orders are consolidated",
            order_id=parent.id,
            status=parent.status,
        )

    contributing = [(parent, False)]
    for relation_status, order in add_ons:
        if relation_status != AddOnStatus.APPROVED.value:
            continue
        if order.status == OrderStatus.CANCELLED.value:
            continue
        contributing.append((order, True))

    lines: List[ConsolidatedLine] = []
    for order, is_addon in contributing:
        lines.extend(_tag_lines(order, is_addon))

    groups: Dict[Tuple[int, str], BreakdownRow] = {}
    for line in lines:
        key = (line.product_id, line.sell_mode)
        row = groups.get(key)
        if row is None:
            row = groups[key] = BreakdownRow(line.product_id, line.product_code, line.sell_mode)
        row.qty_entered += line.qty_entered
        row.bottle_qty += line.bottle_qty
        row.subtotal_cents += line.line_subtotal_cents
        if line.source_order_id not in row.source_order_ids:
            row.source_order_ids.append(line.source_order_id)

    return ConsolidatedView(
        parent_order_id=parent.id,
        parent_order_number=getattr(parent, "number", None),
        order_ids=[o.id for o, _ in contributing],
        lines=lines,
        total_bottles=sum(line.bottle_qty for line in lines),
        total_value_cents=sum(int(o.subtotal_cents) for o, _ in contributing),
        line_count=len(lines),
        breakdown=list(groups.values()),
    )


def consolidated_order(session: Session, parent_id: int) -> ConsolidatedView:
    parent = load_order(session, parent_id)
    return consolidate(parent, list_addons(session, parent.id))


__all__ = ["BreakdownRow", "ConsolidatedLine", "ConsolidatedView", "consolidate", "consolidated_order"]
