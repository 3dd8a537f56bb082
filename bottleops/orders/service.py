# SPDX-License-Identifier: AGPL-3.0-or-later
"""Persistence-backed order operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bottleops import journal
from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import OrderAddOn, OrderLine, Product, ProductionBatch, SalesOrder
from bottleops.appdb.sequences import next_order_number
from bottleops.appdb.txn import transactional
from bottleops.errors import InvalidQuantity, InvalidTransition, NotFound, OrderNotEditable
from bottleops.orders.state_machine import (
    SYSTEM_ACTOR,
    TransitionContext,
    TransitionResult,
    release_hold,
    transition,
)
from bottleops.ports import Ports, dispatch_intents
from bottleops.pricing.lines import compute_line, compute_order_totals
from bottleops.settings import get_settings
from bottleops.statuses import (
    AddOnStatus,
    BatchStatus,
    DepositStatus,
    EDITABLE_STATUSES,
    OrderStatus,
    SellMode,
    SourceChannel,
)

logger = logging.getLogger(__name__)

# Entering one of these moves the parent's add-on orders along with it.
ADDON_SYNC_STATUSES = frozenset(
    {
        OrderStatus.IN_PACKING,
        OrderStatus.AWAITING_INVOICE,
        OrderStatus.AWAITING_PAYMENT,
        OrderStatus.READY_TO_SHIP,
        OrderStatus.SHIPPED,
        OrderStatus.STOCKED,
        OrderStatus.CANCELLED,
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def load_order(session: Session, order_id: int, lock: bool = False) -> SalesOrder:
    order = session.get(SalesOrder, order_id, with_for_update=lock)
    if order is None:
        raise NotFound("order", order_id)
    return order


def order_snapshot(order: SalesOrder) -> dict:
    return {
        "status": order.status,
        "pre_hold_status": order.pre_hold_status,
        "hold_reason": order.hold_reason,
        "subtotal_cents": order.subtotal_cents,
        "deposit_amount_cents": order.deposit_amount_cents,
        "version": order.version,
    }


def build_lines(session: Session, lines: Iterable[Any]) -> List[OrderLine]:
    """Price requested lines. Each needs ``product_id``, ``quantity`` and optionally ``sell_mode``."""
    built: List[OrderLine] = []
    minimum = get_settings().min_kit_quantity
    for raw in lines:
        product_id = _field(raw, "product_id")
        product = session.get(Product, product_id) if product_id is not None else None
        if product is None:
            raise NotFound("product", product_id)
        sell_mode = SellMode(_field(raw, "sell_mode") or SellMode.KIT.value)
        quantity = _field(raw, "quantity")
        if quantity is None:
            quantity = _field(raw, "qty_entered")
        if quantity is None:
            raise InvalidQuantity("quantity is required", product_id=product_id)
        amounts = compute_line(product, sell_mode.value, quantity, minimum)
        built.append(
            OrderLine(
                product_id=product.id,
                sell_mode=sell_mode.value,
                qty_entered=amounts.qty_entered,
                unit_price_cents=amounts.unit_price_cents,
                bottle_qty=amounts.bottle_qty,
                line_subtotal_cents=amounts.line_subtotal_cents,
            )
        )
    return built


def recompute_totals(order: SalesOrder) -> None:
    subtotal, deposit = compute_order_totals(
        order.lines, bool(order.deposit_required), order.deposit_percent or 0
    )
    order.subtotal_cents = subtotal
    order.deposit_amount_cents = deposit


def new_order(
    session: Session,
    lines: Iterable[Any],
    *,
    source_channel: str = SourceChannel.STAFF.value,
    status: Optional[str] = None,
    is_internal: bool = False,
    label_required: bool = False,
    deposit_required: bool = False,
    deposit_percent: Optional[int] = None,
    parent_order_id: Optional[int] = None,
    customer_ref: Optional[str] = None,
    notes: Optional[str] = None,
) -> SalesOrder:
    channel = SourceChannel(source_channel)
    if status is None:
        status = (
            OrderStatus.AWAITING_APPROVAL
            if channel in (SourceChannel.CUSTOMER_PORTAL, SourceChannel.ADDON)
            else OrderStatus.DRAFT
        )
    if deposit_required and deposit_percent is None:
        deposit_percent = get_settings().default_deposit_percent

    order = SalesOrder(
        number=next_order_number(session),
        status=OrderStatus(status).value,
        source_channel=channel.value,
        is_internal=bool(is_internal or channel is SourceChannel.INTERNAL),
        label_required=bool(label_required),
        deposit_required=bool(deposit_required),
        deposit_percent=int(deposit_percent or 0) if deposit_required else 0,
        deposit_status=DepositStatus.UNPAID.value,
        parent_order_id=parent_order_id,
        customer_ref=customer_ref,
        notes=notes,
    )
    order.lines = build_lines(session, lines)
    recompute_totals(order)
    session.add(order)
    session.flush()
    return order


@transactional
def create_order(session: Session, lines: Iterable[Any], actor: Optional[str] = None, **fields) -> SalesOrder:
    order = new_order(session, lines, **fields)
    write_audit(session, "order", order.id, "create", after=order_snapshot(order), actor=actor)
    logger.info("order %s created by %s (%s lines)", order.number, actor, len(order.lines))
    return order


@transactional
def replace_lines(session: Session, order_id: int, lines: Iterable[Any], actor: Optional[str] = None) -> SalesOrder:
    """Replace an order's lines as a set and recompute its totals."""
    order = load_order(session, order_id, lock=True)
    if OrderStatus(order.status) not in EDITABLE_STATUSES:
        raise OrderNotEditable(
            f"lines cannot be edited while the order is {order.status}",
            order_id=order.id,
            status=order.status,
        )
    before = order_snapshot(order)
    new_lines = build_lines(session, lines)
    order.lines.clear()
    session.flush()
    order.lines.extend(new_lines)
    recompute_totals(order)
    order.updated_at = _utcnow()
    write_audit(session, "order", order.id, "replace_lines", before=before, after=order_snapshot(order), actor=actor)
    return order


@transactional
def apply_deposit_update(
    session: Session,
    order_id: int,
    actor: Optional[str] = None,
    *,
    deposit_required: Optional[bool] = None,
    deposit_percent: Optional[int] = None,
    deposit_status: Optional[str] = None,
) -> Tuple[SalesOrder, Optional[TransitionResult]]:
    """Change deposit terms. A paid deposit releases a ``deposit_due`` order to the queue."""
    order = load_order(session, order_id, lock=True)
    before = order_snapshot(order)
    if deposit_required is not None:
        order.deposit_required = bool(deposit_required)
        if deposit_required and deposit_percent is None and not order.deposit_percent:
            deposit_percent = get_settings().default_deposit_percent
    if deposit_percent is not None:
        if not 0 <= int(deposit_percent) <= 100:
            raise InvalidQuantity("deposit percent must be between 0 and 100", deposit_percent=deposit_percent)
        order.deposit_percent = int(deposit_percent)
    if deposit_status is not None:
        order.deposit_status = DepositStatus(deposit_status).value
    recompute_totals(order)
    order.updated_at = _utcnow()
    after = order_snapshot(order)
    after["deposit_status"] = order.deposit_status
    write_audit(session, "order", order.id, "update_deposit", before=before, after=after, actor=actor)

    result = None
    if (
        order.status == OrderStatus.DEPOSIT_DUE.value
        and order.deposit_status == DepositStatus.PAID.value
    ):
        result = transition(
            order, OrderStatus.IN_QUEUE, SYSTEM_ACTOR, context=batch_context(session, order.id)
        )
        apply_result(
            session, order, result, SYSTEM_ACTOR, action="auto_status_change", reason="deposit_paid"
        )
        logger.info("order %s released to the queue: deposit paid", order.number)
    return order, result


def batch_context(session: Session, order_id: int) -> TransitionContext:
    statuses = session.execute(
        select(ProductionBatch.status).where(ProductionBatch.order_id == order_id)
    ).scalars().all()
    return TransitionContext(
        has_batches=bool(statuses),
        all_batches_complete=all(s == BatchStatus.COMPLETE.value for s in statuses),
    )


def sync_addon_statuses(session: Session, parent: SalesOrder) -> List[SalesOrder]:
    """Carry the parent's new status onto its add-on orders.

    Approved add-ons follow every status in ``ADDON_SYNC_STATUSES``; pending ones only
    follow a cancellation. Rejected links and add-ons already closed are left alone.
    """
    status = OrderStatus(parent.status)
    if status not in ADDON_SYNC_STATUSES:
        return []
    followers = {AddOnStatus.APPROVED.value}
    if status is OrderStatus.CANCELLED:
        followers.add(AddOnStatus.PENDING.value)

    synced: List[SalesOrder] = []
    links = session.execute(
        select(OrderAddOn).where(OrderAddOn.parent_order_id == parent.id).order_by(OrderAddOn.id)
    ).scalars()
    for link in links:
        addon = link.addon_order
        if link.status not in followers or addon.status == status.value:
            continue
        if OrderStatus(addon.status).is_terminal:
            continue
        old = addon.status
        addon.status = status.value
        addon.pre_hold_status = None
        addon.hold_reason = None
        addon.updated_at = _utcnow()
        write_audit(
            session,
            "order",
            addon.id,
            "addon_status_sync",
            before={"reason": "parent_status_changed", "status": old},
            after={"status": addon.status, "parent_order_id": parent.id},
            actor=SYSTEM_ACTOR,
        )
        logger.info("add-on %s follows order %s to %s", addon.number, parent.number, status.value)
        synced.append(addon)
    return synced


def apply_result(
    session: Session,
    order: SalesOrder,
    result: TransitionResult,
    actor: Optional[str],
    action: str = "transition",
    reason: Optional[str] = None,
) -> None:
    """Write an accepted transition onto the order and its audit trail."""
    if result.noop:
        return
    before = order_snapshot(order)
    if reason:
        before["reason"] = reason
    order.status = result.to_status.value
    order.pre_hold_status = result.pre_hold_status.value if result.pre_hold_status else None
    order.hold_reason = result.hold_reason
    order.updated_at = _utcnow()
    after = order_snapshot(order)
    if result.warnings:
        after["warnings"] = list(result.warnings)
    write_audit(session, "order", order.id, action, before=before, after=after, actor=actor)
    for warning in result.warnings:
        logger.warning("order %s -> %s: %s", order.number, result.to_status.value, warning)
    if order.parent_order_id is None:
        sync_addon_statuses(session, order)


def advance_if_production_done(session: Session, order: SalesOrder) -> Optional[TransitionResult]:
    """Move an in-production order on once every planned batch is complete."""
    if order.status != OrderStatus.IN_PRODUCTION.value:
        return None
    context = batch_context(session, order.id)
    if not context.has_batches or not context.all_batches_complete:
        return None
    target = OrderStatus.IN_LABELING if order.label_required else OrderStatus.IN_PACKING
    result = transition(order, target, SYSTEM_ACTOR, context=context)
    apply_result(session, order, result, SYSTEM_ACTOR)
    return result


@transactional
def apply_transition(
    session: Session,
    order_id: int,
    target: str,
    actor: Optional[str],
    hold_reason: Optional[str] = None,
) -> TransitionResult:
    order = load_order(session, order_id, lock=True)
    result = transition(order, target, actor, hold_reason=hold_reason, context=batch_context(session, order.id))
    apply_result(session, order, result, actor)
    return result


@transactional
def apply_release(session: Session, order_id: int, actor: Optional[str]) -> TransitionResult:
    """Release a hold. Production that finished during the hold advances the order at once."""
    order = load_order(session, order_id, lock=True)
    result = release_hold(order, actor)
    apply_result(session, order, result, actor)
    result.follow_up = advance_if_production_done(session, order)
    if result.follow_up is not None:
        logger.info("order %s advanced to %s on release", order.number, order.status)
    return result


def after_commit(order_id: int, number: Optional[str], result: TransitionResult, ports: Ports | None = None) -> None:
    if result.noop:
        return
    journal.append_order_journal(
        {
            "type": "order.transition",
            "order_id": order_id,
            "order_number": number,
            "actor": result.actor,
            **result.as_dict(),
        }
    )
    dispatch_intents(result.intents, ports)
    if result.follow_up is not None:
        after_commit(order_id, number, result.follow_up, ports)


def transition_order(
    session: Session,
    order_id: int,
    target: str,
    actor: Optional[str],
    hold_reason: Optional[str] = None,
    ports: Ports | None = None,
) -> TransitionResult:
    """Apply a status change, commit it, then journal it and dispatch its intents."""
    result = apply_transition(session, order_id, target, actor, hold_reason)
    order = session.get(SalesOrder, order_id)
    after_commit(order_id, order.number if order else None, result, ports)
    return result


def release_order_hold(
    session: Session, order_id: int, actor: Optional[str], ports: Ports | None = None
) -> TransitionResult:
    result = apply_release(session, order_id, actor)
    order = session.get(SalesOrder, order_id)
    after_commit(order_id, order.number if order else None, result, ports)
    return result


def update_deposit(
    session: Session,
    order_id: int,
    actor: Optional[str] = None,
    *,
    deposit_required: Optional[bool] = None,
    deposit_percent: Optional[int] = None,
    deposit_status: Optional[str] = None,
    ports: Ports | None = None,
) -> Tuple[SalesOrder, Optional[TransitionResult]]:
    """Commit a deposit change, then journal and dispatch any automatic transition."""
    order, result = apply_deposit_update(
        session,
        order_id,
        actor,
        deposit_required=deposit_required,
        deposit_percent=deposit_percent,
        deposit_status=deposit_status,
    )
    if result is not None:
        after_commit(order.id, order.number, result, ports)
    return order, result


@transactional
def hard_delete_order(session: Session, order_id: int, actor: Optional[str] = None) -> dict:
    """Physically remove a draft order that has no batches and no add-ons."""
    order = load_order(session, order_id, lock=True)
    if OrderStatus(order.status) is not OrderStatus.DRAFT:
        raise InvalidTransition(order.status, "deleted", "only draft orders can be deleted")
    batch_count = session.execute(
        select(func.count(ProductionBatch.id)).where(ProductionBatch.order_id == order.id)
    ).scalar_one()
    if batch_count:
        raise InvalidTransition(order.status, "deleted", "order has production batches", batch_count=batch_count)
    child_count = session.execute(
        select(func.count(OrderAddOn.id)).where(OrderAddOn.parent_order_id == order.id)
    ).scalar_one()
    if child_count:
        raise InvalidTransition(order.status, "deleted", "order has add-on orders", addon_count=child_count)

    for link in session.execute(
        select(OrderAddOn).where(OrderAddOn.addon_order_id == order.id)
    ).scalars():
        session.delete(link)
    snapshot = order_snapshot(order)
    snapshot["number"] = order.number
    session.delete(order)
    write_audit(session, "order", order_id, "delete", before=snapshot, actor=actor)
    return {"deleted": order_id, "number": snapshot["number"]}


__all__ = [
    "ADDON_SYNC_STATUSES",
    "advance_if_production_done",
    "after_commit",
    "apply_deposit_update",
    "apply_release",
    "apply_result",
    "apply_transition",
    "batch_context",
    "build_lines",
    "create_order",
    "hard_delete_order",
    "load_order",
    "new_order",
    "order_snapshot",
    "recompute_totals",
    "release_order_hold",
    "replace_lines",
    "sync_addon_statuses",
    "transition_order",
    "update_deposit",
]
