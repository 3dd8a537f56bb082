# SPDX-License-Identifier: AGPL-3.0-or-later
"""Add-on orders: supplements created against a parent order.

An add-on is a full order (``source_channel = addon``) linked to its parent by an
``OrderAddOn`` relation. Only approved relations take part in consolidation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import OrderAddOn, SalesOrder
from bottleops.appdb.txn import transactional
from bottleops.errors import AddOnNotAllowed, NotFound
from bottleops.money import percent_of_cents
from bottleops.orders.service import load_order, new_order, order_snapshot
from bottleops.orders.state_machine import SYSTEM_ACTOR, effective_status
from bottleops.settings import get_settings
from bottleops.statuses import ADDON_BLOCKED_STATUSES, AddOnStatus, OrderStatus, SourceChannel

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _load_link(session: Session, addon_id: int) -> OrderAddOn:
    link = session.get(OrderAddOn, addon_id, with_for_update=True)
    if link is None:
        raise NotFound("order_addon", addon_id)
    return link


def _link_dict(link: OrderAddOn) -> dict:
    return {
        "status": link.status,
        "reason": link.reason,
        "approved_by": link.approved_by,
    }


@transactional
def create_addon(
    session: Session,
    parent_id: int,
    lines: Iterable[Any],
    actor: Optional[str] = None,
    reason: Optional[str] = None,
) -> OrderAddOn:
    settings = get_settings()
    parent = load_order(session, parent_id, lock=True)

    if effective_status(parent) in ADDON_BLOCKED_STATUSES:
        raise AddOnNotAllowed(
            f"add-ons are closed once the order is {parent.status}",
            parent_order_id=parent.id,
            status=parent.status,
        )
    if parent.parent_order_id is not None:
        raise AddOnNotAllowed(
            "an add-on order cannot receive add-ons", parent_order_id=parent.id
        )

    addon = new_order(
        session,
        lines,
        source_channel=SourceChannel.ADDON.value,
        status=OrderStatus.AWAITING_APPROVAL.value,
        is_internal=bool(parent.is_internal),
        label_required=bool(parent.label_required),
        parent_order_id=parent.id,
        customer_ref=parent.customer_ref,
    )

    if settings.addon_max_percent > 0:
        limit = percent_of_cents(parent.subtotal_cents, settings.addon_max_percent)
        if addon.subtotal_cents > limit:
            raise AddOnNotAllowed(
                "add-on value exceeds the allowed share of the parent order",
                parent_order_id=parent.id,
                addon_value_cents=addon.subtotal_cents,
                limit_cents=limit,
                max_percent=settings.addon_max_percent,
            )

    link = OrderAddOn(
        parent_order_id=parent.id,
        addon_order_id=addon.id,
        status=AddOnStatus.PENDING.value,
        reason=reason,
        created_by=actor,
    )
    threshold = settings.addon_auto_approve_cents
    if threshold > 0 and addon.subtotal_cents <= threshold:
        link.status = AddOnStatus.APPROVED.value
        link.approved_by = SYSTEM_ACTOR
        link.approved_at = _utcnow()
    session.add(link)
    session.flush()

    write_audit(session, "order", addon.id, "create", after=order_snapshot(addon), actor=actor)
    write_audit(session, "order_addon", link.id, "create", after=_link_dict(link), actor=actor)
    logger.info(
        "add-on %s for order %s created (%s)", addon.number, parent.number, link.status
    )
    return link


def _settle(session: Session, addon_id: int, status: AddOnStatus, actor: Optional[str], reason: Optional[str]) -> OrderAddOn:
    link = _load_link(session, addon_id)
    if link.status != AddOnStatus.PENDING.value:
        raise AddOnNotAllowed(
            f"add-on is already {link.status}", addon_id=link.id, status=link.status
        )
    before = _link_dict(link)
    link.status = status.value
    if reason:
        link.reason = reason
    if status is AddOnStatus.APPROVED:
        link.approved_by = actor
        link.approved_at = _utcnow()
    write_audit(session, "order_addon", link.id, status.value, before=before, after=_link_dict(link), actor=actor)
    return link


@transactional
def approve_addon(session: Session, addon_id: int, actor: Optional[str] = None) -> OrderAddOn:
    return _settle(session, addon_id, AddOnStatus.APPROVED, actor, None)


@transactional
def reject_addon(
    session: Session, addon_id: int, actor: Optional[str] = None, reason: Optional[str] = None
) -> OrderAddOn:
    return _settle(session, addon_id, AddOnStatus.REJECTED, actor, reason)


def list_addons(session: Session, parent_id: int) -> List[Tuple[str, SalesOrder]]:
    """``(relation status, add-on order)`` pairs for a parent, oldest first."""
    rows = session.execute(
        select(OrderAddOn).where(OrderAddOn.parent_order_id == parent_id).order_by(OrderAddOn.id)
    ).scalars()
    return [(link.status, link.addon_order) for link in rows]


__all__ = ["approve_addon", "create_addon", "list_addons", "reject_addon"]
