# SPDX-License-Identifier: AGPL-3.0-or-later
"""Order status state machine.

``ALLOWED_EDGES`` is the single table every transition request is checked against.
Cancellation and holds are handled outside the table:

* any non-terminal status may move to ``cancelled``;
* any non-terminal, non-hold status may move to an ``on_hold_*`` status, which
  records the active status as ``pre_hold_status``;
* a hold may switch to another hold kind (the recorded pre-hold status is kept) or
  be released to exactly its pre-hold status.

``transition`` works on a snapshot and performs no I/O: it returns the new state
plus the side-effect intents the caller should dispatch after committing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from bottleops.errors import InvalidTransition
from bottleops.ports import GENERATE_INVOICE, NOTIFY_CUSTOMER, Intent
from bottleops.statuses import DepositStatus, HOLD_STATUSES, OrderStatus

S = OrderStatus

ALLOWED_EDGES: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.DRAFT: frozenset({S.QUOTED, S.AWAITING_APPROVAL, S.DEPOSIT_DUE, S.IN_QUEUE}),
    S.AWAITING_APPROVAL: frozenset({S.DRAFT, S.QUOTED, S.DEPOSIT_DUE, S.IN_QUEUE}),
    S.QUOTED: frozenset({S.DRAFT, S.DEPOSIT_DUE, S.IN_QUEUE}),
    S.DEPOSIT_DUE: frozenset({S.IN_QUEUE}),
    S.IN_QUEUE: frozenset({S.IN_PRODUCTION}),
    S.IN_PRODUCTION: frozenset({S.IN_LABELING, S.IN_PACKING}),
    S.IN_LABELING: frozenset({S.IN_PACKING}),
    S.IN_PACKING: frozenset({S.PACKED, S.AWAITING_INVOICE, S.READY_TO_STOCK}),
    S.PACKED: frozenset({S.INVOICED, S.AWAITING_INVOICE}),
    S.AWAITING_INVOICE: frozenset({S.INVOICED, S.AWAITING_PAYMENT}),
    S.INVOICED: frozenset({S.PAYMENT_DUE, S.AWAITING_PAYMENT}),
    S.PAYMENT_DUE: frozenset({S.READY_TO_SHIP}),
    S.AWAITING_PAYMENT: frozenset({S.READY_TO_SHIP, S.STOCKED}),
    S.READY_TO_SHIP: frozenset({S.SHIPPED}),
    S.READY_TO_STOCK: frozenset({S.STOCKED}),
    S.STOCKED: frozenset(),
    S.ON_HOLD_CUSTOMER: frozenset(),
    S.ON_HOLD_INTERNAL: frozenset(),
    S.ON_HOLD_MATERIALS: frozenset(),
    S.SHIPPED: frozenset(),
    S.CANCELLED: frozenset(),
}

NOTIFY_ON_ENTER = frozenset(
    {
        S.QUOTED,
        S.IN_PRODUCTION,
        S.IN_PACKING,
        S.PACKED,
        S.SHIPPED,
        S.CANCELLED,
        S.ON_HOLD_CUSTOMER,
    }
)
FINAL_INVOICE_ON_ENTER = frozenset({S.INVOICED, S.AWAITING_INVOICE})

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class TransitionContext:
    """Facts about the order's batches used by the transition guards."""

    has_batches: bool = False
    all_batches_complete: bool = True


@dataclass
class TransitionResult:
    from_status: OrderStatus
    to_status: OrderStatus
    intents: List[Intent] = field(default_factory=list)
    pre_hold_status: Optional[OrderStatus] = None
    hold_reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    noop: bool = False
    actor: Optional[str] = None
    # an automatic transition applied in the same unit of work
    follow_up: Optional["TransitionResult"] = None

    def as_dict(self) -> dict:
        return {
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "pre_hold_status": self.pre_hold_status.value if self.pre_hold_status else None,
            "hold_reason": self.hold_reason,
            "warnings": list(self.warnings),
            "intents": [i.as_dict() for i in self.intents],
            "noop": self.noop,
            "follow_up": self.follow_up.as_dict() if self.follow_up else None,
        }


def _status(value: Any) -> OrderStatus:
    return value if isinstance(value, OrderStatus) else OrderStatus(value)


def allowed_targets(status: Any, pre_hold_status: Any = None) -> FrozenSet[OrderStatus]:
    """Every status reachable in one step from ``status``."""
    current = _status(status)
    if current.is_terminal:
        return frozenset()
    targets = set(ALLOWED_EDGES[current])
    targets.add(S.CANCELLED)
    targets.update(HOLD_STATUSES)
    if current.is_hold:
        targets.discard(current)
        targets &= set(HOLD_STATUSES) | {S.CANCELLED}
        if pre_hold_status:
            targets.add(_status(pre_hold_status))
    return frozenset(targets)


def _check_guards(order: Any, current: OrderStatus, target: OrderStatus, context) -> List[str]:
    is_internal = bool(getattr(order, "is_internal", False))

    if context is not None and target in (S.IN_LABELING, S.IN_PACKING):
        if context.has_batches and not context.all_batches_complete:
            raise InvalidTransition(
                current.value, target.value, "production batches are not complete"
            )
    if target is S.READY_TO_SHIP and is_internal:
        raise InvalidTransition(current.value, target.value, "internal orders are stocked, not shipped")
    if target in (S.READY_TO_STOCK, S.STOCKED) and not is_internal:
        raise InvalidTransition(current.value, target.value, "only internal orders can be stocked")

    warnings: List[str] = []
    if target is S.IN_PRODUCTION and context is not None and not context.has_batches:
        warnings.append("no production batches planned yet")
    if target is S.IN_LABELING and not getattr(order, "label_required", False):
        warnings.append("order does not require labels")
    if (
        current is S.DEPOSIT_DUE
        and target is S.IN_QUEUE
        and getattr(order, "deposit_required", False)
        and getattr(order, "deposit_status", None) != DepositStatus.PAID.value
    ):
        warnings.append("deposit has not been paid")
    return warnings


def _intents_for(order: Any, current: OrderStatus, target: OrderStatus, releasing: bool) -> List[Intent]:
    order_id = getattr(order, "id", None)
    base = {"order_number": getattr(order, "number", None)}
    intents: List[Intent] = []

    # a released hold resumes work already invoiced for
    if not releasing:
        if target is S.DEPOSIT_DUE:
            intents.append(
                Intent(
                    GENERATE_INVOICE,
                    order_id,
                    {
                        **base,
                        "invoice_type": "deposit",
                        "amount_cents": int(getattr(order, "deposit_amount_cents", 0) or 0),
                    },
                )
            )
        if target in FINAL_INVOICE_ON_ENTER and current not in FINAL_INVOICE_ON_ENTER:
            intents.append(
                Intent(
                    GENERATE_INVOICE,
                    order_id,
                    {
                        **base,
                        "invoice_type": "final",
                        "amount_cents": int(getattr(order, "subtotal_cents", 0) or 0),
                    },
                )
            )

    if target in NOTIFY_ON_ENTER and not getattr(order, "is_internal", False):
        intents.append(
            Intent(
                NOTIFY_CUSTOMER,
                order_id,
                {**base, "status": target.value, "from_status": current.value},
            )
        )
    return intents


def transition(
    order: Any,
    target: Any,
    actor: Optional[str],
    hold_reason: Optional[str] = None,
    context: Optional[TransitionContext] = None,
) -> TransitionResult:
    """Validate moving ``order`` to ``target`` and describe the outcome.

    ``order`` is any object exposing ``status`` and ``pre_hold_status`` (plus the
    flags read by the guards). It is not modified.
    """
    current = _status(order.status)
    target = _status(target)
    pre_hold = getattr(order, "pre_hold_status", None)
    pre_hold = _status(pre_hold) if pre_hold else None

    if target is current:
        return TransitionResult(
            from_status=current,
            to_status=current,
            pre_hold_status=pre_hold,
            hold_reason=getattr(order, "hold_reason", None),
            noop=True,
            actor=actor,
        )

    if current.is_terminal:
        raise InvalidTransition(current.value, target.value, f"order is {current.value}")

    releasing = False
    warnings: List[str] = []
    new_pre_hold: Optional[OrderStatus] = None
    new_reason: Optional[str] = None

    if target is S.CANCELLED:
        pass
    elif target.is_hold:
        if not hold_reason or not hold_reason.strip():
            raise InvalidTransition(current.value, target.value, "hold_reason is required")
        new_pre_hold = pre_hold if current.is_hold else current
        new_reason = hold_reason.strip()
    elif current.is_hold:
        if pre_hold is None:
            raise InvalidTransition(current.value, target.value, "no pre-hold status recorded")
        if target is not pre_hold:
            raise InvalidTransition(
                current.value, target.value, f"a hold can only be released to {pre_hold.value}"
            )
        releasing = True
    else:
        if target not in ALLOWED_EDGES[current]:
            raise InvalidTransition(current.value, target.value)
        warnings = _check_guards(order, current, target, context)

    return TransitionResult(
        from_status=current,
        to_status=target,
        intents=_intents_for(order, current, target, releasing),
        pre_hold_status=new_pre_hold,
        hold_reason=new_reason,
        warnings=warnings,
        actor=actor,
    )


def release_hold(order: Any, actor: Optional[str]) -> TransitionResult:
    current = _status(order.status)
    if not current.is_hold:
        raise InvalidTransition(current.value, "release", "order is not on hold")
    if not getattr(order, "pre_hold_status", None):
        raise InvalidTransition(current.value, "release", "no pre-hold status recorded")
    return transition(order, order.pre_hold_status, actor)


def effective_status(order: Any) -> OrderStatus:
    """The status work resumes in: the pre-hold status while on hold."""
    current = _status(order.status)
    if current.is_hold and getattr(order, "pre_hold_status", None):
        return _status(order.pre_hold_status)
    return current


__all__ = [
    "ALLOWED_EDGES",
    "NOTIFY_ON_ENTER",
    "SYSTEM_ACTOR",
    "TransitionContext",
    "TransitionResult",
    "allowed_targets",
    "effective_status",
    "release_hold",
    "transition",
]
