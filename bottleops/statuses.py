# SPDX-License-Identifier: AGPL-3.0-or-later
"""Closed status vocabularies shared by the engine and the database layer."""

from __future__ import annotations

import enum


class OrderStatus(str, enum.Enum):
    DRAFT = "draft"
    AWAITING_APPROVAL = "awaiting_approval"
    QUOTED = "quoted"
    DEPOSIT_DUE = "deposit_due"
    IN_QUEUE = "in_queue"
    IN_PRODUCTION = "in_production"
    IN_LABELING = "in_labeling"
    IN_PACKING = "in_packing"
    PACKED = "packed"
    AWAITING_INVOICE = "awaiting_invoice"
    INVOICED = "invoiced"
    PAYMENT_DUE = "payment_due"
    AWAITING_PAYMENT = "awaiting_payment"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    READY_TO_STOCK = "ready_to_stock"
    STOCKED = "stocked"
    ON_HOLD_CUSTOMER = "on_hold_customer"
    ON_HOLD_INTERNAL = "on_hold_internal"
    ON_HOLD_MATERIALS = "on_hold_materials"
    CANCELLED = "cancelled"

    @property
    def is_hold(self) -> bool:
        return self in HOLD_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


HOLD_STATUSES = frozenset(
    {OrderStatus.ON_HOLD_CUSTOMER, OrderStatus.ON_HOLD_INTERNAL, OrderStatus.ON_HOLD_MATERIALS}
)
TERMINAL_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED})

# Lines may only be replaced while the order is still being priced.
EDITABLE_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.QUOTED})

# Batches may be planned once the order has been released to production.
PLANNABLE_STATUSES = frozenset({OrderStatus.IN_QUEUE, OrderStatus.IN_PRODUCTION})

FULFILLMENT_STATUSES = frozenset(
    {
        OrderStatus.IN_QUEUE,
        OrderStatus.IN_PRODUCTION,
        OrderStatus.IN_LABELING,
        OrderStatus.IN_PACKING,
        OrderStatus.PACKED,
        OrderStatus.AWAITING_INVOICE,
        OrderStatus.INVOICED,
        OrderStatus.PAYMENT_DUE,
        OrderStatus.AWAITING_PAYMENT,
        OrderStatus.READY_TO_SHIP,
        OrderStatus.SHIPPED,
        OrderStatus.READY_TO_STOCK,
        OrderStatus.STOCKED,
    }
)

# Packing has started (or the order is closed): no more add-ons.
ADDON_BLOCKED_STATUSES = frozenset(
    {
        OrderStatus.IN_PACKING,
        OrderStatus.PACKED,
        OrderStatus.AWAITING_INVOICE,
        OrderStatus.INVOICED,
        OrderStatus.PAYMENT_DUE,
        OrderStatus.AWAITING_PAYMENT,
        OrderStatus.READY_TO_SHIP,
        OrderStatus.SHIPPED,
        OrderStatus.READY_TO_STOCK,
        OrderStatus.STOCKED,
        OrderStatus.CANCELLED,
    }
)


class DepositStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class SellMode(str, enum.Enum):
    KIT = "kit"
    PIECE = "piece"


class SourceChannel(str, enum.Enum):
    STAFF = "staff"
    CUSTOMER_PORTAL = "customer_portal"
    ADDON = "addon"
    INTERNAL = "internal"


class BatchStatus(str, enum.Enum):
    QUEUED = "queued"
    WIP = "wip"
    HOLD = "hold"
    COMPLETE = "complete"


class StepKind(str, enum.Enum):
    PRODUCE = "produce"
    BOTTLE_CAP = "bottle_cap"
    LABEL = "label"
    PACK = "pack"


STEP_ORDER: tuple[StepKind, ...] = (
    StepKind.PRODUCE,
    StepKind.BOTTLE_CAP,
    StepKind.LABEL,
    StepKind.PACK,
)


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    WIP = "wip"
    DONE = "done"


class AddOnStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


__all__ = [
    "ADDON_BLOCKED_STATUSES",
    "AddOnStatus",
    "BatchStatus",
    "DepositStatus",
    "EDITABLE_STATUSES",
    "FULFILLMENT_STATUSES",
    "HOLD_STATUSES",
    "OrderStatus",
    "PLANNABLE_STATUSES",
    "STEP_ORDER",
    "SellMode",
    "SourceChannel",
    "StepKind",
    "StepStatus",
    "TERMINAL_STATUSES",
]
