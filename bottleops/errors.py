# SPDX-License-Identifier: AGPL-3.0-or-later
"""Typed engine errors.

Every error carries a stable ``code`` plus a ``context`` dict with the ids and the
attempted/current values a caller needs to render an actionable message.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    code = "engine_error"

    def __init__(self, message: str | None = None, **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "fields": self.context or None}


class InvalidTransition(EngineError):
    code = "invalid_transition"

    def __init__(self, current: str, attempted: str, reason: str | None = None, **context: Any):
        message = f"cannot move order from {current} to {attempted}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, current=current, attempted=attempted, reason=reason, **context)
        self.current = current
        self.attempted = attempted
        self.reason = reason


class OverAllocation(EngineError):
    code = "over_allocation"

    def __init__(self, line_id: int, requested: int, remaining: int, bottle_qty: int):
        super().__init__(
            f"line {line_id}: requested {requested} exceeds remaining {remaining}",
            line_id=line_id,
            requested=requested,
            remaining=remaining,
            bottle_qty=bottle_qty,
        )
        self.line_id = line_id
        self.requested = requested
        self.remaining = remaining


class ConservationViolation(EngineError):
    code = "conservation_violation"


class InvalidBatchState(EngineError):
    code = "invalid_batch_state"


class ConcurrentModification(EngineError):
    code = "concurrent_modification"


class InvalidQuantity(EngineError, ValueError):
    code = "invalid_quantity"


class TierOverlap(EngineError):
    code = "tier_overlap"


class NotFound(EngineError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class OrderNotEditable(EngineError):
    code = "order_not_editable"


class AddOnNotAllowed(EngineError):
    code = "addon_not_allowed"


class ConsolidationNotAllowed(EngineError):
    code = "consolidation_not_allowed"


__all__ = [
    "AddOnNotAllowed",
    "ConcurrentModification",
    "ConservationViolation",
    "ConsolidationNotAllowed",
    "EngineError",
    "InvalidBatchState",
    "InvalidQuantity",
    "InvalidTransition",
    "NotFound",
    "OrderNotEditable",
    "OverAllocation",
    "TierOverlap",
]
