# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from bottleops.money import percent_of_cents
from bottleops.pricing.resolver import clamp_quantity, resolve_price
from bottleops.statuses import SellMode


@dataclass(frozen=True)
class LineAmounts:
    qty_entered: int
    unit_price_cents: int
    bottle_qty: int
    line_subtotal_cents: int


def compute_line(
    product: Any, sell_mode: str, quantity: int, min_kit_quantity: Optional[int] = None
) -> LineAmounts:
    """Price one order line. Kit quantities are clamped up to the minimum first."""
    mode = SellMode(sell_mode)
    qty = clamp_quantity(quantity, mode.value, min_kit_quantity)
    unit_price = resolve_price(product, qty, mode.value, min_kit_quantity)
    if mode is SellMode.KIT:
        bottles = qty * int(getattr(product, "pack_size", 1) or 1)
    else:
        bottles = qty
    return LineAmounts(
        qty_entered=qty,
        unit_price_cents=unit_price,
        bottle_qty=bottles,
        line_subtotal_cents=qty * unit_price,
    )


def compute_order_totals(
    lines: Iterable[Any], deposit_required: bool, deposit_percent: int | float
) -> Tuple[int, int]:
    """Return ``(subtotal_cents, deposit_amount_cents)``; the deposit rounds half-up."""
    subtotal = sum(int(line.line_subtotal_cents) for line in lines)
    if not deposit_required:
        return subtotal, 0
    return subtotal, min(subtotal, percent_of_cents(subtotal, deposit_percent))


__all__ = ["LineAmounts", "compute_line", "compute_order_totals"]
