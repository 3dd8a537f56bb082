# SPDX-License-Identifier: AGPL-3.0-or-later
from .lines import LineAmounts, compute_line, compute_order_totals
from .resolver import clamp_quantity, resolve_price, set_pricing_tiers, validate_tiers

__all__ = [
    "LineAmounts",
    "clamp_quantity",
    "compute_line",
    "compute_order_totals",
    "resolve_price",
    "set_pricing_tiers",
    "validate_tiers",
]
