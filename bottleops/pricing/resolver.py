# SPDX-License-Identifier: AGPL-3.0-or-later
"""Quantity-tiered unit pricing.

Prices are integer cents. Tiers apply to kit lines only; piece lines always use the
flat per-piece price. A quantity that no tier covers falls back to the flat per-kit
price and is logged as ``pricing.tier_gap_fallback``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy.orm import Session

from bottleops import unilog
from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import PricingTier, Product
from bottleops.appdb.txn import transactional
from bottleops.errors import InvalidQuantity, NotFound, TierOverlap
from bottleops.settings import get_settings
from bottleops.statuses import SellMode

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def clamp_quantity(quantity: int, sell_mode: str = "kit", minimum: Optional[int] = None) -> int:
    """Kit quantities below the minimum order quantity are raised to it, never rejected."""
    if quantity is None or int(quantity) < 1:
        raise InvalidQuantity("quantity must be at least 1", quantity=quantity)
    quantity = int(quantity)
    if SellMode(sell_mode) is SellMode.PIECE:
        return quantity
    if minimum is None:
        minimum = get_settings().min_kit_quantity
    return max(quantity, int(minimum))


def resolve_price(product: Any, quantity: int, sell_mode: str = "kit", minimum: Optional[int] = None) -> int:
    """Unit price for ``quantity``. Kit quantities are priced at their clamped value."""
    if quantity is None or int(quantity) < 1:
        raise InvalidQuantity(
            "quantity must be at least 1", product_id=_field(product, "id"), quantity=quantity
        )

    if SellMode(sell_mode) is SellMode.PIECE:
        return int(_field(product, "price_per_piece_cents", 0) or 0)
    quantity = clamp_quantity(quantity, sell_mode, minimum)

    flat = int(_field(product, "price_per_kit_cents", 0) or 0)
    tiers = list(_field(product, "tiers", None) or [])
    if not _field(product, "use_tier_pricing", False) or not tiers:
        return flat

    for tier in sorted(tiers, key=lambda t: int(_field(t, "min_quantity"))):
        lo = int(_field(tier, "min_quantity"))
        hi = _field(tier, "max_quantity")
        if quantity >= lo and (hi is None or quantity <= int(hi)):
            return int(_field(tier, "price_per_kit_cents"))

    product_id = _field(product, "id")
    logger.warning(
        "tier gap: product=%s quantity=%s not covered, using flat price %s", product_id, quantity, flat
    )
    unilog.write(
        "pricing.tier_gap_fallback",
        product_id=product_id,
        product_code=_field(product, "code"),
        quantity=quantity,
        price_cents=flat,
    )
    return flat


def validate_tiers(tiers: Iterable[Any]) -> List[Any]:
    """Return the tiers sorted by ``min_quantity``; raise ``TierOverlap`` for bad bands."""
    ordered = sorted(tiers, key=lambda t: int(_field(t, "min_quantity")))
    previous = None
    for tier in ordered:
        lo = int(_field(tier, "min_quantity"))
        hi = _field(tier, "max_quantity")
        if lo < 1:
            raise TierOverlap("tier min_quantity must be at least 1", min_quantity=lo)
        if hi is not None and int(hi) < lo:
            raise TierOverlap(
                "tier max_quantity is below its min_quantity", min_quantity=lo, max_quantity=hi
            )
        if int(_field(tier, "price_per_kit_cents")) < 0:
            raise TierOverlap("tier price must not be negative", min_quantity=lo)
        if previous is not None:
            prev_hi = _field(previous, "max_quantity")
            if prev_hi is None or int(prev_hi) >= lo:
                raise TierOverlap(
                    "pricing tiers overlap",
                    first={"min_quantity": _field(previous, "min_quantity"), "max_quantity": prev_hi},
                    second={"min_quantity": lo, "max_quantity": hi},
                )
        previous = tier
    return ordered


@transactional
def set_pricing_tiers(session: Session, product_id: int, tiers: Iterable[Any], actor: str | None = None):
    """Replace a product's tier table. An empty table turns tier pricing off."""
    product = session.get(Product, product_id, with_for_update=True)
    if product is None:
        raise NotFound("product", product_id)

    ordered = validate_tiers(list(tiers))
    before = [
        {"min": t.min_quantity, "max": t.max_quantity, "price": t.price_per_kit_cents}
        for t in product.tiers
    ]
    product.tiers = [
        PricingTier(
            min_quantity=int(_field(t, "min_quantity")),
            max_quantity=None if _field(t, "max_quantity") is None else int(_field(t, "max_quantity")),
            price_per_kit_cents=int(_field(t, "price_per_kit_cents")),
        )
        for t in ordered
    ]
    product.use_tier_pricing = bool(ordered)
    write_audit(
        session,
        "product",
        product.id,
        "set_pricing_tiers",
        before={"tiers": before},
        after={
            "tiers": [
                {"min": t.min_quantity, "max": t.max_quantity, "price": t.price_per_kit_cents}
                for t in product.tiers
            ]
        },
        actor=actor,
    )
    return product


__all__ = ["clamp_quantity", "resolve_price", "set_pricing_tiers", "validate_tiers"]
