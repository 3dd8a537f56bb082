# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from bottleops.appdb.audit import write_audit
from bottleops.appdb.models import PricingTier, Product
from bottleops.appdb.txn import transactional
from bottleops.errors import InvalidQuantity, NotFound
from bottleops.pricing.resolver import validate_tiers


def product_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "code": product.code,
        "description": product.description,
        "batch_prefix": product.batch_prefix,
        "pack_size": product.pack_size,
        "price_per_kit_cents": product.price_per_kit_cents,
        "price_per_piece_cents": product.price_per_piece_cents,
        "use_tier_pricing": bool(product.use_tier_pricing),
        "active": bool(product.active),
        "tiers": [
            {
                "min_quantity": t.min_quantity,
                "max_quantity": t.max_quantity,
                "price_per_kit_cents": t.price_per_kit_cents,
            }
            for t in product.tiers
        ],
    }


@transactional
def create_product(
    session: Session,
    code: str,
    *,
    pack_size: int = 1,
    price_per_kit_cents: int = 0,
    price_per_piece_cents: int = 0,
    description: Optional[str] = None,
    batch_prefix: Optional[str] = None,
    tiers: Iterable[Any] = (),
    actor: Optional[str] = None,
) -> Product:
    if int(pack_size) < 1:
        raise InvalidQuantity("pack size must be at least 1", code=code, pack_size=pack_size)
    ordered = validate_tiers(list(tiers))
    product = Product(
        code=code.strip(),
        description=description,
        batch_prefix=batch_prefix,
        pack_size=int(pack_size),
        price_per_kit_cents=int(price_per_kit_cents),
        price_per_piece_cents=int(price_per_piece_cents),
        use_tier_pricing=bool(ordered),
    )
    product.tiers = [
        PricingTier(
            min_quantity=t["min_quantity"] if isinstance(t, dict) else t.min_quantity,
            max_quantity=t.get("max_quantity") if isinstance(t, dict) else t.max_quantity,
            price_per_kit_cents=t["price_per_kit_cents"] if isinstance(t, dict) else t.price_per_kit_cents,
        )
        for t in ordered
    ]
    session.add(product)
    session.flush()
    write_audit(session, "product", product.id, "create", after=product_dict(product), actor=actor)
    return product


def get_product(session: Session, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFound("product", product_id)
    return product


__all__ = ["create_product", "get_product", "product_dict"]
