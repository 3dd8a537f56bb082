# SPDX-License-Identifier: AGPL-3.0-or-later
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bottleops.api.schemas import ProductIn, TiersIn
from bottleops.appdb.engine import get_session
from bottleops.money import format_cents
from bottleops.pricing.lines import compute_line
from bottleops.pricing.products import create_product, get_product, product_dict
from bottleops.pricing.resolver import set_pricing_tiers
from bottleops.statuses import SellMode

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post("/products", status_code=201)
def add_product(body: ProductIn, db: Session = Depends(get_session)):
    product = create_product(
        db,
        body.code,
        pack_size=body.pack_size,
        price_per_kit_cents=body.price_per_kit_cents,
        price_per_piece_cents=body.price_per_piece_cents,
        description=body.description,
        batch_prefix=body.batch_prefix,
        tiers=[t.model_dump() for t in body.tiers],
        actor=body.actor,
    )
    return product_dict(product)


@router.get("/products/{product_id}")
def read_product(product_id: int, db: Session = Depends(get_session)):
    return product_dict(get_product(db, product_id))


@router.put("/products/{product_id}/tiers")
def replace_tiers(product_id: int, body: TiersIn, db: Session = Depends(get_session)):
    product = set_pricing_tiers(db, product_id, [t.model_dump() for t in body.tiers], body.actor)
    return product_dict(product)


@router.get("/products/{product_id}/price")
def quote_price(
    product_id: int,
    quantity: int = Query(..., ge=1),
    sell_mode: SellMode = Query(SellMode.KIT),
    db: Session = Depends(get_session),
):
    product = get_product(db, product_id)
    line = compute_line(product, sell_mode.value, quantity)
    return {
        "product_id": product.id,
        "sell_mode": sell_mode.value,
        "quantity_requested": quantity,
        "qty_entered": line.qty_entered,
        "unit_price_cents": line.unit_price_cents,
        "bottle_qty": line.bottle_qty,
        "line_subtotal_cents": line.line_subtotal_cents,
        "display": format_cents(line.line_subtotal_cents),
    }
