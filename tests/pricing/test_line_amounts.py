# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

from types import SimpleNamespace

import pytest

from bottleops.errors import OrderNotEditable
from bottleops.orders.service import replace_lines
from bottleops.pricing.lines import LineAmounts, compute_line, compute_order_totals


@pytest.fixture()
def six_pack():
    return SimpleNamespace(
        id=7,
        code="SIX",
        pack_size=6,
        price_per_kit_cents=1800,
        price_per_piece_cents=350,
        use_tier_pricing=False,
        tiers=[],
    )


def test_kit_line_is_clamped_to_minimum(six_pack):
    line = compute_line(six_pack, "kit", 3, min_kit_quantity=5)
    assert line == LineAmounts(qty_entered=5, unit_price_cents=1800, bottle_qty=30, line_subtotal_cents=9000)


def test_piece_line_is_not_clamped(six_pack):
    line = compute_line(six_pack, "piece", 3, min_kit_quantity=5)
    assert line == LineAmounts(qty_entered=3, unit_price_cents=350, bottle_qty=3, line_subtotal_cents=1050)


def test_minimum_comes_from_settings(six_pack, monkeypatch):
    from bottleops.settings import get_settings

    monkeypatch.setenv("BOTTLEOPS_MIN_KIT_QUANTITY", "8")
    get_settings.cache_clear()
    assert compute_line(six_pack, "kit", 2).qty_entered == 8


def test_deposit_rounds_half_up():
    lines = [SimpleNamespace(line_subtotal_cents=1001)]
    assert compute_order_totals(lines, True, 50) == (1001, 501)


def test_no_deposit_when_not_required():
    lines = [SimpleNamespace(line_subtotal_cents=4000), SimpleNamespace(line_subtotal_cents=500)]
    assert compute_order_totals(lines, False, 50) == (4500, 0)


def test_subtotal_tracks_lines_after_every_edit(session, make_product, make_order):
    kit = make_product("KIT", pack_size=4, kit=2000)
    loose = make_product("LOOSE", piece=300)
    order = make_order(
        [
            {"product_id": kit.id, "sell_mode": "kit", "quantity": 10},
            {"product_id": loose.id, "sell_mode": "piece", "quantity": 7},
        ],
        deposit_required=True,
    )
    assert order.subtotal_cents == sum(line.line_subtotal_cents for line in order.lines) == 22100
    assert order.deposit_percent == 50
    assert order.deposit_amount_cents == 11050

    order = replace_lines(session, order.id, [{"product_id": loose.id, "sell_mode": "piece", "quantity": 1}])
    assert [line.bottle_qty for line in order.lines] == [1]
    assert order.subtotal_cents == sum(line.line_subtotal_cents for line in order.lines) == 300
    assert order.deposit_amount_cents == 150


def test_lines_frozen_after_quote_phase(session, make_product, make_order, move):
    product = make_product()
    order = make_order([{"product_id": product.id, "quantity": 5}])
    move(order.id, "in_queue")
    with pytest.raises(OrderNotEditable):
        replace_lines(session, order.id, [{"product_id": product.id, "quantity": 9}])
    session.expire_all()
    assert [line.qty_entered for line in order.lines] == [5]
