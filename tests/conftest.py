# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Iterable

import pytest
from fastapi.testclient import TestClient

from bottleops.appdb.engine import SessionLocal, configure, init_db, sqlite_url
from bottleops.ports import Ports
from bottleops.settings import get_settings


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    monkeypatch.setenv("BOTTLEOPS_HOME", str(home))
    monkeypatch.setenv("BOTTLEOPS_UNIFIED_LOG", str(tmp_path / "events.jsonl"))
    monkeypatch.setenv("BOTTLEOPS_ORDERS_JOURNAL", str(tmp_path / "journals" / "orders.jsonl"))
    monkeypatch.setenv("BOTTLEOPS_BATCHES_JOURNAL", str(tmp_path / "journals" / "batches.jsonl"))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture()
def engine(tmp_path):
    eng = configure(sqlite_url(tmp_path / "app.db"))
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(engine):
    from bottleops.api.http import create_app

    with TestClient(create_app()) as c:
        yield c


class RecordingPort:
    def __init__(self):
        self.seen = []

    def notify(self, intent):
        self.seen.append(intent)

    def generate(self, intent):
        self.seen.append(intent)


@pytest.fixture()
def ports():
    recorder = RecordingPort()
    return Ports(notifier=recorder, invoicer=recorder)


@pytest.fixture()
def make_product(session):
    from bottleops.pricing.products import create_product

    def _make(code="BTL-100", *, pack_size=1, kit=1000, piece=250, tiers=(), batch_prefix=None):
        return create_product(
            session,
            code,
            pack_size=pack_size,
            price_per_kit_cents=kit,
            price_per_piece_cents=piece,
            tiers=list(tiers),
            batch_prefix=batch_prefix,
        )

    return _make


@pytest.fixture()
def make_order(session):
    from bottleops.orders.service import create_order

    def _make(lines: Iterable[dict], **fields):
        return create_order(session, list(lines), "tester", **fields)

    return _make


@pytest.fixture()
def move(session):
    """Walk an order through a path of statuses."""
    from bottleops.orders.service import apply_transition

    def _move(order_id: int, *targets: str, hold_reason=None):
        result = None
        for target in targets:
            result = apply_transition(session, order_id, target, "tester", hold_reason)
        return result

    return _move


@pytest.fixture()
def order_in_queue(make_product, make_order, move):
    """A 500-bottle order released to production, with its product."""
    product = make_product("GTB", pack_size=10, kit=12000, batch_prefix="GTB")
    order = make_order([{"product_id": product.id, "sell_mode": "kit", "quantity": 50}])
    move(order.id, "in_queue")
    return order
