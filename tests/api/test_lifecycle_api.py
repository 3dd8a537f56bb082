# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

import pytest

from bottleops.api.errors import status_for
from bottleops.errors import ConcurrentModification, InvalidTransition, NotFound, OverAllocation


@pytest.fixture()
def product_id(client):
    resp = client.post(
        "/app/pricing/products",
        json={
            "code": "amb-500",
            "pack_size": 12,
            "price_per_kit_cents": 4800,
            "price_per_piece_cents": 450,
            "tiers": [
                {"min_quantity": 1, "max_quantity": 9, "price_per_kit_cents": 4800},
                {"min_quantity": 10, "price_per_kit_cents": 4200},
            ],
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def _new_order(client, product_id, quantity=10, **fields):
    resp = client.post(
        "/app/orders",
        json={"lines": [{"product_id": product_id, "quantity": quantity}], **fields},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _transition(client, order_id, target, **body):
    return client.post(f"/app/orders/{order_id}/transition", json={"target": target, **body})


def test_price_quote_uses_tiers(client, product_id):
    resp = client.get(f"/app/pricing/products/{product_id}/price", params={"quantity": 12})
    assert resp.status_code == 200
    body = resp.json()
    assert body["unit_price_cents"] == 4200
    assert body["bottle_qty"] == 144
    assert body["line_subtotal_cents"] == 50400


def test_invalid_transition_envelope(client, product_id):
    order = _new_order(client, product_id)
    resp = _transition(client, order["id"], "shipped")
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "invalid_transition"
    assert detail["fields"]["current"] == "draft"
    assert detail["fields"]["attempted"] == "shipped"


def test_unknown_order_is_404(client):
    resp = client.get("/app/orders/9999")
    assert resp.status_code == 404
    assert resp.json()["detail"]["error"] == "not_found"


def test_bad_payload_is_validation_error(client, product_id):
    resp = client.post("/app/orders", json={"lines": [{"product_id": product_id, "quantity": 0}]})
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "validation_error"
    assert "lines.0.quantity" in detail["fields"]

    order = _new_order(client, product_id)
    assert _transition(client, order["id"], "teleported").status_code == 400


def test_order_to_packing_over_http(client, product_id):
    order = _new_order(client, product_id, quantity=10)
    assert order["number"].startswith("SO-")
    assert order["subtotal_cents"] == 42000
    assert "quoted" in client.get(f"/app/orders/{order['id']}").json()["allowed_targets"]

    assert _transition(client, order["id"], "in_queue").json()["to_status"] == "in_queue"
    moved = _transition(client, order["id"], "in_production").json()
    assert moved["warnings"] == ["no production batches planned yet"]

    planned = client.post(f"/app/production/orders/{order['id']}/plan", json={"quick": True})
    assert planned.status_code == 201, planned.text
    (batch,) = planned.json()["batches"]
    assert batch["qty_planned"] == 120
    assert batch["number"].startswith("AMB-500-")

    resp = client.post(f"/app/production/orders/{order['id']}/plan", json={"quick": True})
    assert resp.status_code == 400

    last = None
    for kind in ("produce", "bottle_cap", "label", "pack"):
        for _ in range(2):
            last = client.post(f"/app/production/batches/{batch['id']}/advance", json={"kind": kind, "operator": "dana"})
            assert last.status_code == 200, last.text
    body = last.json()
    assert body["batch_completed"]
    assert body["order_transition"]["to_status"] == "in_packing"

    consolidated = client.get(f"/app/orders/{order['id']}/consolidated").json()
    assert consolidated["total_value_cents"] == 42000
    assert consolidated["total_bottles"] == 120

    audit = client.get(f"/app/orders/{order['id']}/audit").json()["entries"]
    assert audit[-1]["actor"] == "system"


def test_addon_flow_over_http(client, product_id):
    order = _new_order(client, product_id, quantity=10)
    _transition(client, order["id"], "in_queue")

    resp = client.post(
        f"/app/orders/{order['id']}/addons",
        json={"lines": [{"product_id": product_id, "quantity": 5}], "reason": "extra samples"},
    )
    assert resp.status_code == 201, resp.text
    link = resp.json()
    assert link["status"] == "pending"
    assert link["addon_order"]["status"] == "awaiting_approval"

    before = client.get(f"/app/orders/{order['id']}/consolidated").json()
    assert before["total_value_cents"] == 42000

    approved = client.post(f"/app/orders/addons/{link['id']}/approve", json={"actor": "manager"})
    assert approved.json()["status"] == "approved"
    after = client.get(f"/app/orders/{order['id']}/consolidated").json()
    assert after["total_value_cents"] == 42000 + 24000


def test_hold_and_release_over_http(client, product_id):
    order = _new_order(client, product_id)
    _transition(client, order["id"], "in_queue")

    missing_reason = _transition(client, order["id"], "on_hold_customer")
    assert missing_reason.status_code == 400

    held = _transition(client, order["id"], "on_hold_customer", hold_reason="artwork pending")
    assert held.json()["order"]["pre_hold_status"] == "in_queue"

    released = client.post(f"/app/orders/{order['id']}/release", json={"actor": "alice"})
    assert released.status_code == 200
    assert released.json()["order"]["status"] == "in_queue"


def test_paid_deposit_queues_order_over_http(client, product_id):
    order = _new_order(client, product_id, deposit_required=True)
    assert _transition(client, order["id"], "deposit_due").status_code == 200

    resp = client.patch(f"/app/orders/{order['id']}/deposit", json={"deposit_status": "paid", "actor": "alice"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "in_queue"
    assert body["auto_transition"]["from_status"] == "deposit_due"
    assert body["auto_transition"]["to_status"] == "in_queue"


def test_error_status_mapping():
    assert status_for(NotFound("sales_order", 1)) == 404
    assert status_for(ConcurrentModification("stale")) == 409
    assert status_for(InvalidTransition("draft", "shipped")) == 400
    assert status_for(OverAllocation(1, 10, 5, 20)) == 400


def test_health(client):
    assert client.get("/health").json()["ok"] is True
