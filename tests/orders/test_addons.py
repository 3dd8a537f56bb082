# SPDX-License-Identifier: AGPL-3.0-or-later
from __future__ import annotations

import json

import pytest
from sqlalchemy import select

from bottleops.appdb.models import AuditLog
from bottleops.errors import AddOnNotAllowed
from bottleops.orders.addons import approve_addon, create_addon, list_addons, reject_addon
from bottleops.settings import get_settings


@pytest.fixture()
def parent(make_product, make_order, move):
    product = make_product("BASE", kit=10000)
    order = make_order([{"product_id": product.id, "quantity": 5}])
    move(order.id, "in_queue")
    return order


@pytest.fixture()
def extra(make_product):
    return make_product("EXTRA", kit=3000)


def test_addon_starts_pending(session, parent, extra):
    link = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice", "forgot gift packs")

    assert link.status == "pending"
    assert link.reason == "forgot gift packs"
    addon = link.addon_order
    assert addon.status == "awaiting_approval"
    assert addon.source_channel == "addon"
    assert addon.parent_order_id == parent.id
    assert addon.subtotal_cents == 15000
    assert list_addons(session, parent.id) == [("pending", addon)]


def test_addon_blocked_once_packing_starts(session, parent, extra, move):
    move(parent.id, "in_production", "in_packing")
    with pytest.raises(AddOnNotAllowed):
        create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    assert list_addons(session, parent.id) == []


def test_addon_on_hold_uses_pre_hold_status(session, parent, extra, move):
    move(parent.id, "on_hold_customer", hold_reason="confirming colours")
    link = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    assert link.status == "pending"


def test_addon_value_limit(session, parent, extra, monkeypatch):
    monkeypatch.setenv("BOTTLEOPS_ADDON_MAX_PERCENT", "20")
    get_settings.cache_clear()
    with pytest.raises(AddOnNotAllowed) as exc:
        create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    assert exc.value.context["limit_cents"] == 10000
    assert exc.value.context["addon_value_cents"] == 15000


def test_small_addons_auto_approve(session, parent, extra, monkeypatch):
    monkeypatch.setenv("BOTTLEOPS_ADDON_AUTO_APPROVE_CENTS", "15000")
    get_settings.cache_clear()
    link = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    assert link.status == "approved"
    assert link.approved_by == "system"


def test_approve_and_reject_settle_once(session, parent, extra):
    first = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    second = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")

    approved = approve_addon(session, first.id, "manager")
    assert approved.status == "approved"
    assert approved.approved_by == "manager"
    assert approved.approved_at is not None

    rejected = reject_addon(session, second.id, "manager", "duplicate request")
    assert rejected.status == "rejected"
    assert rejected.reason == "duplicate request"

    with pytest.raises(AddOnNotAllowed):
        approve_addon(session, second.id, "manager")


def test_addons_follow_parent_status(session, parent, extra, move):
    kept = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    waiting = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    approve_addon(session, kept.id, "manager")

    move(parent.id, "in_production", "in_packing")
    session.expire_all()
    assert kept.addon_order.status == "in_packing"
    assert waiting.addon_order.status == "awaiting_approval"

    rows = session.execute(
        select(AuditLog)
        .where(AuditLog.entity == "order", AuditLog.entity_id == kept.addon_order_id)
        .order_by(AuditLog.id)
    ).scalars().all()
    assert [r.action for r in rows] == ["create", "addon_status_sync"]
    assert json.loads(rows[-1].before) == {"reason": "parent_status_changed", "status": "awaiting_approval"}
    assert json.loads(rows[-1].after) == {"status": "in_packing", "parent_order_id": parent.id}
    assert rows[-1].actor == "system"

    move(parent.id, "cancelled")
    session.expire_all()
    assert kept.addon_order.status == "cancelled"
    assert waiting.addon_order.status == "cancelled"


def test_rejected_addons_do_not_follow(session, parent, extra, move):
    link = create_addon(session, parent.id, [{"product_id": extra.id, "quantity": 5}], "alice")
    reject_addon(session, link.id, "manager", "out of stock")

    move(parent.id, "cancelled")
    session.expire_all()
    assert link.addon_order.status == "awaiting_approval"
