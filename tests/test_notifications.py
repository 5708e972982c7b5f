"""Tests for the best-effort order notification."""

import asyncio
import logging

import pytest
from bson import ObjectId

from config import env
from utils.notifications import OrderNotVisibleError, create_order_notification, notify_order_placed


def run(coro):
    return asyncio.run(coro)


def test_notification_for_visible_order(db):
    order_id, user_id = ObjectId(), ObjectId()
    run(db.orders.insert_one({"_id": order_id, "order_number": "ORD-ABC", "total_price_cents": 1999}))

    note = run(create_order_notification(db, order_id, user_id))

    assert note["title"] == "Order Placed Successfully"
    assert "ORD-ABC" in note["message"]
    assert "19.99" in note["message"]
    assert run(db.notifications.count_documents({"user_id": user_id})) == 1


def test_gives_up_after_bounded_retries(db, monkeypatch):
    monkeypatch.setattr(env, "NOTIFICATION_MAX_RETRIES", 3)
    lookups = []
    original = db.orders.find_one

    async def counting_find_one(query, *args, **kwargs):
        lookups.append(query)
        return await original(query, *args, **kwargs)

    monkeypatch.setattr(db.orders, "find_one", counting_find_one)

    with pytest.raises(OrderNotVisibleError):
        run(create_order_notification(db, ObjectId(), ObjectId()))

    assert len(lookups) == 3


def test_failure_is_swallowed_and_logged(db, caplog):
    with caplog.at_level(logging.ERROR, logger="utils.notifications"):
        assert run(notify_order_placed(db, ObjectId(), ObjectId())) is False

    assert "ORDER_NOTIFICATION_FAILED" in caplog.text
    assert run(db.notifications.count_documents({})) == 0
