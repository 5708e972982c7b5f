"""Tests for stock reservation and restoration."""

import asyncio
import logging

import pytest
from fastapi import HTTPException

from utils.inventory import (
    RESERVE,
    RESTORE,
    adjust_stock,
    find_variant_index,
    normalize_attributes,
)


SHIRT_VARIANTS = [
    {
        "attributes": [{"name": "Color", "value": "Red"}, {"name": "Size", "value": "M"}],
        "price_cents": 2500,
        "stock": 5,
    },
    {
        "attributes": [{"name": "Color", "value": "Blue"}, {"name": "Size", "value": "M"}],
        "price_cents": 2500,
        "stock": 2,
    },
]


@pytest.fixture
def seller(make_user):
    return asyncio.run(make_user("seller"))


class TestAttributeMatching:
    def test_order_independent(self):
        a = [{"name": "Color", "value": "Red"}, {"name": "Size", "value": "M"}]
        b = [{"name": "size", "value": " M "}, {"name": "COLOR", "value": "Red"}]
        assert normalize_attributes(a) == normalize_attributes(b)

    def test_values_stay_case_sensitive(self):
        a = [{"name": "Color", "value": "Red"}]
        b = [{"name": "Color", "value": "red"}]
        assert normalize_attributes(a) != normalize_attributes(b)

    def test_find_variant_index(self):
        product = {"variants": SHIRT_VARIANTS}
        assert find_variant_index(product, [{"name": "Size", "value": "M"}, {"name": "Color", "value": "Blue"}]) == 1
        assert find_variant_index(product, [{"name": "Color", "value": "Green"}]) is None


class TestSimpleProduct:
    def test_reserve_then_restore_round_trip(self, db, make_product, seller):
        product = asyncio.run(make_product(seller, stock=10))
        item = {"qty": 3, "selected_attributes": []}

        assert asyncio.run(adjust_stock(db, product, item, RESERVE)) is True
        assert asyncio.run(db.products.find_one({"_id": product["_id"]}))["stock"] == 7

        assert asyncio.run(adjust_stock(db, product, item, RESTORE)) is True
        assert asyncio.run(db.products.find_one({"_id": product["_id"]}))["stock"] == 10

    def test_reserve_more_than_stock_is_rejected(self, db, make_product, seller):
        product = asyncio.run(make_product(seller, name="Lamp", stock=1))

        with pytest.raises(HTTPException) as exc:
            asyncio.run(adjust_stock(db, product, {"qty": 2}, RESERVE))

        assert exc.value.status_code == 400
        assert exc.value.detail == "Out of stock: Lamp"
        assert asyncio.run(db.products.find_one({"_id": product["_id"]}))["stock"] == 1

    def test_unknown_direction(self, db):
        with pytest.raises(ValueError):
            asyncio.run(adjust_stock(db, {"_id": 1}, {"qty": 1}, "sideways"))


class TestVariableProduct:
    def test_reserve_hits_matching_variant_only(self, db, make_product, seller):
        product = asyncio.run(make_product(seller, name="Shirt", price_cents=2500, variants=SHIRT_VARIANTS))
        item = {
            "qty": 2,
            "selected_attributes": [{"name": "size", "value": "M"}, {"name": "color", "value": "Red"}],
        }

        assert asyncio.run(adjust_stock(db, product, item, RESERVE)) is True

        stored = asyncio.run(db.products.find_one({"_id": product["_id"]}))
        assert stored["variants"][0]["stock"] == 3
        assert stored["variants"][1]["stock"] == 2
        assert stored["stock"] == 10

    def test_unmatched_variant_is_a_logged_no_op(self, db, make_product, seller, caplog):
        product = asyncio.run(make_product(seller, name="Shirt", price_cents=2500, variants=SHIRT_VARIANTS))
        item = {"qty": 1, "selected_attributes": [{"name": "Color", "value": "Green"}]}

        with caplog.at_level(logging.WARNING, logger="utils.inventory"):
            assert asyncio.run(adjust_stock(db, product, item, RESERVE)) is False

        assert "VARIANT_NOT_FOUND" in caplog.text
        stored = asyncio.run(db.products.find_one({"_id": product["_id"]}))
        assert [v["stock"] for v in stored["variants"]] == [5, 2]
