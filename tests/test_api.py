"""Tests for the HTTP surface."""

import asyncio

import pytest


def run(coro):
    return asyncio.run(coro)


BANK = {
    "account_holder_name": "Sam Seller",
    "account_number": "000111222333",
    "ifsc_code": "ABCD0001234",
    "bank_name": "First Bank",
}


@pytest.fixture
def catalog(make_product, actors):
    seller = actors["seller"]
    return {
        "phone": run(make_product(seller, name="Phone", price_cents=10000, stock=10)),
        "case": run(make_product(seller, name="Case", price_cents=5000, stock=5)),
    }


@pytest.fixture
def placed_order(api, auth, actors, catalog):
    response = api.post(
        "/api/orders",
        json={
            "order_items": [
                {"product": str(catalog["phone"]["_id"]), "qty": 2},
                {"product": str(catalog["case"]["_id"]), "qty": 1},
            ],
            "shipping_address": {"city": "Springfield"},
        },
        headers=auth(actors["buyer"]),
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, api):
        response = api.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestOrders:
    def test_place_order(self, placed_order, actors):
        order = placed_order["order"]
        assert placed_order["message"] == "Order placed successfully"
        assert order["user_id"] == str(actors["buyer"]["_id"])
        assert order["total_price"] == 250.0
        assert order["is_paid"] is True
        assert "id" in order and "_id" not in order
        assert placed_order["commission"]["admin_commission"] == 5.0
        assert placed_order["commission"]["seller_earnings"] == 245.0
        assert [i["seller_earning"] for i in placed_order["commission"]["items"]] == [196.0, 49.0]

    def test_place_order_with_body_user(self, api, actors, catalog):
        response = api.post(
            "/api/orders",
            json={
                "order_items": [{"product": str(catalog["case"]["_id"]), "qty": 1}],
                "user": str(actors["buyer"]["_id"]),
            },
        )
        assert response.status_code == 201
        assert response.json()["order"]["user_id"] == str(actors["buyer"]["_id"])

    def test_place_order_without_items(self, api, auth, actors):
        response = api.post("/api/orders", json={"order_items": []}, headers=auth(actors["buyer"]))
        assert response.status_code == 400
        assert response.json()["detail"] == "No order items"

    def test_invalid_token(self, api, catalog):
        response = api.post(
            "/api/orders",
            json={"order_items": [{"product": str(catalog["case"]["_id"]), "qty": 1}]},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401

    def test_pay_already_paid_order(self, api, auth, actors, placed_order):
        order_id = placed_order["order"]["id"]
        response = api.put(
            f"/api/orders/{order_id}/pay",
            json={"id": "PAY-X", "status": "COMPLETED"},
            headers=auth(actors["buyer"]),
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Order was already paid"

    def test_cancel_refunds_store_credit(self, api, auth, actors, placed_order):
        order_id = placed_order["order"]["id"]
        response = api.post(
            "/api/orders/updateStatus",
            json={"order_id": order_id, "status": "cancelled"},
            headers=auth(actors["admin"]),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Order status updated to cancelled"
        assert body["order"]["refund_amount"] == 250.0

        balance = api.get("/api/credit/balance", headers=auth(actors["buyer"])).json()
        assert balance["balance"] == 250.0

        history = api.get("/api/credit/transactions", headers=auth(actors["buyer"])).json()
        assert history["total"] == 1
        assert history["transactions"][0]["reason"] == "order_cancelled"
        assert history["transactions"][0]["balance_after"] == 250.0

    def test_my_orders_and_timeline(self, api, auth, actors, placed_order):
        mine = api.get("/api/orders/myorders", headers=auth(actors["buyer"])).json()
        assert mine["total"] == 1
        assert mine["orders"][0]["id"] == placed_order["order"]["id"]

        timeline = api.get(
            f"/api/orders/{placed_order['order']['id']}/timeline",
            headers=auth(actors["seller"]),
        ).json()
        assert [e["event"] for e in timeline["events"]] == ["ORDER_CREATED"]

    def test_order_hidden_from_other_buyers(self, api, auth, make_user, placed_order):
        stranger = run(make_user("buyer"))
        response = api.get(f"/api/orders/{placed_order['order']['id']}", headers=auth(stranger))
        assert response.status_code == 403

    def test_seller_orders(self, api, auth, actors, placed_order):
        response = api.get(f"/api/orders/seller/{actors['seller']['_id']}", headers=auth(actors["seller"]))
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_catalog_with_string_seller_id(self, api, auth, db, actors):
        seller_id = actors["seller"]["_id"]
        product = {"name": "Cable", "seller_id": str(seller_id), "price_cents": 1000, "stock": 3, "variants": []}
        run(db.products.insert_one(product))

        response = api.post(
            "/api/orders",
            json={"order_items": [{"product": str(product["_id"]), "qty": 1}]},
            headers=auth(actors["buyer"]),
        )
        assert response.status_code == 201
        assert response.json()["order"].get("needs_review") is not True

        orders = api.get(f"/api/orders/seller/{seller_id}", headers=auth(actors["seller"])).json()
        assert orders["total"] == 1

        stats = api.get(f"/api/wallet/seller-stats/{seller_id}", headers=auth(actors["seller"])).json()
        assert stats["orders"] == 1
        assert stats["wallet"]["balance"] == 9.8

    def test_invalid_order_id(self, api, auth, actors):
        response = api.get("/api/orders/not-an-id", headers=auth(actors["buyer"]))
        assert response.status_code == 400


class TestWallet:
    def test_seller_wallet(self, api, auth, actors, placed_order):
        response = api.get(f"/api/wallet/seller/{actors['seller']['_id']}", headers=auth(actors["seller"]))
        assert response.status_code == 200
        body = response.json()
        assert body["wallet"]["balance"] == 245.0
        assert body["wallet"]["this_month_earnings"] == 245.0
        assert len(body["transactions"]) == 2
        assert {t["wallet_type"] for t in body["transactions"]} == {"Seller"}

    def test_wallet_hidden_from_other_sellers(self, api, auth, actors, make_user, placed_order):
        other = run(make_user("seller"))
        response = api.get(f"/api/wallet/seller/{actors['seller']['_id']}", headers=auth(other))
        assert response.status_code == 403

    def test_withdraw_and_approve(self, api, auth, actors, placed_order):
        response = api.post(
            "/api/wallet/withdraw",
            json={"amount": "100.00", "bank_details": BANK},
            headers=auth(actors["seller"]),
        )
        assert response.status_code == 201
        request = response.json()["request"]
        assert request["amount"] == 100.0
        assert request["bank_details"]["bank_account_masked"] == "********2333"
        assert "bank_account_encrypted" not in request["bank_details"]

        pending = api.get("/api/wallet/admin/withdrawals/pending", headers=auth(actors["admin"])).json()
        assert [w["_id"] for w in pending["withdrawals"]] == [request["_id"]]

        forbidden = api.put(
            f"/api/wallet/admin/withdrawals/{request['_id']}/approve",
            headers=auth(actors["seller"]),
        )
        assert forbidden.status_code == 403

        approved = api.put(
            f"/api/wallet/admin/withdrawals/{request['_id']}/approve",
            headers=auth(actors["admin"]),
        )
        assert approved.status_code == 200
        body = approved.json()
        assert body["request"]["status"] == "approved"
        assert body["wallet"]["balance"] == 145.0
        assert body["wallet"]["pending_withdrawals"] == 0.0
        assert body["payout"]["account_number"] == "000111222333"

        reconcile = api.get("/api/wallet/reconcile", headers=auth(actors["admin"])).json()
        assert reconcile["in_sync"] is True

    def test_withdraw_more_than_balance(self, api, auth, actors, placed_order):
        response = api.post(
            "/api/wallet/withdraw",
            json={"amount": "245.01", "bank_details": BANK},
            headers=auth(actors["seller"]),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient balance. Available: 245.00"

    def test_reject_with_remarks(self, api, auth, actors, placed_order):
        request = api.post(
            "/api/wallet/withdraw",
            json={"amount": "45.00", "bank_details": BANK},
            headers=auth(actors["seller"]),
        ).json()["request"]

        response = api.put(
            f"/api/wallet/admin/withdrawals/{request['_id']}/reject",
            json={"remarks": "Bank details unverified"},
            headers=auth(actors["admin"]),
        )
        assert response.status_code == 200
        assert response.json()["request"]["remarks"] == "Bank details unverified"

        history = api.get(
            f"/api/wallet/seller/withdrawals/{actors['seller']['_id']}",
            headers=auth(actors["seller"]),
        ).json()
        assert [w["status"] for w in history["withdrawals"]] == ["rejected"]

    def test_admin_adjustment(self, api, auth, actors, placed_order):
        response = api.post(
            "/api/wallet/admin/seller-adjustment",
            json={
                "seller_id": str(actors["seller"]["_id"]),
                "type": "debit",
                "amount": "5.00",
                "description": "Chargeback fee",
            },
            headers=auth(actors["admin"]),
        )
        assert response.status_code == 200
        assert response.json()["wallet"]["balance"] == 240.0

        too_much = api.post(
            "/api/wallet/admin/seller-adjustment",
            json={
                "seller_id": str(actors["seller"]["_id"]),
                "type": "debit",
                "amount": "1000.00",
                "description": "Chargeback fee",
            },
            headers=auth(actors["admin"]),
        )
        assert too_much.status_code == 400

        reconcile = api.get("/api/wallet/reconcile", headers=auth(actors["admin"])).json()
        assert reconcile["in_sync"] is True

    def test_admin_credit_is_not_earnings(self, api, auth, actors, placed_order):
        response = api.post(
            "/api/wallet/admin/seller-adjustment",
            json={
                "seller_id": str(actors["seller"]["_id"]),
                "type": "credit",
                "amount": "10.00",
                "description": "Shipping reimbursement",
            },
            headers=auth(actors["admin"]),
        )
        assert response.status_code == 200
        wallet = response.json()["wallet"]
        assert wallet["balance"] == 255.0
        assert wallet["total_earnings"] == 245.0
        assert wallet["this_month_earnings"] == 245.0

        reconcile = api.get("/api/wallet/reconcile", headers=auth(actors["admin"])).json()
        assert reconcile["in_sync"] is True

    def test_stats(self, api, auth, actors, placed_order):
        seller_stats = api.get(
            f"/api/wallet/seller-stats/{actors['seller']['_id']}",
            headers=auth(actors["seller"]),
        ).json()
        assert seller_stats["ledger"]["credits"] == 245.0
        assert seller_stats["orders"] == 1

        admin_stats = api.get("/api/wallet/admin-stats", headers=auth(actors["admin"])).json()
        assert admin_stats["commission_earned"] == 5.0
        assert admin_stats["seller_wallets"]["balance"] == 245.0
        assert admin_stats["orders"] == 1

    def test_admin_balance(self, api, auth, actors, placed_order):
        response = api.get("/api/wallet/admin/balance", headers=auth(actors["admin"]))
        assert response.json()["wallet"]["balance"] == 5.0

    def test_transactions_filtered(self, api, auth, actors, placed_order):
        response = api.get(
            "/api/wallet/transactions",
            params={"wallet_type": "Admin"},
            headers=auth(actors["admin"]),
        )
        body = response.json()
        assert body["total"] == 2
        assert sorted(t["amount"] for t in body["transactions"]) == [1.0, 4.0]


class TestStoreCredit:
    def test_admin_adjust(self, api, auth, actors):
        response = api.post(
            "/api/credit/admin/adjust",
            json={
                "user_id": str(actors["buyer"]["_id"]),
                "type": "credit",
                "amount": "12.50",
                "description": "Goodwill",
            },
            headers=auth(actors["admin"]),
        )
        assert response.status_code == 200
        assert response.json()["balance"] == 12.5

    def test_adjust_never_below_zero(self, api, auth, actors):
        response = api.post(
            "/api/credit/admin/adjust",
            json={
                "user_id": str(actors["buyer"]["_id"]),
                "type": "debit",
                "amount": "1.00",
                "description": "Correction",
            },
            headers=auth(actors["admin"]),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Insufficient store credit. Available: 0.00"

    def test_buyers_cannot_adjust(self, api, auth, actors):
        response = api.post(
            "/api/credit/admin/adjust",
            json={
                "user_id": str(actors["buyer"]["_id"]),
                "type": "credit",
                "amount": "1.00",
                "description": "Self-service",
            },
            headers=auth(actors["buyer"]),
        )
        assert response.status_code == 403
