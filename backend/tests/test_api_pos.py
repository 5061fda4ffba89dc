# Overview: Pytest coverage for the HTTP API flow from signup to refund.

"""
API flow tests.

Drives the JSON API the way the admin SPA and the register do: signup,
catalogue setup, receiving stock, selling, reporting and refunding.
Error responses carry {"error", "code"} with a stable code.
"""

import pytest

from conftest import PASSWORD, auth_headers, headers_for


@pytest.fixture
def owner(client, db_session):
    resp = client.post(
        "/api/auth/register",
        json={
            "business_name": "Epicerie du Port",
            "email": "owner@port.tn",
            "password": PASSWORD,
            "first_name": "Mohamed",
            "last_name": "Ben Ali",
        },
    )
    assert resp.status_code == 201, resp.json
    return resp.json


@pytest.fixture
def owner_headers(owner):
    return auth_headers(owner["token"])


@pytest.fixture
def olive_oil(client, owner_headers):
    resp = client.post(
        "/api/products",
        json={
            "name": "Olive Oil",
            "name_ar": "زيت زيتون",
            "sku": "oil-1",
            "barcode": "6191234500028",
            "base_unit": "liter",
            "unit_type": "volume",
            "price": 14.0,
            "cost": 10.0,
            "stock_quantity": 10,
            "min_stock": 2,
            "unit_conversions": {"ml": 0.001, "bottle": 0.75},
            "price_by_unit": [{"unit": "bottle", "price": 10.0}],
        },
        headers=owner_headers,
    )
    assert resp.status_code == 201, resp.json
    return resp.json["product"]


class TestSignup:
    def test_register_creates_trial_tenant(self, owner):
        assert owner["tenant"]["subscription_status"] == "trial"
        assert owner["tenant"]["trial_ends_at"] is not None
        assert owner["user"]["role"] == "tenant_admin"
        assert "MANAGE_STAFF" in owner["permissions"]
        assert owner["token"]

    def test_duplicate_email(self, client, owner):
        resp = client.post(
            "/api/auth/register",
            json={
                "business_name": "Copycat",
                "email": "OWNER@port.tn",
                "password": PASSWORD,
                "first_name": "A",
                "last_name": "B",
            },
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "CONFLICT"

    def test_weak_password(self, client, db_session):
        resp = client.post(
            "/api/auth/register",
            json={
                "business_name": "Weak",
                "email": "weak@port.tn",
                "password": "password",
                "first_name": "A",
                "last_name": "B",
            },
        )
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_login_and_me(self, client, owner):
        resp = client.post("/api/auth/login", json={"email": "owner@port.tn", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["tenant_id"] == owner["tenant"]["id"]

        me = client.get("/api/auth/me", headers=auth_headers(resp.json["token"]))
        assert me.status_code == 200
        assert me.json["user"]["email"] == "owner@port.tn"

    def test_bad_password(self, client, owner):
        resp = client.post("/api/auth/login", json={"email": "owner@port.tn", "password": "Wrong123!!"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, owner, owner_headers):
        assert client.post("/api/auth/logout", headers=owner_headers).status_code == 200
        assert client.get("/api/auth/me", headers=owner_headers).status_code == 401


class TestCatalogue:
    def test_product_units(self, olive_oil):
        assert olive_oil["sku"] == "OIL-1"
        assert olive_oil["allowed_units"] == ["liter", "bottle", "ml"]
        assert olive_oil["stock"]["quantity"] == 10
        assert olive_oil["tax_rate"] == 19.0

    def test_price_for_unknown_unit_is_rejected(self, client, owner_headers):
        resp = client.post(
            "/api/products",
            json={
                "name": "Bad", "sku": "BAD", "price": 1,
                "price_by_unit": [{"unit": "crate", "price": 10}],
            },
            headers=owner_headers,
        )
        assert resp.status_code == 400

    def test_stock_is_not_editable(self, client, owner_headers, olive_oil):
        resp = client.put(
            f"/api/products/{olive_oil['id']}",
            json={"stock_quantity": 500},
            headers=owner_headers,
        )
        assert resp.status_code == 400

    def test_base_unit_is_frozen_once_stocked(self, client, owner_headers, olive_oil):
        resp = client.put(
            f"/api/products/{olive_oil['id']}",
            json={"base_unit": "ml"},
            headers=owner_headers,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "CONFLICT"

        product = client.get(f"/api/products/{olive_oil['id']}", headers=owner_headers).json["product"]
        assert product["base_unit"] == "liter"
        assert product["stock"]["quantity"] == 10

    def test_search_by_barcode(self, client, owner_headers, olive_oil):
        resp = client.get("/api/pos/products/search?barcode=6191234500028", headers=owner_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["items"]] == [olive_oil["id"]]

    def test_low_stock_listing(self, client, owner_headers, olive_oil):
        resp = client.post(
            "/api/inventory/stock-out",
            json={"product_id": olive_oil["id"], "quantity": 8.5, "reason": "damage"},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        assert resp.json["product"]["is_low_stock"] is True

        low = client.get("/api/products/low-stock", headers=owner_headers)
        assert [p["id"] for p in low.json["items"]] == [olive_oil["id"]]


class TestSellingFlow:
    def test_sell_report_refund(self, client, owner_headers, olive_oil):
        received = client.post(
            "/api/inventory/stock-in",
            json={"product_id": olive_oil["id"], "quantity": 4, "unit": "bottle", "reference": "PO-7"},
            headers=owner_headers,
        )
        assert received.status_code == 201
        assert received.json["product"]["stock"]["quantity"] == pytest.approx(13)

        sold = client.post(
            "/api/pos/sale",
            json={
                "items": [
                    {"product_id": olive_oil["id"], "quantity": 2, "unit": "bottle"},
                    {"product_id": olive_oil["id"], "quantity": 500, "unit": "ml"},
                ],
                "payments": [{"method": "cash", "amount": 40}],
            },
            headers=owner_headers,
        )
        assert sold.status_code == 201, sold.json
        sale = sold.json["sale"]
        # 2 bottles at the fixed 10.0 + 0.5 l at 14.0, 19% VAT
        assert sale["subtotal"] == pytest.approx(27.0)
        assert sale["tax_amount"] == pytest.approx(5.13)
        assert sale["total"] == pytest.approx(32.13)
        assert sale["change"] == pytest.approx(7.87)
        assert len(sale["items"]) == 2

        product = client.get(f"/api/products/{olive_oil['id']}", headers=owner_headers).json["product"]
        assert product["stock"]["quantity"] == pytest.approx(11)

        listing = client.get("/api/sales", headers=owner_headers)
        assert listing.json["pagination"]["total"] == 1
        assert listing.json["items"][0]["sale_number"] == "SL-000001"

        summary = client.get("/api/pos/daily-summary", headers=owner_headers).json
        assert summary["total_sales"] == 1
        assert summary["cash_amount"] == pytest.approx(40)

        report = client.get("/api/analytics/sales", headers=owner_headers).json
        assert report["summary"]["total_sales"] == 1
        assert report["top_products"][0]["quantity_sold"] == pytest.approx(2)

        refunded = client.post(f"/api/sales/{sale['id']}/refund", json={"reason": "leaking"}, headers=owner_headers)
        assert refunded.status_code == 200
        assert refunded.json["sale"]["status"] == "refunded"

        product = client.get(f"/api/products/{olive_oil['id']}", headers=owner_headers).json["product"]
        assert product["stock"]["quantity"] == pytest.approx(13)

        movements = client.get(
            f"/api/inventory/movements?product_id={olive_oil['id']}", headers=owner_headers
        ).json["items"]
        assert [m["type"] for m in movements][:2] == ["return", "return"]

        again = client.post(f"/api/sales/{sale['id']}/refund", json={}, headers=owner_headers)
        assert again.status_code == 409
        assert again.json["code"] == "INVALID_SALE_STATE"

    def test_held_order_flow(self, client, owner_headers, olive_oil):
        held = client.post(
            "/api/pos/hold-order",
            json={"items": [{"product_id": olive_oil["id"], "quantity": 1}]},
            headers=owner_headers,
        )
        assert held.status_code == 201
        sale_id = held.json["sale"]["id"]

        listed = client.get("/api/pos/held-orders", headers=owner_headers).json
        assert listed["count"] == 1

        assert client.post(f"/api/pos/retrieve-order/{sale_id}", headers=owner_headers).status_code == 200
        done = client.post(
            "/api/pos/sale",
            json={"held_sale_id": sale_id, "payments": [{"method": "card", "amount": 16.66}]},
            headers=owner_headers,
        )
        assert done.status_code == 201
        assert done.json["sale"]["id"] == sale_id
        assert done.json["sale"]["status"] == "completed"


class TestErrorBodies:
    def test_empty_cart(self, client, owner_headers):
        resp = client.post("/api/pos/sale", json={"items": []}, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_unknown_unit(self, client, owner_headers, olive_oil):
        resp = client.post(
            "/api/pos/sale",
            json={"items": [{"product_id": olive_oil["id"], "quantity": 1, "unit": "gallon"}]},
            headers=owner_headers,
        )
        assert resp.status_code == 400
        assert resp.json["code"] == "UNKNOWN_UNIT"
        assert resp.json["details"]["unit"] == "gallon"

    def test_insufficient_stock(self, client, owner_headers, olive_oil):
        resp = client.post(
            "/api/pos/sale",
            json={
                "items": [{"product_id": olive_oil["id"], "quantity": 11}],
                "payments": [{"method": "cash", "amount": 1000}],
            },
            headers=owner_headers,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "INSUFFICIENT_STOCK"
        assert resp.json["details"]["available_base_quantity"] == 10

    def test_missing_product(self, client, owner_headers):
        resp = client.post(
            "/api/pos/sale",
            json={"items": [{"product_id": 424242, "quantity": 1}]},
            headers=owner_headers,
        )
        assert resp.status_code == 404
        assert resp.json["code"] == "PRODUCT_NOT_FOUND"

    def test_credit_limit(self, client, owner_headers, olive_oil):
        customer = client.post(
            "/api/customers",
            json={
                "first_name": "Nour", "last_name": "Hamdi", "phone": "+21620333444",
                "allow_credit": True, "credit_limit": 5,
            },
            headers=owner_headers,
        ).json["customer"]

        resp = client.post(
            "/api/pos/sale",
            json={
                "items": [{"product_id": olive_oil["id"], "quantity": 1}],
                "payments": [{"method": "cash", "amount": 1}],
                "customer_id": customer["id"],
            },
            headers=owner_headers,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "CREDIT_LIMIT_EXCEEDED"

        product = client.get(f"/api/products/{olive_oil['id']}", headers=owner_headers).json["product"]
        assert product["stock"]["quantity"] == 10

    def test_credit_not_allowed(self, client, owner_headers, olive_oil):
        customer = client.post(
            "/api/customers",
            json={
                "first_name": "Sami", "last_name": "Trabelsi", "phone": "+21620555666",
                "allow_credit": False,
            },
            headers=owner_headers,
        ).json["customer"]

        resp = client.post(
            "/api/pos/sale",
            json={
                "items": [{"product_id": olive_oil["id"], "quantity": 1}],
                "payments": [{"method": "cash", "amount": 10}],
                "customer_id": customer["id"],
            },
            headers=owner_headers,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "CREDIT_NOT_ALLOWED"

        product = client.get(f"/api/products/{olive_oil['id']}", headers=owner_headers).json["product"]
        assert product["stock"]["quantity"] == 10
        sales = client.get("/api/sales", headers=owner_headers).json
        assert sales["items"] == []


class TestHealth:
    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"

    def test_cashier_headers_helper(self, client, cashier_a):
        assert client.get("/api/auth/me", headers=headers_for(cashier_a)).status_code == 200
