"""
HTTP surface tests.

Verifies:
- Service results map to status codes (201 / 400 / 404 / 409)
- Error bodies carry error_code and message
- Order, settlement, pricing and inventory endpoints round through the services
"""

import pytest


def _sale(client, product, quantity=1, **extra):
    body = {"lines": [{"product_id": product.id, "quantity": quantity}], **extra}
    return client.post("/api/orders/sales", json=body)


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session, make_product):
        make_product()
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["products"] == 1

    def test_version(self, client):
        resp = client.get("/api/version")
        assert resp.status_code == 200
        assert "api_version" in resp.get_json()


# =============================================================================
# ORDERS
# =============================================================================


class TestOrders:

    def test_create_sale_returns_201(self, client, db_session, make_product):
        product = make_product(price=100)
        resp = _sale(client, product, 2)
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["status"] == "PENDING"
        assert data["total"] == 200

    def test_unknown_product_is_404(self, client, db_session):
        resp = client.post("/api/orders/sales", json={"lines": [{"product_id": 9999, "quantity": 1}]})
        assert resp.status_code == 404
        body = resp.get_json()
        assert body["success"] is False
        assert body["error_code"] == "NOT_FOUND"

    @pytest.mark.parametrize(
        "body",
        [
            None,
            {"lines": "not-a-list"},
            {"lines": [{"product_id": 1, "quantity": 1.5}]},
            {"lines": [{"product_id": 1, "quantity": True}]},
        ],
    )
    def test_malformed_body_is_400(self, client, db_session, body):
        resp = client.post("/api/orders/sales", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "INVALID_REQUEST"

    def test_expired_price_is_400(self, client, db_session, make_product, make_customer):
        product = make_product(price=100)
        customer = make_customer()
        resp = _sale(client, product, 1, customer_id=customer.id, lines=[
            {"product_id": product.id, "quantity": 1, "price": 0},
        ])
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "PRICE_EXPIRED"

    def test_status_flow(self, client, db_session, make_product):
        product = make_product(price=100, stock=3)
        order = _sale(client, product, 1, paid_amount=100).get_json()["data"]

        resp = client.post(f"/api/orders/{order['id']}/status", json={"status": "COMPLETED"})
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "INVALID_STATUS_TRANSITION"

        assert client.post(f"/api/orders/{order['id']}/status", json={"status": "CONFIRMED"}).status_code == 200
        resp = client.post(f"/api/orders/{order['id']}/status", json={"status": "COMPLETED"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "COMPLETED"

        summary = client.get(f"/api/inventory/products/{product.id}/summary").get_json()["data"]
        assert summary["cached_stock"] == 2

    def test_purchase_and_listing(self, client, db_session, make_product, make_supplier):
        product = make_product()
        supplier = make_supplier()
        resp = client.post("/api/orders/purchases", json={
            "supplier_id": supplier.id,
            "lines": [{"product_id": product.id, "quantity": 4, "price": 25}],
            "shipping_fee": 10,
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["total"] == 110

        listed = client.get("/api/orders?type=PURCHASE").get_json()["data"]
        assert [o["total"] for o in listed] == [110]
        assert client.get("/api/orders/9999").status_code == 404


# =============================================================================
# FINANCE
# =============================================================================


class TestFinance:

    def test_settlement(self, client, db_session, make_customer):
        customer = make_customer(debt=100)
        resp = client.post("/api/finance/settlements", json={
            "party_type": "customer",
            "counterparty_id": customer.id,
            "amount": 40,
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["debt"] == 60

        cash = client.get(f"/api/finance/cash?customer_id={customer.id}").get_json()["data"]
        assert [(c["kind"], c["amount"]) for c in cash] == [("DEBT_COLLECTION", 40)]

    def test_settlement_validation(self, client, db_session, make_customer):
        customer = make_customer(debt=100)
        resp = client.post("/api/finance/settlements", json={
            "party_type": "CUSTOMER",
            "counterparty_id": customer.id,
            "amount": 0,
        })
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "INVALID_AMOUNT"

        resp = client.post("/api/finance/settlements", json={
            "party_type": "CUSTOMER",
            "counterparty_id": 9999,
            "amount": 10,
        })
        assert resp.status_code == 404

    def test_manual_cash_and_stats(self, client, db_session):
        assert client.post("/api/finance/cash", json={"kind": "INCOME", "amount": 500}).status_code == 201
        assert client.post("/api/finance/cash", json={"kind": "EXPENSE", "amount": 120}).status_code == 201
        assert client.post("/api/finance/cash", json={"kind": "DEBT_PAYMENT", "amount": 1}).status_code == 400

        stats = client.get("/api/finance/stats").get_json()["data"]
        assert stats["cash_on_hand"] == 380

    def test_debt_audit_and_recalculate(self, client, db_session, make_supplier):
        supplier = make_supplier(debt=40)

        audit = client.get(f"/api/finance/debts/supplier/{supplier.id}").get_json()["data"]
        assert audit["drift"] == 40

        resp = client.post(f"/api/finance/debts/supplier/{supplier.id}/recalculate")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["debt"] == 0

        debtors = client.get("/api/finance/debtors").get_json()["data"]
        assert debtors["suppliers"] == []


# =============================================================================
# PRICING
# =============================================================================


class TestPricing:

    def test_quote(self, client, db_session, make_product):
        product = make_product(price=120, sale_unit="thung", sale_ratio=12)
        resp = client.get(f"/api/pricing/quote?product_id={product.id}&quantity=3")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["unit_price"] == 120
        assert data["source"] == "RETAIL"
        assert data["sale_unit_price"] == 1440

    def test_quote_needs_product(self, client, db_session):
        assert client.get("/api/pricing/quote").status_code == 400
        assert client.get("/api/pricing/quote?product_id=9999").status_code == 404

    def test_create_entry_conflict_is_409(self, client, db_session, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        body = {
            "customer_id": customer.id,
            "product_id": product.id,
            "price": 95,
            "valid_from": "2026-01-01",
            "valid_to": "2099-12-31T00:00:00Z",
        }
        assert client.post("/api/pricing/entries", json=body).status_code == 201

        resp = client.post("/api/pricing/entries", json={**body, "price": 90})
        assert resp.status_code == 409
        assert resp.get_json()["error_code"] == "CONFLICT"

        resp = client.post("/api/pricing/entries", json={**body, "price": 90, "mode": "replace"})
        assert resp.status_code == 201
        assert resp.get_json()["data"]["price"] == 90

    def test_bad_window_is_400(self, client, db_session, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        resp = client.post("/api/pricing/entries", json={
            "customer_id": customer.id,
            "product_id": product.id,
            "price": 95,
            "valid_to": "not a date",
        })
        assert resp.status_code == 400


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventory:

    def test_movement_and_history(self, client, db_session, make_product):
        product = make_product()
        resp = client.post("/api/inventory/movements", json={
            "product_id": product.id,
            "kind": "in",
            "quantity": 6,
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["stock"] == 6

        resp = client.post("/api/inventory/movements", json={
            "product_id": product.id,
            "kind": "DAMAGED",
            "quantity": -1,
        })
        assert resp.status_code == 400

        rows = client.get(f"/api/inventory/products/{product.id}/movements").get_json()["data"]
        assert [r["quantity"] for r in rows] == [6]

    def test_verify(self, client, db_session, make_product):
        product = make_product(stock=2)
        report = client.get("/api/inventory/verify").get_json()["data"]
        assert [m["product_id"] for m in report["mismatches"]] == [product.id]

        fixed = client.get("/api/inventory/verify?fix=true").get_json()["data"]
        assert fixed["fixed"] == 1


# =============================================================================
# PROMOTIONS
# =============================================================================


class TestPromotions:

    def _body(self, product, **overrides):
        body = {
            "name": "Tet sale",
            "start_date": "2026-01-01T00:00:00Z",
            "end_date": "2099-01-01T00:00:00Z",
            "products": [{"product_id": product.id, "tiers": [{"min_quantity": 5, "price": 80}]}],
        }
        body.update(overrides)
        return body

    def test_create_update_toggle_delete(self, client, db_session, make_product):
        product = make_product(price=100)

        resp = client.post("/api/promotions", json=self._body(product))
        assert resp.status_code == 201
        promo = resp.get_json()["data"]
        assert promo["products"][0]["tiers"][0]["price"] == 80

        resp = client.put(f"/api/promotions/{promo['id']}", json={
            "products": [{"product_id": product.id, "tiers": [{"min_quantity": 3, "price": 75}]}],
        })
        assert resp.status_code == 200
        assert [t["min_quantity"] for t in resp.get_json()["data"]["products"][0]["tiers"]] == [3]

        resp = client.post(f"/api/promotions/{promo['id']}/active", json={"is_active": False})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["is_active"] is False
        assert client.get("/api/promotions?active_only=true").get_json()["data"] == []

        assert client.delete(f"/api/promotions/{promo['id']}").status_code == 200
        assert client.get(f"/api/promotions/{promo['id']}").status_code == 404

    @pytest.mark.parametrize(
        "overrides",
        [
            {"is_active": "false"},
            {"name": ""},
            {"end_date": "2025-01-01"},
            {"products": "rice"},
        ],
    )
    def test_invalid_promotion_is_400(self, client, db_session, make_product, overrides):
        product = make_product()
        resp = client.post("/api/promotions", json=self._body(product, **overrides))
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "INVALID_REQUEST"
        assert client.get("/api/promotions").get_json()["data"] == []

    def test_missing_fields_and_unknown_ids(self, client, db_session, make_product):
        product = make_product()
        assert client.post("/api/promotions", json={"name": "x"}).status_code == 400

        resp = client.post("/api/promotions", json=self._body(product, products=[{"product_id": 9999}]))
        assert resp.status_code == 404

        assert client.put("/api/promotions/9999", json={"name": "x"}).status_code == 404
        assert client.post("/api/promotions/9999/active", json={"is_active": True}).status_code == 404
        assert client.delete("/api/promotions/9999").status_code == 404

    def test_boolean_tier_quantity_is_400(self, client, db_session, make_product):
        product = make_product()
        body = self._body(product, products=[
            {"product_id": product.id, "tiers": [{"min_quantity": True, "price": 80}]},
        ])
        resp = client.post("/api/promotions", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error_code"] == "INVALID_REQUEST"

    def test_toggle_requires_boolean(self, client, db_session, make_product):
        product = make_product()
        promo = client.post("/api/promotions", json=self._body(product)).get_json()["data"]
        resp = client.post(f"/api/promotions/{promo['id']}/active", json={"is_active": "no"})
        assert resp.status_code == 400


# =============================================================================
# CORS
# =============================================================================


class TestCors:

    def test_no_headers_by_default(self, client):
        resp = client.get("/api/version", headers={"Origin": "http://localhost:5173"})
        assert "Access-Control-Allow-Origin" not in resp.headers

    def test_configured_origin_is_echoed(self, app, client):
        app.config["CORS_ALLOWED_ORIGINS"] = ["https://shop.example"]
        try:
            allowed = client.get("/api/version", headers={"Origin": "https://shop.example"})
            other = client.get("/api/version", headers={"Origin": "https://evil.example"})
        finally:
            app.config["CORS_ALLOWED_ORIGINS"] = []

        assert allowed.headers["Access-Control-Allow-Origin"] == "https://shop.example"
        assert "Access-Control-Allow-Origin" not in other.headers
