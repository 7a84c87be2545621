"""
Catalog, customer and health endpoint tests.
"""

from conftest import sale_payload
from pos_server.extensions import db
from pos_server.models import Product, InventoryLog


# =============================================================================
# HEALTH
# =============================================================================


def test_health_is_public(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "ok"
    assert resp.json["checks"]["database"]["status"] == "healthy"
    assert resp.json["timestamp"].endswith("Z")


def test_cors_header_for_allowed_origin(app, client, db_session):
    origin = app.config["CORS_ORIGINS"][0]
    resp = client.get("/health", headers={"Origin": origin})
    assert resp.headers["Access-Control-Allow-Origin"] == origin

    resp = client.get("/health", headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in resp.headers


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductRoutes:

    def test_requires_auth(self, client, products):
        assert client.get("/api/products").status_code == 401
        resp = client.get("/api/products", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_list_without_page_returns_everything(self, client, cashier_headers, products):
        resp = client.get("/api/products", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 3
        assert "pagination" not in resp.json
        assert [p["name"] for p in resp.json["items"]] == ["Gadget", "Gift Wrap", "Widget"]

    def test_pagination_envelope(self, client, cashier_headers, products):
        resp = client.get("/api/products?page=2&limit=2", headers=cashier_headers)
        assert resp.status_code == 200
        assert [p["name"] for p in resp.json["items"]] == ["Widget"]
        assert resp.json["pagination"] == {
            "page": 2,
            "per_page": 2,
            "total": 3,
            "total_pages": 2,
            "has_next": False,
            "has_prev": True,
        }

    def test_filters(self, client, cashier_headers, products, category):
        products["gadget"].is_active = False
        db.session.commit()

        resp = client.get("/api/products?is_active=true", headers=cashier_headers)
        assert {p["sku"] for p in resp.json["items"]} == {"WID-001", "SVC-001"}

        resp = client.get("/api/products?search=wid", headers=cashier_headers)
        assert [p["sku"] for p in resp.json["items"]] == ["WID-001"]

        resp = client.get(f"/api/products?category_id={category.id}", headers=cashier_headers)
        assert [p["category_name"] for p in resp.json["items"]] == ["Beverages"]

    def test_bad_query_params_rejected(self, client, cashier_headers, products):
        assert client.get("/api/products?page=0", headers=cashier_headers).status_code == 400
        assert client.get("/api/products?is_active=maybe", headers=cashier_headers).status_code == 400
        assert client.get("/api/products?limit=1.5", headers=cashier_headers).status_code == 400

    def test_get_by_id_and_barcode(self, client, cashier_headers, products):
        widget = products["widget"]
        resp = client.get(f"/api/products/{widget.id}", headers=cashier_headers)
        assert resp.json["product"]["sku"] == "WID-001"

        resp = client.get("/api/products/barcode/222222", headers=cashier_headers)
        assert resp.json["product"]["sku"] == "GAD-001"

        assert client.get("/api/products/barcode/000000", headers=cashier_headers).status_code == 404
        assert client.get("/api/products/99999", headers=cashier_headers).status_code == 404

    def test_low_stock(self, client, cashier_headers, products):
        resp = client.get("/api/products/low-stock", headers=cashier_headers)
        # Gadget 3 <= 5, Widget 10 <= 10, Gift Wrap untracked
        assert [p["sku"] for p in resp.json["items"]] == ["GAD-001", "WID-001"]


class TestAdjustInventory:

    def test_manager_adjusts_stock(self, client, manager_headers, manager_user, products):
        widget = products["widget"]
        resp = client.post(
            f"/api/products/{widget.id}/adjust-inventory",
            json={"quantity_delta": -4, "reason": "Damaged in storage"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["product"]["stock_quantity"] == 6
        log = resp.json["inventory_log"]
        assert log["type"] == "ADJUSTMENT"
        assert (log["quantity"], log["previous_qty"], log["new_qty"]) == (-4, 10, 6)
        assert log["user_id"] == manager_user.id

        resp = client.get(f"/api/products/{widget.id}/inventory-logs", headers=manager_headers)
        assert resp.json["count"] == 1

    def test_cannot_go_negative(self, client, manager_headers, products):
        gadget = products["gadget"]
        resp = client.post(
            f"/api/products/{gadget.id}/adjust-inventory",
            json={"quantity_delta": -4, "reason": "Shrink"},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert db.session.get(Product, gadget.id).stock_quantity == 3
        assert db.session.query(InventoryLog).count() == 0

    def test_untracked_product_rejected(self, client, manager_headers, products):
        resp = client.post(
            f"/api/products/{products['service'].id}/adjust-inventory",
            json={"quantity_delta": 5, "reason": "Count"},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_reason_required(self, client, manager_headers, products):
        resp = client.post(
            f"/api/products/{products['widget'].id}/adjust-inventory",
            json={"quantity_delta": 5},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_cashier_forbidden(self, client, cashier_headers, products):
        resp = client.post(
            f"/api/products/{products['widget'].id}/adjust-inventory",
            json={"quantity_delta": 5, "reason": "Count"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403
        assert resp.json["required_roles"] == ["ADMIN", "MANAGER"]


# =============================================================================
# CUSTOMERS
# =============================================================================


class TestCustomerRoutes:

    def test_list_and_search(self, client, cashier_headers, customer):
        resp = client.get("/api/customers", headers=cashier_headers)
        assert [c["last_name"] for c in resp.json["items"]] == ["Reyes"]

        resp = client.get("/api/customers?search=nobody", headers=cashier_headers)
        assert resp.json["count"] == 0

    def test_lookup_by_phone(self, client, cashier_headers, customer):
        resp = client.get("/api/customers/phone/5550100", headers=cashier_headers)
        assert resp.json["customer"]["id"] == customer.id
        assert client.get("/api/customers/phone/5559999", headers=cashier_headers).status_code == 404

    def test_history(self, client, cashier_headers, customer, products, tax_rate):
        widget = products["widget"]
        line = {"product_id": widget.id, "quantity": 1, "price_cents": widget.price_cents}
        client.post(
            "/api/sales",
            json=sale_payload([line], amount_paid_cents=2000, customer_id=customer.id),
            headers=cashier_headers,
        )

        resp = client.get(f"/api/customers/{customer.id}/history", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["customer"]["visit_count"] == 1
        assert resp.json["items"][0]["total_cents"] == 1083

    def test_unknown_customer(self, client, cashier_headers, db_session):
        assert client.get("/api/customers/404", headers=cashier_headers).status_code == 404
