"""
Shift tests: clock in/out, cash reconciliation, manager close.
"""

from conftest import sale_payload


def _sell_widget(client, headers, widget, paid=2000):
    line = {"product_id": widget.id, "quantity": 1, "price_cents": widget.price_cents}
    resp = client.post("/api/sales", json=sale_payload([line], amount_paid_cents=paid), headers=headers)
    assert resp.status_code == 201
    return resp.json["sale"]


class TestClockInOut:

    def test_clock_in_opens_shift(self, client, cashier_headers, cashier_user, location):
        resp = client.post("/api/shifts/clock-in", json={"starting_cash_cents": 15000}, headers=cashier_headers)
        assert resp.status_code == 201
        shift = resp.json["shift"]
        assert shift["user_id"] == cashier_user.id
        assert shift["location_id"] == location.id
        assert shift["starting_cash_cents"] == 15000
        assert shift["is_closed"] is False

        resp = client.get("/api/shifts/current", headers=cashier_headers)
        assert resp.json["shift"]["id"] == shift["id"]

    def test_second_clock_in_conflicts(self, client, cashier_headers):
        client.post("/api/shifts/clock-in", json={}, headers=cashier_headers)
        resp = client.post("/api/shifts/clock-in", json={}, headers=cashier_headers)
        assert resp.status_code == 409

    def test_negative_starting_cash_rejected(self, client, cashier_headers):
        resp = client.post("/api/shifts/clock-in", json={"starting_cash_cents": -1}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_clock_out_reconciles_drawer(self, client, cashier_headers, products, tax_rate):
        client.post("/api/shifts/clock-in", json={"starting_cash_cents": 10000}, headers=cashier_headers)
        sale = _sell_widget(client, cashier_headers, products["widget"])

        # Drawer is $1.00 short
        counted = 10000 + sale["total_cents"] - 100
        resp = client.post("/api/shifts/clock-out", json={"ending_cash_cents": counted}, headers=cashier_headers)
        assert resp.status_code == 200
        shift = resp.json["shift"]
        assert shift["is_closed"] is True
        assert shift["total_sales_cents"] == sale["total_cents"]
        assert shift["total_transactions"] == 1
        assert shift["expected_cash_cents"] == 10000 + sale["total_cents"]
        assert shift["cash_difference_cents"] == -100
        assert shift["clock_out_at"] is not None

        resp = client.get("/api/shifts/current", headers=cashier_headers)
        assert resp.json["shift"] is None

    def test_clock_out_without_shift(self, client, cashier_headers):
        resp = client.post("/api/shifts/clock-out", json={"ending_cash_cents": 0}, headers=cashier_headers)
        assert resp.status_code == 404

    def test_clock_out_requires_count(self, client, cashier_headers):
        client.post("/api/shifts/clock-in", json={}, headers=cashier_headers)
        resp = client.post("/api/shifts/clock-out", json={}, headers=cashier_headers)
        assert resp.status_code == 400


class TestManagerShiftRoutes:

    def test_list_and_close(self, client, cashier_headers, manager_headers, cashier_user):
        shift_id = client.post("/api/shifts/clock-in", json={}, headers=cashier_headers).json["shift"]["id"]

        resp = client.get("/api/shifts?is_closed=false", headers=manager_headers)
        assert [s["id"] for s in resp.json["items"]] == [shift_id]

        resp = client.post(f"/api/shifts/{shift_id}/close", json={"notes": "Forgot to clock out"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["shift"]["is_closed"] is True
        assert resp.json["shift"]["ending_cash_cents"] is None
        assert resp.json["shift"]["notes"] == "Forgot to clock out"

        resp = client.post(f"/api/shifts/{shift_id}/close", json={}, headers=manager_headers)
        assert resp.status_code == 400

        resp = client.get(f"/api/shifts?user_id={cashier_user.id}&is_closed=true", headers=manager_headers)
        assert resp.json["count"] == 1

    def test_cashier_cannot_list(self, client, cashier_headers):
        assert client.get("/api/shifts", headers=cashier_headers).status_code == 403

    def test_close_unknown_shift(self, client, manager_headers):
        assert client.post("/api/shifts/999/close", json={}, headers=manager_headers).status_code == 404
