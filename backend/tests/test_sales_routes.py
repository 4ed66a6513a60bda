"""
Sales and cancellation API tests.

Verifies:
- Unauthenticated requests return 401
- Service errors map to their HTTP status and error code
- STAFF is steered from direct cancel to the request path
- Denials are written to the security event log
"""

import pytest

from vacadmin.models import SecurityEvent


def _start(client, headers, **body):
    resp = client.post("/api/sales", json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["order"]


def _confirmed_order(client, headers, code="HEPA-01", qty=3):
    order = _start(client, headers)
    resp = client.post(f"/api/sales/{order['id']}/items", json={"product": code, "quantity": qty}, headers=headers)
    assert resp.status_code == 201
    resp = client.post(f"/api/sales/{order['id']}/confirm", json={"payment_method": "CASH"}, headers=headers)
    assert resp.status_code == 200
    return resp.get_json()["order"]


class TestAuthRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/sales/1"),
            ("POST", "/api/sales/1/items"),
            ("POST", "/api/sales/1/confirm"),
            ("POST", "/api/sales/1/cancel"),
            ("GET", "/api/cancellation-requests"),
            ("POST", "/api/cancellation-requests/1/approve"),
            ("GET", "/api/products/lookup"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/sales", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestSaleFlow:
    def test_full_draft_to_confirm(self, client, staff_headers, filter_product):
        order = _start(client, staff_headers, customer_name="Walk-in")

        resp = client.post(f"/api/sales/{order['id']}/scan", json={"code": "8850001000011"}, headers=staff_headers)
        assert resp.status_code == 201
        resp = client.post(f"/api/sales/{order['id']}/items", json={"product": "HEPA-01", "quantity": 2}, headers=staff_headers)
        body = resp.get_json()["order"]
        assert len(body["lines"]) == 1
        assert body["lines"][0]["quantity"] == 3

        resp = client.post(f"/api/sales/{order['id']}/confirm", json={}, headers=staff_headers)
        assert resp.status_code == 200
        body = resp.get_json()["order"]
        assert body["status"] == "CONFIRMED"
        assert body["total_cost_cents"] == 3000
        assert body["total_price_cents"] == 6000
        assert body["profit_cents"] == 3000

        resp = client.get(f"/api/products/{filter_product.id}", headers=staff_headers)
        assert resp.get_json()["product"]["stock_qty"] == 2

    def test_update_and_remove_line(self, client, staff_headers, filter_product, brush_product):
        order = _start(client, staff_headers)
        client.post(f"/api/sales/{order['id']}/items", json={"product": "HEPA-01"}, headers=staff_headers)
        resp = client.post(f"/api/sales/{order['id']}/items", json={"product": "BRUSH-02"}, headers=staff_headers)
        lines = resp.get_json()["order"]["lines"]
        brush_line = next(l for l in lines if l["product_sku"] == "BRUSH-02")

        resp = client.patch(f"/api/sales/items/{brush_line['id']}", json={"quantity": 3}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["total_price_cents"] == 2000 + 3 * 750

        resp = client.delete(f"/api/sales/items/{brush_line['id']}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["total_price_cents"] == 2000

    def test_error_mapping(self, client, staff_headers, filter_product):
        order = _start(client, staff_headers)

        resp = client.post(f"/api/sales/{order['id']}/confirm", headers=staff_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "EMPTY_ORDER"

        resp = client.post(f"/api/sales/{order['id']}/items", json={"product": "NOPE"}, headers=staff_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NOT_FOUND"

        resp = client.post(f"/api/sales/{order['id']}/items", json={"product": "HEPA-01", "quantity": 9}, headers=staff_headers)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["on_hand"] == 5

        resp = client.post(f"/api/sales/{order['id']}/items", json={"product": "HEPA-01", "quantity": -1}, headers=staff_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

        resp = client.post(f"/api/sales/{order['id']}/items", json={}, headers=staff_headers)
        assert resp.status_code == 400

    def test_duplicate_order_number(self, client, staff_headers):
        _start(client, staff_headers, order_number="LAZ-5")
        resp = client.post("/api/sales", json={"order_number": "LAZ-5"}, headers=staff_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "CONFLICT"

    def test_get_list_and_by_number(self, client, staff_headers):
        order = _start(client, staff_headers, order_number="WEB-9")

        resp = client.get("/api/sales/by-number/WEB-9", headers=staff_headers)
        assert resp.get_json()["order"]["id"] == order["id"]

        resp = client.get("/api/sales?status=DRAFT", headers=staff_headers)
        body = resp.get_json()
        assert body["total"] == 1
        assert "lines" not in body["orders"][0]

        assert client.get("/api/sales/999", headers=staff_headers).status_code == 404
        assert client.get("/api/sales?status=LOST", headers=staff_headers).status_code == 400
        assert client.get("/api/sales?from=yesterday", headers=staff_headers).status_code == 400

    def test_patch_order_metadata(self, client, staff_headers):
        order = _start(client, staff_headers)
        resp = client.patch(f"/api/sales/{order['id']}", json={"customer_phone": "0899999999"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["customer_phone"] == "0899999999"


class TestCancellationPaths:
    def test_staff_direct_cancel_is_forbidden_and_logged(self, client, db_session, staff, staff_headers, filter_product):
        order = _confirmed_order(client, staff_headers)

        resp = client.post(f"/api/sales/{order['id']}/cancel", json={"reason": "x"}, headers=staff_headers)

        assert resp.status_code == 403
        body = resp.get_json()
        assert body["code"] == "FORBIDDEN"
        assert body["details"]["use_action"] == "REQUEST_CANCELLATION"
        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == staff.id
        assert event.action == "CANCEL_SALE"

    def test_staff_may_cancel_draft(self, client, staff_headers):
        order = _start(client, staff_headers)
        resp = client.post(f"/api/sales/{order['id']}/cancel", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "CANCELED"

    def test_request_then_owner_approves(self, client, staff_headers, owner_headers, filter_product):
        order = _confirmed_order(client, staff_headers)

        resp = client.post(
            f"/api/sales/{order['id']}/cancellation-requests",
            json={"reason": "Customer changed mind"},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        req = resp.get_json()["request"]
        assert req["approval_status"] == "PENDING_APPROVAL"
        assert req["order_number"] == order["order_number"]

        resp = client.post(
            f"/api/sales/{order['id']}/cancellation-requests",
            json={"reason": "again"},
            headers=staff_headers,
        )
        assert resp.status_code == 409

        resp = client.get("/api/cancellation-requests?status=PENDING_APPROVAL", headers=owner_headers)
        assert [r["id"] for r in resp.get_json()["requests"]] == [req["id"]]

        resp = client.post(f"/api/cancellation-requests/{req['id']}/approve", headers=staff_headers)
        assert resp.status_code == 403

        resp = client.post(f"/api/cancellation-requests/{req['id']}/approve", headers=owner_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["request"]["approval_status"] == "APPROVED"
        assert body["order"]["status"] == "CANCELED"

        resp = client.get(f"/api/products/{filter_product.id}", headers=owner_headers)
        assert resp.get_json()["product"]["stock_qty"] == 5

        resp = client.post(f"/api/cancellation-requests/{req['id']}/approve", headers=owner_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INVALID_STATE"

    def test_mod_rejects(self, client, staff_headers, mod_headers, filter_product):
        order = _confirmed_order(client, staff_headers)
        req = client.post(
            f"/api/sales/{order['id']}/cancellation-requests", json={"reason": "x"}, headers=staff_headers
        ).get_json()["request"]

        resp = client.post(f"/api/cancellation-requests/{req['id']}/reject", json={"reason": "Shipped"}, headers=mod_headers)
        assert resp.status_code == 200
        assert resp.get_json()["request"]["rejection_reason"] == "Shipped"
        assert client.get(f"/api/sales/{order['id']}", headers=mod_headers).get_json()["order"]["status"] == "CONFIRMED"

    def test_mod_returns(self, client, staff_headers, mod_headers, filter_product):
        order = _confirmed_order(client, staff_headers, qty=2)

        resp = client.post(f"/api/sales/{order['id']}/return", json={"reason": "Defect"}, headers=staff_headers)
        assert resp.status_code == 403

        resp = client.post(
            f"/api/sales/{order['id']}/return",
            json={"reason": "Defect", "shipping_cost_cents": 150},
            headers=mod_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "RETURNED"
        assert resp.get_json()["order"]["return_shipping_cost_cents"] == 150


class TestReportsAndProducts:
    def test_daily_report_requires_high_privilege(self, client, staff_headers, owner_headers, filter_product):
        _confirmed_order(client, staff_headers, qty=1)

        assert client.get("/api/sales/reports/daily", headers=staff_headers).status_code == 403
        resp = client.get("/api/sales/reports/daily", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order_count"] == 1
        assert client.get("/api/sales/reports/daily?date=19-10-2026", headers=owner_headers).status_code == 400

    def test_product_lookup_and_low_stock(self, client, staff_headers, product_factory):
        product_factory("BAG-9", stock=1, min_stock=3, barcode="111")
        product_factory("MOTOR-1", stock=20, min_stock=2)

        resp = client.get("/api/products/lookup?code=111", headers=staff_headers)
        assert resp.get_json()["product"]["sku"] == "BAG-9"

        resp = client.get("/api/products/low-stock", headers=staff_headers)
        assert [p["sku"] for p in resp.get_json()["products"]] == ["BAG-9"]

        assert client.get("/api/products/lookup?code=zzz", headers=staff_headers).status_code == 404

    def test_product_movements(self, client, staff_headers, filter_product):
        _confirmed_order(client, staff_headers, qty=2)
        resp = client.get(f"/api/products/{filter_product.id}/movements", headers=staff_headers)
        body = resp.get_json()
        assert body["total"] == 1
        assert body["movements"][0]["quantity_delta"] == -2


def test_health(client, db_session):
    resp = client.get("/api/system/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"
