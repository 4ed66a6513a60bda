"""Stock-in API tests."""

import pytest


def _create(client, headers, product_id, qty=10, cost=900, **extra):
    body = {"lines": [{"product_id": product_id, "quantity": qty, "unit_cost_cents": cost}], **extra}
    resp = client.post("/api/stock-in", json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["stock_in"]


class TestStockInFlow:
    def test_create_approve_receive(self, client, staff_headers, owner_headers, filter_product):
        order = _create(client, staff_headers, filter_product.id, supplier="Siam Vac Parts")
        assert order["approval_status"] == "PENDING_APPROVAL"

        resp = client.post(f"/api/stock-in/{order['id']}/receive", headers=staff_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INVALID_STATE"

        resp = client.get("/api/stock-in/pending-approvals", headers=owner_headers)
        assert [o["id"] for o in resp.get_json()["stock_ins"]] == [order["id"]]

        resp = client.post(f"/api/stock-in/{order['id']}/approve", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stock_in"]["approval_status"] == "APPROVED"

        resp = client.post(f"/api/stock-in/{order['id']}/receive", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stock_in"]["status"] == "RECEIVED"

        resp = client.get(f"/api/products/{filter_product.id}", headers=staff_headers)
        product = resp.get_json()["product"]
        assert product["stock_qty"] == 15
        assert product["cost_price_cents"] == 900

        resp = client.post(f"/api/stock-in/{order['id']}/receive", headers=staff_headers)
        assert resp.status_code == 409

        resp = client.get("/api/stock-in/summary?days=1", headers=owner_headers)
        assert resp.get_json()["total_cost_cents"] == 9000

    @pytest.mark.parametrize("headers_fixture", ["mod_headers", "staff_headers"])
    def test_only_owner_approves(self, request, client, filter_product, headers_fixture):
        headers = request.getfixturevalue(headers_fixture)
        order = _create(client, headers, filter_product.id)

        assert client.post(f"/api/stock-in/{order['id']}/approve", headers=headers).status_code == 403
        assert client.post(f"/api/stock-in/{order['id']}/reject", headers=headers).status_code == 403

    def test_reject_then_receive_fails(self, client, staff_headers, owner_headers, filter_product):
        order = _create(client, staff_headers, filter_product.id)

        resp = client.post(f"/api/stock-in/{order['id']}/reject", json={"reason": "Overpriced"}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stock_in"]["rejection_reason"] == "Overpriced"

        assert client.post(f"/api/stock-in/{order['id']}/receive", headers=staff_headers).status_code == 409

    def test_cancel_and_update(self, client, staff_headers, mod_headers, filter_product):
        order = _create(client, staff_headers, filter_product.id)

        resp = client.patch(f"/api/stock-in/{order['id']}", json={"supplier": "New Supplier"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stock_in"]["supplier"] == "New Supplier"

        assert client.post(f"/api/stock-in/{order['id']}/cancel", headers=staff_headers).status_code == 403
        resp = client.post(f"/api/stock-in/{order['id']}/cancel", json={"reason": "dup"}, headers=mod_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stock_in"]["status"] == "CANCELLED"

    def test_validation_errors(self, client, staff_headers, filter_product):
        resp = client.post("/api/stock-in", json={"lines": []}, headers=staff_headers)
        assert resp.status_code == 400

        resp = client.post(
            "/api/stock-in",
            json={"lines": [{"product_id": 999, "quantity": 1, "unit_cost_cents": 1}]},
            headers=staff_headers,
        )
        assert resp.status_code == 404

    def test_list_and_get(self, client, staff_headers, filter_product):
        order = _create(client, staff_headers, filter_product.id, reference="PO-1")

        resp = client.get("/api/stock-in?status=PENDING", headers=staff_headers)
        assert resp.get_json()["total"] == 1

        resp = client.get(f"/api/stock-in/{order['id']}", headers=staff_headers)
        body = resp.get_json()["stock_in"]
        assert body["reference"] == "PO-1"
        assert body["lines"][0]["product_sku"] == "HEPA-01"

        assert client.get("/api/stock-in/9999", headers=staff_headers).status_code == 404
        assert client.get("/api/stock-in?approval_status=MAYBE", headers=staff_headers).status_code == 400

    def test_requires_auth(self, client, db_session):
        assert client.post("/api/stock-in", json={}).status_code == 401
        assert client.post("/api/stock-in/1/receive").status_code == 401
