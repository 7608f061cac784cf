"""
Order & inventory HTTP API tests.

Checks the JSON contract: {"success": ..., "error", "code", "details"} and
the HTTP status for each error kind.
"""

from backoffice.extensions import db
from backoffice.models import Order


def _order_body(variant, order_id="WEB-1001", quantity=1, **extra):
    body = {
        "order_id": order_id,
        "customer_name": "Jane Brown",
        "customer_phone": "876-555-0101",
        "subtotal": "4500.00",
        "delivery_fee": "0",
        "total": "4500.00",
        "payment_method": "card",
        "delivery_option": "pickup",
        "items": [{
            "product_id": variant.product_id,
            "product_name": "Wireless Earbuds",
            "variant_type": variant.variant_type,
            "variant_value": variant.variant_value,
            "quantity": quantity,
            "unit_price": "4500.00",
        }],
    }
    body.update(extra)
    return body


class TestPlaceOrderApi:
    def test_place_order(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)

        resp = client.post("/api/orders", json=_order_body(variant, quantity=2), headers=admin_headers)

        assert resp.status_code == 201
        order = resp.json["order"]
        assert resp.json["success"] is True
        assert order["order_id"] == "WEB-1001"
        assert order["total"] == 4500.0
        assert order["items"][0]["variant_details"] == {"Colour": "Black"}

        stock = client.post("/api/products/check-stock", json={
            "product_id": variant.product_id, "variant_type": "Colour", "variant_value": "Black",
        }).json
        assert stock["stock_quantity"] == 8

    def test_insufficient_stock_is_409_with_details(self, client, admin_headers, make_variant):
        variant = make_variant(stock=1)

        resp = client.post("/api/orders", json=_order_body(variant, quantity=3), headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["success"] is False
        assert resp.json["code"] == "InsufficientStock"
        assert resp.json["details"]["available"] == 1
        assert resp.json["details"]["requested"] == 3
        assert "Available: 1, Requested: 3" in resp.json["error"]
        assert db.session.query(Order).count() == 0

    def test_duplicate_is_409(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)
        client.post("/api/orders", json=_order_body(variant), headers=admin_headers)

        resp = client.post("/api/orders", json=_order_body(variant), headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["code"] == "DuplicateOrder"

    def test_unknown_variant_is_404(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)
        body = _order_body(variant)
        body["items"][0]["variant_value"] = "Purple"

        resp = client.post("/api/orders", json=body, headers=admin_headers)

        assert resp.status_code == 404
        assert resp.json["code"] == "VariantNotFound"

    def test_validation_errors_are_400(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)

        no_items = client.post("/api/orders", json=_order_body(variant, items=[]), headers=admin_headers)
        bad_qty = client.post("/api/orders", json=_order_body(variant, quantity=0), headers=admin_headers)
        unknown_field = client.post("/api/orders", json=_order_body(variant, coupon="FREE"), headers=admin_headers)
        no_body = client.post("/api/orders", data="not json", headers=admin_headers)

        assert no_items.status_code == 400
        assert bad_qty.status_code == 400
        assert unknown_field.status_code == 400
        assert no_body.status_code == 400
        assert db.session.query(Order).count() == 0


class TestOrderLifecycleApi:
    def test_list_and_get(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)
        client.post("/api/orders", json=_order_body(variant, order_id="A"), headers=admin_headers)
        client.post("/api/orders", json=_order_body(variant, order_id="B"), headers=admin_headers)

        listed = client.get("/api/orders", headers=admin_headers).json["orders"]
        assert {o["order_id"] for o in listed} == {"A", "B"}
        assert all(o["items"] for o in listed)

        one = client.get("/api/orders/A", headers=admin_headers)
        assert one.status_code == 200
        assert one.json["order"]["order_id"] == "A"

        missing = client.get("/api/orders/ZZZ", headers=admin_headers)
        assert missing.status_code == 404
        assert missing.json["error"] == "Order not found"

    def test_status_update_and_invalid_transition(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)
        client.post("/api/orders", json=_order_body(variant), headers=admin_headers)

        ok = client.put("/api/orders/WEB-1001/status", json={"status": "delivered"}, headers=admin_headers)
        back = client.put("/api/orders/WEB-1001/status", json={"status": "pending"}, headers=admin_headers)
        bogus = client.put("/api/orders/WEB-1001/status", json={"status": "shipped"}, headers=admin_headers)

        assert ok.status_code == 200
        assert ok.json["order"]["order_status"] == "delivered"
        assert back.status_code == 409
        assert back.json["code"] == "InvalidStatusTransition"
        assert bogus.status_code == 400

    def test_refund_twice(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)
        client.post("/api/orders", json=_order_body(variant, quantity=4), headers=admin_headers)

        first = client.post("/api/orders/WEB-1001/refund", headers=admin_headers)
        second = client.post("/api/orders/WEB-1001/refund", headers=admin_headers)

        assert first.status_code == 200
        assert first.json["order"]["order_status"] == "refunded"
        assert second.status_code == 409

        ledger = client.get(f"/api/inventory/variants/{variant.id}/transactions", headers=admin_headers).json
        kinds = [t["transaction_type"] for t in ledger["transactions"]]
        assert kinds == ["refund", "sale", "restock"]
        assert ledger["transactions"][0]["created_by"] == "admin"


class TestInventoryApi:
    def test_restock_reports_previous_and_new(self, client, admin_headers, make_variant):
        variant = make_variant(stock=3)

        resp = client.post("/api/inventory/restock", json={
            "variant_id": variant.id, "quantity": 7, "notes": "Supplier delivery",
        }, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["previous_stock"] == 3
        assert resp.json["new_stock"] == 10
        assert resp.json["transaction"]["notes"] == "Supplier delivery"

    def test_adjust_below_zero_is_400(self, client, admin_headers, make_variant):
        variant = make_variant(stock=3)

        resp = client.post("/api/inventory/adjust", json={
            "variant_id": variant.id, "quantity_change": -4, "notes": "Recount",
        }, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["code"] == "InvalidAdjustment"

    def test_adjust_unknown_variant_is_404(self, client, admin_headers):
        resp = client.post("/api/inventory/adjust", json={
            "variant_id": 999, "quantity_change": 1,
        }, headers=admin_headers)

        assert resp.status_code == 404

    def test_low_and_out_of_stock(self, client, admin_headers, make_product, make_variant):
        product = make_product()
        low = make_variant(stock=2, threshold=3, product=product, variant_value="Black")
        out = make_variant(stock=0, threshold=3, product=product, variant_value="White")

        low_rows = client.get("/api/inventory/low-stock", headers=admin_headers).json["variants"]
        out_rows = client.get("/api/inventory/out-of-stock", headers=admin_headers).json["variants"]

        assert [r["variant_id"] for r in low_rows] == [low.id]
        assert [r["variant_id"] for r in out_rows] == [out.id]


class TestCustomersApi:
    def test_order_points_visible_to_admin(self, client, admin_headers, make_variant):
        variant = make_variant(stock=10)
        body = _order_body(variant, total="12500", subtotal="12500")
        body["items"][0]["unit_price"] = "12500"
        client.post("/api/orders", json=body, headers=admin_headers)

        customers = client.get("/admin/customers", headers=admin_headers).json["customers"]

        assert len(customers) == 1
        assert customers[0]["phone"] == "876-555-0101"
        assert customers[0]["total_points"] == 125

        history = client.get(f"/admin/customers/{customers[0]['id']}/points", headers=admin_headers).json
        assert [t["points_change"] for t in history["transactions"]] == [125]

    def test_lookup_award_redeem_adjust(self, client, admin_headers):
        customer = client.post("/api/customers/lookup", json={
            "phone": "876-555-0999", "name": "Carl",
        }, headers=admin_headers).json["customer"]
        cid = customer["id"]

        awarded = client.post(f"/api/customers/{cid}/award-points", json={
            "points": 40, "order_id": "WEB-9", "order_total": 4000,
        }, headers=admin_headers)
        redeemed = client.post(f"/api/customers/{cid}/redeem-points", json={
            "points_to_redeem": 10,
        }, headers=admin_headers)
        too_many = client.post(f"/api/customers/{cid}/redeem-points", json={
            "points_to_redeem": 100,
        }, headers=admin_headers)
        adjusted = client.post(f"/admin/customers/{cid}/adjust-points", json={
            "points_change": -5, "notes": "Correction",
        }, headers=admin_headers)

        assert awarded.json["new_balance"] == 40
        assert redeemed.json["new_balance"] == 30
        assert redeemed.json["discount_amount"] == 10
        assert too_many.status_code == 400
        assert adjusted.json["new_balance"] == 25

    def test_lookup_requires_phone(self, client, admin_headers):
        resp = client.post("/api/customers/lookup", json={"name": "No Phone"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_customer_is_404(self, client, admin_headers):
        resp = client.post("/api/customers/4242/award-points", json={"points": 1}, headers=admin_headers)
        assert resp.status_code == 404
