"""
Order creation tests.

Verifies:
- Price snapshot: unit_price copied at checkout, later edits ignored
- Totals are SUM(unit_price * quantity) with money as strings
- Unsellable products are refused (ProductUnavailable, 400)
- No stock moves at creation
- Owner-only reads and admin listing filters
"""

from decimal import Decimal

import pytest

from conftest import order_payload
from ricemart.models import Order, OrderEvent, Product, StockEntry
from ricemart.services import order_service
from ricemart.services.catalog_service import ProductUnavailableError, get_total_stock


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckout:

    def test_total_and_price_snapshot(self, client, customer_headers, make_product, db_session):
        product = make_product(price="1000.00")

        resp = client.post("/api/orders", json=order_payload(product.id, 3), headers=customer_headers)
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["status"] == "PENDING"
        assert data["total_amount"] == "3000.00"
        assert data["items"][0]["unit_price"] == "1000.00"
        assert data["order_number"].startswith("ORD-")

        db_session.get(Product, product.id).price = Decimal("2000.00")
        db_session.commit()

        again = client.get(f"/api/orders/{data['id']}", headers=customer_headers).get_json()["data"]
        assert again["items"][0]["unit_price"] == "1000.00"
        assert again["total_amount"] == "3000.00"

    def test_duplicate_lines_are_merged(self, client, customer_headers, make_product):
        product = make_product(price="500.00")
        payload = order_payload(product.id, 1)
        payload["items"].append({"product_id": product.id, "quantity": 2})

        data = client.post("/api/orders", json=payload, headers=customer_headers).get_json()["data"]
        assert len(data["items"]) == 1
        assert data["items"][0]["quantity"] == 3
        assert data["total_amount"] == "1500.00"

    def test_snapshot_keeps_metadata(self, client, customer_headers, make_product):
        product = make_product(meta={"variety": "Emata", "weight": "50kg"})
        data = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers).get_json()["data"]
        assert data["items"][0]["metadata"] == {"variety": "Emata", "weight": "50kg"}

    def test_no_stock_moves_at_creation(self, client, customer_headers, make_product, db_session):
        product = make_product(allow_sell_without_stock=False, stock=5)
        resp = client.post("/api/orders", json=order_payload(product.id, 2), headers=customer_headers)
        assert resp.status_code == 201
        assert get_total_stock(product.id) == 5
        assert resp.get_json()["data"]["stock_deducted"] is False

    def test_creation_event_recorded(self, client, customer_headers, make_product, db_session):
        product = make_product()
        order_id = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers).get_json()["data"]["id"]
        events = db_session.query(OrderEvent).filter_by(order_id=order_id).all()
        assert [e.event_type for e in events] == ["order.created"]

    def test_requires_auth(self, client, make_product):
        product = make_product()
        assert client.post("/api/orders", json=order_payload(product.id)).status_code == 401


class TestUnavailableProducts:

    def test_no_backorder_and_zero_stock(self, client, customer_headers, make_product, db_session):
        product = make_product(allow_sell_without_stock=False)

        resp = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers)
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert db_session.query(Order).count() == 0

    def test_service_raises_product_unavailable(self, customer, make_product):
        product = make_product(allow_sell_without_stock=False, stock=1)
        with pytest.raises(ProductUnavailableError) as exc:
            order_service.create_order(customer, order_payload(product.id, 2))
        assert exc.value.product_id == product.id

    def test_disabled_product_refused(self, client, customer_headers, make_product):
        product = make_product(disabled=True)
        resp = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers)
        assert resp.status_code == 400

    def test_out_of_stock_flag_refused(self, client, customer_headers, make_product):
        product = make_product(out_of_stock=True, stock=100)
        resp = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers)
        assert resp.status_code == 400

    def test_unknown_product_refused(self, client, customer_headers):
        resp = client.post("/api/orders", json=order_payload(999999), headers=customer_headers)
        assert resp.status_code == 400

    def test_backorder_allowed_without_stock(self, client, customer_headers, make_product):
        product = make_product(allow_sell_without_stock=True)
        resp = client.post("/api/orders", json=order_payload(product.id, 10), headers=customer_headers)
        assert resp.status_code == 201

    def test_one_bad_line_refuses_whole_order(self, client, customer_headers, make_product, db_session):
        good = make_product()
        bad = make_product(disabled=True)
        payload = order_payload(good.id)
        payload["items"].append({"product_id": bad.id, "quantity": 1})

        assert client.post("/api/orders", json=payload, headers=customer_headers).status_code == 400
        assert db_session.query(Order).count() == 0


class TestCheckoutValidation:

    def test_empty_items(self, client, customer_headers):
        payload = order_payload(1)
        payload["items"] = []
        assert client.post("/api/orders", json=payload, headers=customer_headers).status_code == 400

    def test_zero_quantity(self, client, customer_headers, make_product):
        product = make_product()
        resp = client.post("/api/orders", json=order_payload(product.id, 0), headers=customer_headers)
        assert resp.status_code == 400

    def test_missing_address_fields(self, client, customer_headers, make_product):
        product = make_product()
        payload = order_payload(product.id)
        payload["shipping_address"] = {"name": "Thida"}

        resp = client.post("/api/orders", json=payload, headers=customer_headers)
        assert resp.status_code == 400
        fields = {d["field"] for d in resp.get_json()["details"]}
        assert {"shipping_address.phone", "shipping_address.address"} <= fields

    def test_invalid_payment_type(self, client, customer_headers, make_product):
        product = make_product()
        resp = client.post("/api/orders", json=order_payload(product.id, payment_type="CARD"), headers=customer_headers)
        assert resp.status_code == 400

    def test_foreign_payment_method_rejected(self, client, customer_headers, other_headers, make_product):
        method = client.post(
            "/api/payment-methods",
            json={"type": "KBZ_PAY", "account_name": "Kyaw", "account_number": "09-222"},
            headers=other_headers,
        ).get_json()["data"]
        product = make_product()

        resp = client.post(
            "/api/orders",
            json=order_payload(product.id, payment_method_id=method["id"]),
            headers=customer_headers,
        )
        assert resp.status_code == 400


class TestCodInitialStatus:

    def test_cod_auto_processing_deducts_stock(self, client, customer_headers, make_product, policy_config, db_session):
        policy_config["COD_INITIAL_STATUS"] = "PROCESSING"
        product = make_product(allow_sell_without_stock=False, stock=5)

        data = client.post("/api/orders", json=order_payload(product.id, 2), headers=customer_headers).get_json()["data"]
        assert data["status"] == "PROCESSING"
        assert data["stock_deducted"] is True
        assert get_total_stock(product.id) == 3
        assert db_session.query(StockEntry).filter_by(order_id=data["id"]).count() == 1


# =============================================================================
# READS
# =============================================================================


class TestOrderReads:

    def test_other_customers_order_is_404(self, client, customer_headers, other_headers, make_product):
        product = make_product()
        order_id = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers).get_json()["data"]["id"]

        assert client.get(f"/api/orders/{order_id}", headers=other_headers).status_code == 404

    def test_admin_sees_customer_and_transitions(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order_id = client.post("/api/orders", json=order_payload(product.id), headers=customer_headers).get_json()["data"]["id"]

        data = client.get(f"/api/orders/{order_id}", headers=admin_headers).get_json()["data"]
        assert data["customer"]["email"] == "thida@example.com"
        assert data["allowed_transitions"] == ["PROCESSING", "ON_HOLD", "CANCELED"]

    def test_list_own_orders_only(self, client, customer_headers, other_headers, make_product):
        product = make_product()
        client.post("/api/orders", json=order_payload(product.id), headers=customer_headers)
        client.post("/api/orders", json=order_payload(product.id), headers=other_headers)

        body = client.get("/api/orders", headers=customer_headers).get_json()
        assert body["pagination"]["total"] == 1

    def test_admin_list_filters(self, client, customer_headers, admin_headers, make_product, company_account):
        product = make_product()
        client.post("/api/orders", json=order_payload(product.id), headers=customer_headers)
        client.post(
            "/api/orders",
            json=order_payload(product.id, payment_type="ONLINE_TRANSFER", company_account_id=company_account.id),
            headers=customer_headers,
        )

        resp = client.get("/api/orders/admin/all?paymentType=ONLINE_TRANSFER", headers=admin_headers)
        body = resp.get_json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["payment_type"] == "ONLINE_TRANSFER"

        by_email = client.get("/api/orders/admin/all?search=thida@example", headers=admin_headers).get_json()
        assert by_email["pagination"]["total"] == 2

    def test_admin_list_invalid_status(self, client, admin_headers):
        resp = client.get("/api/orders/admin/all?status=LOST", headers=admin_headers)
        assert resp.status_code == 400

    def test_customer_cannot_use_admin_list(self, client, customer_headers):
        assert client.get("/api/orders/admin/all", headers=customer_headers).status_code == 403
