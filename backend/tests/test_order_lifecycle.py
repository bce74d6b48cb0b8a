"""
Order status lifecycle tests.

Verifies:
- Only state-machine edges are accepted; rejected changes leave the order as-is
- Stock is deducted once on PROCESSING and compensated on CANCELED / RETURNED
- Refunds follow money actually collected
- Customer cancel / return rules
"""

from datetime import timedelta

import pytest

from conftest import order_payload
from ricemart.extensions import db
from ricemart.models import Order, Refund, StockEntry
from ricemart.services import lifecycle_service
from ricemart.services.catalog_service import get_total_stock
from ricemart.services.lifecycle_service import ALLOWED_TRANSITIONS, ORDER_STATUSES, InvalidTransitionError


def place_order(client, headers, product_id, quantity=1, **extra):
    resp = client.post("/api/orders", json=order_payload(product_id, quantity, **extra), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def set_status(client, headers, order_id, status, **extra):
    return client.patch(f"/api/orders/{order_id}/status", json={"status": status, **extra}, headers=headers)


def walk(client, headers, order_id, *statuses):
    for status in statuses:
        resp = set_status(client, headers, order_id, status)
        assert resp.status_code == 200, (status, resp.get_json())
    return resp.get_json()["data"]


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestStateMachine:

    def test_terminal_statuses_have_no_exits(self):
        assert ALLOWED_TRANSITIONS["CANCELED"] == set()
        assert ALLOWED_TRANSITIONS["REFUNDED"] == set()

    @pytest.mark.parametrize("from_status", ORDER_STATUSES)
    def test_no_self_loops(self, from_status):
        assert lifecycle_service.can_transition(from_status, from_status) is False

    def test_shipped_back_to_pending_rejected(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED")

        resp = set_status(client, admin_headers, order["id"], "PENDING")
        assert resp.status_code == 409
        assert resp.get_json()["success"] is False
        assert db_session.get(Order, order["id"]).status == "SHIPPED"

    def test_same_status_rejected(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        assert set_status(client, admin_headers, order["id"], "PENDING").status_code == 409

    def test_unknown_status_is_validation_error(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        assert set_status(client, admin_headers, order["id"], "LOST").status_code == 400

    def test_missing_status(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        resp = client.patch(f"/api/orders/{order['id']}/status", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_order_is_404(self, client, admin_headers):
        assert set_status(client, admin_headers, 999999, "PROCESSING").status_code == 404

    def test_customer_cannot_set_status(self, client, customer_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        assert set_status(client, customer_headers, order["id"], "PROCESSING").status_code == 403

    def test_canceled_is_terminal(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "CANCELED")
        for status in ("PENDING", "PROCESSING", "REFUNDED"):
            assert set_status(client, admin_headers, order["id"], status).status_code == 409

    def test_full_happy_path_sets_timestamps(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        data = walk(client, admin_headers, order["id"], "PROCESSING", "ON_HOLD", "PROCESSING", "SHIPPED", "DELIVERED")
        assert data["delivered_at"] is not None
        assert data["allowed_transitions"] == ["RETURNED"]

    def test_status_change_events(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED")

        events = client.get(f"/api/orders/{order['id']}/events", headers=admin_headers).get_json()["data"]
        changes = [(e["from_status"], e["to_status"]) for e in events if e["event_type"] == "order.status_changed"]
        assert changes == [("PENDING", "PROCESSING"), ("PROCESSING", "SHIPPED")]


# =============================================================================
# STOCK SIDE EFFECTS
# =============================================================================


class TestStockEffects:

    def test_processing_deducts_once(self, client, customer_headers, admin_headers, make_product):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 4)

        walk(client, admin_headers, order["id"], "PROCESSING", "ON_HOLD", "PROCESSING")
        assert get_total_stock(product.id) == 6

    def test_cancel_after_processing_nets_to_zero(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 4)

        walk(client, admin_headers, order["id"], "PROCESSING", "CANCELED")
        assert get_total_stock(product.id) == 10
        entries = db_session.query(StockEntry).filter_by(order_id=order["id"]).all()
        assert sorted(e.quantity for e in entries) == [-4, 4]

    def test_cancel_before_processing_moves_no_stock(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 4)

        walk(client, admin_headers, order["id"], "CANCELED")
        assert db_session.query(StockEntry).filter_by(order_id=order["id"]).count() == 0

    def test_return_restocks(self, client, customer_headers, admin_headers, make_product):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 3)

        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "DELIVERED", "RETURNED")
        assert get_total_stock(product.id) == 10

    def test_processing_refused_when_stock_ran_out(self, client, customer_headers, other_headers, admin_headers, make_product, db_session):
        product = make_product(allow_sell_without_stock=False, stock=1)
        first = place_order(client, customer_headers, product.id)
        second = place_order(client, other_headers, product.id)

        walk(client, admin_headers, first["id"], "PROCESSING")
        resp = set_status(client, admin_headers, second["id"], "PROCESSING")
        assert resp.status_code == 400
        assert db_session.get(Order, second["id"]).status == "PENDING"
        assert get_total_stock(product.id) == 0

    def test_shipping_from_on_hold_deducts(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 3)

        walk(client, admin_headers, order["id"], "ON_HOLD", "SHIPPED")
        assert get_total_stock(product.id) == 7
        assert db_session.get(Order, order["id"]).stock_deducted is True

        walk(client, admin_headers, order["id"], "DELIVERED")
        assert get_total_stock(product.id) == 7

    def test_shipping_from_on_hold_refused_when_stock_ran_out(
        self, client, customer_headers, other_headers, admin_headers, make_product, db_session,
    ):
        product = make_product(allow_sell_without_stock=False, stock=1)
        first = place_order(client, customer_headers, product.id)
        second = place_order(client, other_headers, product.id)

        walk(client, admin_headers, first["id"], "PROCESSING", "SHIPPED", "DELIVERED")
        walk(client, admin_headers, second["id"], "ON_HOLD")
        resp = set_status(client, admin_headers, second["id"], "SHIPPED")
        assert resp.status_code == 400
        assert db_session.get(Order, second["id"]).status == "ON_HOLD"
        assert get_total_stock(product.id) == 0

    def test_ship_after_processing_deducts_once(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 2)

        walk(client, admin_headers, order["id"], "PROCESSING", "ON_HOLD", "SHIPPED")
        assert get_total_stock(product.id) == 8
        assert db_session.query(StockEntry).filter_by(order_id=order["id"]).count() == 1

    def test_cancel_after_shipping_from_on_hold_nets_to_zero(self, client, customer_headers, admin_headers, make_product):
        product = make_product(stock=10)
        order = place_order(client, customer_headers, product.id, 4)

        walk(client, admin_headers, order["id"], "ON_HOLD", "SHIPPED", "CANCELED")
        assert get_total_stock(product.id) == 10


# =============================================================================
# REFUNDS
# =============================================================================


class TestRefunds:

    def test_cod_cancel_without_delivery_has_no_refund(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "CANCELED")
        assert db_session.query(Refund).filter_by(order_id=order["id"]).count() == 0

    def test_return_refunds_total(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product(price="1000.00")
        order = place_order(client, customer_headers, product.id, 2)
        data = walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "DELIVERED", "RETURNED")
        assert [r["amount"] for r in data["refunds"]] == ["2000.00"]

    def test_refunded_does_not_duplicate_refund(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        data = walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "DELIVERED", "RETURNED", "REFUNDED")
        assert data["refunded_at"] is not None
        assert len(data["refunds"]) == 1


class TestReturnWindow:

    def test_window_expired(self, client, customer_headers, admin_headers, make_product, policy_config, db_session):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "DELIVERED")

        policy_config["RETURN_WINDOW_DAYS"] = 7
        row = db_session.get(Order, order["id"])
        row.delivered_at = row.delivered_at - timedelta(days=30)
        db_session.commit()

        assert set_status(client, admin_headers, order["id"], "RETURNED").status_code == 409

    def test_no_window_configured(self, client, customer_headers, admin_headers, make_product, db_session):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "DELIVERED")

        row = db_session.get(Order, order["id"])
        row.delivered_at = row.delivered_at - timedelta(days=30)
        db_session.commit()

        assert set_status(client, admin_headers, order["id"], "RETURNED").status_code == 200


# =============================================================================
# CUSTOMER ACTIONS
# =============================================================================


class TestCustomerActions:

    def test_customer_cancel_pending(self, client, customer_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)

        resp = client.patch(f"/api/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "CANCELED"

    def test_customer_cannot_cancel_shipped(self, client, customer_headers, admin_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED")

        resp = client.patch(f"/api/orders/{order['id']}/cancel", headers=customer_headers)
        assert resp.status_code == 409

    def test_customer_cannot_cancel_others_order(self, client, customer_headers, other_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        assert client.patch(f"/api/orders/{order['id']}/cancel", headers=other_headers).status_code == 404

    def test_customer_return_delivered(self, client, customer_headers, admin_headers, make_product):
        product = make_product(stock=5)
        order = place_order(client, customer_headers, product.id, 2)
        walk(client, admin_headers, order["id"], "PROCESSING", "SHIPPED", "DELIVERED")

        resp = client.patch(f"/api/orders/{order['id']}/return", json={}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "RETURNED"
        assert get_total_stock(product.id) == 5

    def test_customer_cannot_return_undelivered(self, client, customer_headers, make_product):
        product = make_product()
        order = place_order(client, customer_headers, product.id)
        assert client.patch(f"/api/orders/{order['id']}/return", headers=customer_headers).status_code == 409


# =============================================================================
# SERVICE LEVEL
# =============================================================================


class TestApplyTransition:

    def test_rejected_transition_raises_before_writes(self, customer, admin, make_product):
        from ricemart.services import order_service

        product = make_product(stock=3)
        order = order_service.create_order(customer, order_payload(product.id))
        lifecycle_service.transition_order(order.id, "PROCESSING", actor=admin)
        lifecycle_service.transition_order(order.id, "SHIPPED", actor=admin)

        with pytest.raises(InvalidTransitionError):
            lifecycle_service.transition_order(order.id, "PROCESSING", actor=admin)

        db.session.expire_all()
        assert db.session.get(Order, order.id).status == "SHIPPED"
        assert get_total_stock(product.id) == 2
