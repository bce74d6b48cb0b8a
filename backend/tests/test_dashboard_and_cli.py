"""
Admin dashboard and CLI tests.
"""

from conftest import order_payload
from ricemart.cli import SAMPLE_PRODUCTS
from ricemart.models import CompanyPaymentAccount, Product, User
from ricemart.services.catalog_service import get_total_stock


class TestDashboard:

    def test_summary(self, client, customer_headers, admin_headers, make_product, company_account, policy_config):
        policy_config["LOW_STOCK_THRESHOLD"] = 5
        product = make_product(price="1000.00", stock=20)
        scarce = make_product(name_en="Scarce", allow_sell_without_stock=False, stock=2)
        make_product(name_en="Backorder", allow_sell_without_stock=True)

        delivered = client.post("/api/orders", json=order_payload(product.id, 2), headers=customer_headers).get_json()["data"]
        for status in ("PROCESSING", "SHIPPED", "DELIVERED"):
            client.patch(f"/api/orders/{delivered['id']}/status", json={"status": status}, headers=admin_headers)
        client.post(
            "/api/online-transfer-orders",
            json=order_payload(product.id, payment_type="ONLINE_TRANSFER", company_account_id=company_account.id, transaction_id="TX-9"),
            headers=customer_headers,
        )

        data = client.get("/api/admin/dashboard", headers=admin_headers).get_json()["data"]
        assert data["total_customers"] == 1
        assert data["total_orders"] == 2
        assert data["total_revenue"] == "2000.00"
        assert data["pending_payment_reviews"] == 1
        assert data["orders_by_status"]["DELIVERED"] == 1
        assert data["orders_by_status"]["PENDING"] == 1
        assert len(data["recent_orders"]) == 2
        assert [p["id"] for p in data["low_stock_products"]] == [scarce.id]


class TestInventorySummary:

    def test_valuation_and_flags(self, client, admin_headers, make_product, policy_config):
        policy_config["LOW_STOCK_THRESHOLD"] = 10
        stocked = make_product(name_en="A Paw San")
        empty = make_product(name_en="B Emata", allow_sell_without_stock=False)
        hidden = make_product(name_en="C Retired", disabled=True)

        for quantity, price in ((10, "40"), (30, "60")):
            client.post(
                "/api/products/stock",
                json={"product_id": stocked.id, "quantity": quantity, "purchase_price": price},
                headers=admin_headers,
            )
        client.post("/api/products/stock", json={"product_id": stocked.id, "quantity": -35}, headers=admin_headers)

        resp = client.get("/api/admin/inventory", headers=admin_headers)
        assert resp.status_code == 200
        rows = {row["product_id"]: row for row in resp.get_json()["data"]}
        assert hidden.id not in rows

        row = rows[stocked.id]
        assert row["current_stock"] == 5
        assert row["average_cost"] == "55.00"
        assert row["total_value"] == "275.00"
        assert row["low_stock"] is True
        assert row["out_of_stock"] is False

        row = rows[empty.id]
        assert row["current_stock"] == 0
        assert row["average_cost"] == "0.00"
        assert row["total_value"] == "0.00"
        assert row["out_of_stock"] is True

    def test_customer_forbidden(self, client, customer_headers):
        assert client.get("/api/admin/inventory", headers=customer_headers).status_code == 403


class TestCli:

    def test_system_init_seeds_accounts_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        count = db_session.query(CompanyPaymentAccount).count()
        assert count > 0

        runner.invoke(args=["system", "init"])
        assert db_session.query(CompanyPaymentAccount).count() == count

    def test_create_admin(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create-admin", "--email", "boss@ricemart.local", "--name", "Boss", "--password", "Password123",
        ])
        assert result.exit_code == 0, result.output
        assert db_session.query(User).filter_by(email="boss@ricemart.local").one().role == "admin"

    def test_create_admin_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create-admin", "--email", "x@ricemart.local", "--name", "X", "--password", "weak"])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_catalog_seed(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["catalog", "seed", "--stock", "25"])
        assert result.exit_code == 0, result.output

        products = db_session.query(Product).all()
        assert len(products) == len(SAMPLE_PRODUCTS)
        assert all(get_total_stock(p.id) == 25 for p in products)

        again = runner.invoke(args=["catalog", "seed"])
        assert "SKIP" in again.output
        assert db_session.query(Product).count() == len(SAMPLE_PRODUCTS)
