"""
Admin user management tests.

Verifies:
- Listing with search, role and active filters plus pagination
- Create, update and delete with conflict and validation errors
- An admin cannot demote, deactivate or delete their own account
- Deactivation and password resets end the user's sessions
"""

from conftest import order_payload
from ricemart.models import LoginAttempt, User


# =============================================================================
# LISTING
# =============================================================================


class TestListUsers:

    def test_lists_all_roles(self, client, admin_headers, customer, other_customer, admin):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        emails = {u["email"] for u in body["data"]}
        assert emails == {"thida@example.com", "kyaw@example.com", "admin@ricemart.local"}
        assert body["pagination"]["total"] == 3
        assert "password_hash" not in body["data"][0]

    def test_role_filter(self, client, admin_headers, customer, other_customer):
        data = client.get("/api/admin/users?role=customer", headers=admin_headers).get_json()["data"]
        assert {u["role"] for u in data} == {"customer"}
        assert len(data) == 2

    def test_invalid_role_rejected(self, client, admin_headers):
        assert client.get("/api/admin/users?role=owner", headers=admin_headers).status_code == 400

    def test_search_matches_name_and_email(self, client, admin_headers, customer, other_customer):
        by_name = client.get("/api/admin/users?search=thi", headers=admin_headers).get_json()["data"]
        assert [u["email"] for u in by_name] == ["thida@example.com"]

        by_email = client.get("/api/admin/users?search=KYAW@", headers=admin_headers).get_json()["data"]
        assert [u["email"] for u in by_email] == ["kyaw@example.com"]

    def test_active_filter(self, client, admin_headers, customer, other_customer, db_session):
        other_customer.is_active = False
        db_session.commit()

        data = client.get("/api/admin/users?is_active=false", headers=admin_headers).get_json()["data"]
        assert [u["id"] for u in data] == [other_customer.id]

    def test_pagination(self, client, admin_headers, customer, other_customer):
        body = client.get("/api/admin/users?page=2&limit=2", headers=admin_headers).get_json()
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
        assert len(body["data"]) == 1

    def test_get_one(self, client, admin_headers, customer):
        resp = client.get(f"/api/admin/users/{customer.id}", headers=admin_headers)
        assert resp.get_json()["data"]["email"] == "thida@example.com"
        assert client.get("/api/admin/users/999999", headers=admin_headers).status_code == 404

    def test_customer_forbidden(self, client, customer_headers):
        assert client.get("/api/admin/users", headers=customer_headers).status_code == 403


# =============================================================================
# CREATE / UPDATE
# =============================================================================


class TestCreateUser:

    def test_defaults_to_admin(self, client, admin_headers, db_session):
        resp = client.post(
            "/api/admin/users",
            json={"email": "Staff@RiceMart.local", "password": "Password123", "name": "Staff"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["role"] == "admin"
        assert data["email"] == "staff@ricemart.local"
        assert db_session.query(User).filter_by(email="staff@ricemart.local").count() == 1

    def test_weak_password(self, client, admin_headers):
        resp = client.post(
            "/api/admin/users",
            json={"email": "staff@ricemart.local", "password": "short", "name": "Staff"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_duplicate_email(self, client, admin_headers, customer):
        resp = client.post(
            "/api/admin/users",
            json={"email": "thida@example.com", "password": "Password123", "name": "Again", "role": "customer"},
            headers=admin_headers,
        )
        assert resp.status_code == 409


class TestUpdateUser:

    def test_patch_fields(self, client, admin_headers, customer):
        resp = client.patch(
            f"/api/admin/users/{customer.id}",
            json={"name": "Thida Aung", "locale": "my", "role": "admin"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["name"] == "Thida Aung"
        assert data["locale"] == "my"
        assert data["role"] == "admin"
        assert data["email"] == "thida@example.com"

    def test_email_conflict(self, client, admin_headers, customer, other_customer):
        resp = client.patch(f"/api/admin/users/{customer.id}", json={"email": "kyaw@example.com"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_unknown_field_rejected(self, client, admin_headers, customer):
        resp = client.patch(f"/api/admin/users/{customer.id}", json={"password_hash": "x"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"][0]["field"] == "password_hash"

    def test_failed_patch_leaves_user_unchanged(self, client, admin_headers, customer, db_session):
        resp = client.patch(
            f"/api/admin/users/{customer.id}",
            json={"name": "Changed", "locale": "fr"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        db_session.expire_all()
        assert db_session.get(User, customer.id).name == "Thida"

    def test_deactivation_ends_sessions(self, client, admin_headers, customer, customer_headers):
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 200

        resp = client.patch(f"/api/admin/users/{customer.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["is_active"] is False
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401

    def test_password_reset(self, client, admin_headers, customer, customer_headers):
        resp = client.patch(f"/api/admin/users/{customer.id}", json={"password": "NewPassword456"}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401

        login = client.post("/api/auth/login", json={"email": "thida@example.com", "password": "NewPassword456"})
        assert login.status_code == 200

    def test_weak_password_reset_rejected(self, client, admin_headers, customer):
        resp = client.patch(f"/api/admin/users/{customer.id}", json={"password": "abc"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_cannot_demote_self(self, client, admin_headers, admin):
        resp = client.patch(f"/api/admin/users/{admin.id}", json={"role": "customer"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_cannot_deactivate_self(self, client, admin_headers, admin):
        resp = client.patch(f"/api/admin/users/{admin.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 400
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 200

    def test_missing_user(self, client, admin_headers):
        assert client.patch("/api/admin/users/999999", json={"name": "X"}, headers=admin_headers).status_code == 404


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteUser:

    def test_unreferenced_user_is_deleted(self, client, admin_headers, other_customer, other_headers, db_session):
        user_id = other_customer.id
        client.post("/api/auth/login", json={"email": "kyaw@example.com", "password": "wrong-password1"})

        resp = client.delete(f"/api/admin/users/{user_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"id": user_id, "result": "deleted"}
        assert db_session.get(User, user_id) is None
        assert client.get("/api/auth/me", headers=other_headers).status_code == 401

        attempt = db_session.query(LoginAttempt).filter_by(identifier="kyaw@example.com").one()
        assert attempt.user_id is None

    def test_user_with_orders_is_deactivated(self, client, admin_headers, customer, customer_headers, make_product, db_session):
        product = make_product(stock=5)
        client.post("/api/orders", json=order_payload(product.id), headers=customer_headers)

        resp = client.delete(f"/api/admin/users/{customer.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["result"] == "deactivated"

        db_session.expire_all()
        assert db_session.get(User, customer.id).is_active is False
        assert client.get("/api/auth/me", headers=customer_headers).status_code == 401

    def test_cannot_delete_self(self, client, admin_headers, admin):
        assert client.delete(f"/api/admin/users/{admin.id}", headers=admin_headers).status_code == 400

    def test_missing_user(self, client, admin_headers):
        assert client.delete("/api/admin/users/999999", headers=admin_headers).status_code == 404

    def test_customer_forbidden(self, client, customer_headers, other_customer):
        assert client.delete(f"/api/admin/users/{other_customer.id}", headers=customer_headers).status_code == 403
