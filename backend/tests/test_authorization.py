"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Staff role denied catalog, location, report and user administration writes (403)
- Manager can manage the catalog but not users or the audit log
- Admin can perform privileged operations
"""

import pytest

from invtrack.services import auth_service

from conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/auth/users"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/categories"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/locations"),
            ("GET", "/api/inventory"),
            ("POST", "/api/inventory"),
            ("GET", "/api/inventory/summary"),
            ("POST", "/api/inventory/transactions"),
            ("GET", "/api/sessions"),
            ("POST", "/api/sessions"),
            ("GET", "/api/reports/valuation"),
            ("GET", "/api/reports/saved"),
            ("GET", "/api/audit-logs"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-jwt"))
        assert resp.status_code == 401

    def test_deactivated_user_token(self, client, staff_user, staff_headers):
        auth_service.set_user_active(staff_user.id, False)
        resp = client.get("/api/products", headers=staff_headers)
        assert resp.status_code == 401


# =============================================================================
# STAFF DENIED MANAGEMENT OPERATIONS - 403
# =============================================================================


class TestStaffDenied:

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("POST", "/api/products", {"name": "X"}),
            ("PUT", "/api/products/prod-x", {"name": "X"}),
            ("DELETE", "/api/products/prod-x", None),
            ("POST", "/api/categories", {"name": "X"}),
            ("POST", "/api/suppliers", {"name": "X"}),
            ("POST", "/api/locations", {"name": "X"}),
            ("PUT", "/api/locations/loc-x", {"name": "X"}),
            ("POST", "/api/reports/saved", {"name": "X", "report_type": "valuation"}),
            ("DELETE", "/api/reports/saved/rep-x", None),
            ("GET", "/api/auth/users", None),
            ("POST", "/api/auth/users", {"username": "x", "password": PASSWORD}),
            ("GET", "/api/audit-logs", None),
        ],
    )
    def test_forbidden(self, client, staff_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=staff_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["error"] == "Permission denied"

    def test_staff_can_read_and_move_stock(self, client, staff_headers, product, main_storage):
        assert client.get("/api/products", headers=staff_headers).status_code == 200
        resp = client.post(
            "/api/inventory/transactions",
            json={"type": "check_in", "product_id": product.id, "quantity": 2,
                  "destination_location_id": main_storage.id},
            headers=staff_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# MANAGER
# =============================================================================


class TestManagerAccess:

    def test_can_create_product(self, client, manager_headers):
        resp = client.post("/api/products", json={"name": "Malbec"}, headers=manager_headers)
        assert resp.status_code == 201

    def test_cannot_manage_users(self, client, manager_headers):
        assert client.get("/api/auth/users", headers=manager_headers).status_code == 403

    def test_cannot_read_audit_log(self, client, manager_headers):
        assert client.get("/api/audit-logs", headers=manager_headers).status_code == 403


# =============================================================================
# ADMIN CAN PERFORM PRIVILEGED OPERATIONS - 200
# =============================================================================


class TestAdminAccess:

    def test_can_list_users(self, client, admin_headers):
        resp = client.get("/api/auth/users", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_can_create_and_deactivate_user(self, client, admin_headers):
        resp = client.post(
            "/api/auth/users",
            json={"username": "newbie", "password": PASSWORD, "role": "staff"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        user_id = resp.get_json()["user"]["id"]

        assert get_auth_token(client, "newbie") is not None

        resp = client.post(f"/api/auth/users/{user_id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["is_active"] is False

        login = client.post("/api/auth/login", json={"username": "newbie", "password": PASSWORD})
        assert login.status_code == 403

    def test_weak_password_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/auth/users", json={"username": "weak", "password": "weak"}, headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_can_read_audit_log(self, client, admin_headers):
        resp = client.get("/api/audit-logs?entity_type=user", headers=admin_headers)
        assert resp.status_code == 200
        actions = {e["action"] for e in resp.get_json()["items"]}
        assert "login" in actions


# =============================================================================
# PUBLIC ENDPOINTS - NO AUTH REQUIRED
# =============================================================================


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_login_wrong_password(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"username": "staff", "password": "Nope123!"})
        assert resp.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "staff"})
        assert resp.status_code == 400

    def test_me(self, client, staff_headers):
        resp = client.get("/api/auth/me", headers=staff_headers)
        assert resp.get_json()["user"]["username"] == "staff"
