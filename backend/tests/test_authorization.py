# Overview: Pytest coverage for authentication and role-based authorization.

"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Each role is limited to the capabilities in its role table
- Denials return 403 with the required permission and are logged
- Super admins only hold platform capabilities
"""

import pytest

from conftest import auth_headers, get_auth_token, headers_for
from retailpos.extensions import db
from retailpos.models import SecurityEvent
from retailpos.decorators import require_permission
from retailpos.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    Role,
    get_role_permissions,
    role_has_permission,
    validate_permission_code,
)
from retailpos.services import permission_service


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("POST", "/api/inventory/stock-in"),
            ("GET", "/api/inventory/movements"),
            ("POST", "/api/pos/sale"),
            ("GET", "/api/pos/daily-summary"),
            ("GET", "/api/sales"),
            ("GET", "/api/customers"),
            ("GET", "/api/staff"),
            ("GET", "/api/analytics/sales"),
            ("GET", "/api/tenant"),
            ("GET", "/api/tenant/dashboard"),
            ("GET", "/api/branches"),
            ("POST", "/api/superadmin/tenants"),
            ("GET", "/api/superadmin/plans"),
            ("GET", "/api/superadmin/stats"),
            ("GET", "/api/auth/me"),
            ("PUT", "/api/auth/profile"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


# =============================================================================
# ROLE TABLE
# =============================================================================


class TestRoleTable:
    def test_every_role_has_an_entry(self):
        assert set(DEFAULT_ROLE_PERMISSIONS) == {role.value for role in Role}

    def test_super_admin_has_no_tenant_capabilities(self):
        assert get_role_permissions(Role.SUPER_ADMIN) == {"MANAGE_TENANTS", "VIEW_PLATFORM_STATS"}
        assert not role_has_permission(Role.SUPER_ADMIN, "CREATE_SALE")

    def test_tenant_admin_has_every_tenant_capability(self):
        admin = get_role_permissions(Role.TENANT_ADMIN)
        for role in (Role.MANAGER, Role.CASHIER, Role.STOCK_MANAGER, Role.STAFF):
            assert get_role_permissions(role) <= admin

    @pytest.mark.parametrize(
        "role,permission,expected",
        [
            (Role.CASHIER, "CREATE_SALE", True),
            (Role.CASHIER, "REFUND_SALE", False),
            (Role.CASHIER, "ADJUST_INVENTORY", False),
            (Role.STOCK_MANAGER, "ADJUST_INVENTORY", True),
            (Role.STOCK_MANAGER, "CREATE_SALE", False),
            (Role.MANAGER, "VIEW_REPORTS", True),
            (Role.MANAGER, "MANAGE_STAFF", False),
            (Role.STAFF, "VIEW_SALES", False),
            (Role.STAFF, "HOLD_SALE", True),
            (Role.TENANT_ADMIN, "MANAGE_BRANCHES", True),
            (Role.MANAGER, "MANAGE_BRANCHES", False),
        ],
    )
    def test_capabilities(self, role, permission, expected):
        assert role_has_permission(role, permission) is expected

    def test_inactive_user_has_no_permissions(self, cashier_a):
        cashier_a.is_active = False
        db.session.commit()
        assert permission_service.get_user_permissions(cashier_a.id) == set()

    def test_role_table_only_uses_defined_codes(self):
        for codes in DEFAULT_ROLE_PERMISSIONS.values():
            assert all(validate_permission_code(code) for code in codes)

    def test_unknown_code_rejected_at_decoration(self):
        with pytest.raises(ValueError):
            require_permission("SELL_EVERYTHING")

    def test_me_lists_capabilities(self, client, cashier_a):
        body = client.get("/api/auth/me", headers=headers_for(cashier_a)).json
        assert body["permissions"] == sorted(get_role_permissions(Role.CASHIER))
        details = {d["code"]: d for d in body["permission_details"]}
        assert details["CREATE_SALE"]["category"] == "SALES"


# =============================================================================
# API ENFORCEMENT (403)
# =============================================================================


class TestRoleEnforcement:
    def test_cashier_cannot_manage_products(self, client, cashier_a):
        resp = client.post(
            "/api/products",
            json={"name": "X", "sku": "X", "price": 1},
            headers=headers_for(cashier_a),
        )
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "MANAGE_PRODUCTS"

    def test_denial_is_logged(self, client, cashier_a):
        client.post("/api/inventory/stock-in", json={"product_id": 1, "quantity": 1}, headers=headers_for(cashier_a))

        event = db.session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == cashier_a.id
        assert event.tenant_id == cashier_a.tenant_id
        assert event.action == "ADJUST_INVENTORY"
        assert event.success is False

    def test_stock_manager_cannot_sell(self, client, users, widget):
        resp = client.post(
            "/api/pos/sale",
            json={"items": [{"product_id": widget.id, "quantity": 1}], "payments": [{"method": "cash", "amount": 100}]},
            headers=headers_for(users[Role.STOCK_MANAGER.value]),
        )
        assert resp.status_code == 403
        db.session.refresh(widget)
        assert widget.stock_quantity == 5

    def test_stock_manager_can_receive_stock(self, client, users, widget):
        resp = client.post(
            "/api/inventory/stock-in",
            json={"product_id": widget.id, "quantity": 3},
            headers=headers_for(users[Role.STOCK_MANAGER.value]),
        )
        assert resp.status_code == 201
        assert resp.json["product"]["stock"]["quantity"] == 8

    def test_staff_cannot_view_sales(self, client, users):
        resp = client.get("/api/sales", headers=headers_for(users[Role.STAFF.value]))
        assert resp.status_code == 403

    def test_manager_views_reports_but_not_staff(self, client, users):
        headers = headers_for(users[Role.MANAGER.value])
        assert client.get("/api/analytics/sales", headers=headers).status_code == 200
        assert client.get("/api/staff", headers=headers).status_code == 403

    def test_cashier_cannot_refund(self, client, cashier_a):
        resp = client.post("/api/sales/1/refund", json={}, headers=headers_for(cashier_a))
        assert resp.status_code == 403

    def test_tenant_admin_manages_staff(self, client, admin_a):
        resp = client.post(
            "/api/staff",
            json={
                "email": "new.cashier@a.test",
                "password": "Password123!",
                "first_name": "New",
                "last_name": "Cashier",
                "role": "cashier",
            },
            headers=headers_for(admin_a),
        )
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "cashier"
        assert resp.json["user"]["tenant_id"] == admin_a.tenant_id

    def test_staff_role_cannot_be_super_admin(self, client, admin_a):
        resp = client.post(
            "/api/staff",
            json={
                "email": "sneaky@a.test",
                "password": "Password123!",
                "first_name": "Sneaky",
                "last_name": "User",
                "role": "super_admin",
            },
            headers=headers_for(admin_a),
        )
        assert resp.status_code == 400


class TestSuperAdmin:
    def test_no_tenant_data_access(self, client, super_admin):
        resp = client.get("/api/products", headers=headers_for(super_admin))
        assert resp.status_code == 403

    def test_platform_stats(self, client, super_admin, tenant_a, tenant_b):
        resp = client.get("/api/superadmin/stats", headers=headers_for(super_admin))
        assert resp.status_code == 200
        assert resp.json["tenants"]["total"] == 2

    def test_tenant_admin_cannot_use_platform_routes(self, client, admin_a):
        resp = client.get("/api/superadmin/tenants", headers=headers_for(admin_a))
        assert resp.status_code == 403

    def test_suspend_tenant(self, client, super_admin, admin_a, tenant_a):
        token = get_auth_token(client, admin_a.email)
        assert token

        resp = client.patch(
            f"/api/superadmin/tenants/{tenant_a.id}/status",
            json={"subscription_status": "suspended"},
            headers=headers_for(super_admin),
        )
        assert resp.status_code == 200

        resp = client.get("/api/products", headers=auth_headers(token))
        assert resp.status_code == 403
        assert resp.json["code"] == "TENANT_UNAVAILABLE"
