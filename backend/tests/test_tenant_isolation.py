# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

These tests create two tenants with their own users and data, then verify
that:
1. A user of tenant A cannot read or write data of tenant B
2. Cross-tenant lookups answer 404 (not 403, which would reveal existence)
3. Cross-tenant probes are logged as security events
4. Sessions carry the tenant of the user at login time
5. Unusable tenants are locked out
"""

from datetime import timedelta

import pytest

from conftest import PASSWORD, headers_for
from retailpos.extensions import db
from retailpos.models import Product, SecurityEvent
from retailpos.services import session_service
from retailpos.services.tenant_service import (
    TenantUnavailableError,
    require_usable_tenant,
    scoped_get,
)
from retailpos.time_utils import utcnow


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_scoped_get_own_tenant(self, rice, tenant_a):
        assert scoped_get(Product, rice.id, tenant_a.id).id == rice.id

    def test_scoped_get_foreign_tenant(self, product_b, tenant_a):
        assert scoped_get(Product, product_b.id, tenant_a.id) is None
        event = db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").one()
        assert event.tenant_id == tenant_a.id
        assert event.success is False

    def test_scoped_get_missing_row_is_not_logged(self, tenant_a):
        assert scoped_get(Product, 99999, tenant_a.id) is None
        assert db.session.query(SecurityEvent).count() == 0

    def test_usable_tenant(self, tenant_a):
        assert require_usable_tenant(tenant_a.id).id == tenant_a.id

    @pytest.mark.parametrize("status", ["suspended", "cancelled", "expired"])
    def test_unusable_subscription(self, tenant_a, status):
        tenant_a.subscription_status = status
        db.session.commit()
        with pytest.raises(TenantUnavailableError):
            require_usable_tenant(tenant_a.id)

    def test_lapsed_period(self, tenant_a):
        tenant_a.current_period_end = utcnow() - timedelta(minutes=1)
        db.session.commit()
        with pytest.raises(TenantUnavailableError):
            require_usable_tenant(tenant_a.id)

    def test_expired_trial(self, tenant_a):
        tenant_a.subscription_status = "trial"
        tenant_a.current_period_end = None
        tenant_a.trial_ends_at = utcnow() - timedelta(days=1)
        db.session.commit()
        with pytest.raises(TenantUnavailableError):
            require_usable_tenant(tenant_a.id)

    def test_deactivated_tenant(self, tenant_a):
        tenant_a.is_active = False
        db.session.commit()
        with pytest.raises(TenantUnavailableError):
            require_usable_tenant(tenant_a.id)


class TestCrossTenantApi:
    def test_product_read_is_404(self, client, admin_a, product_b):
        resp = client.get(f"/api/products/{product_b.id}", headers=headers_for(admin_a))
        assert resp.status_code == 404
        assert resp.json["code"] == "PRODUCT_NOT_FOUND"

        event = db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").one()
        assert event.user_id == admin_a.id
        assert event.resource == f"/api/products/{product_b.id}"

    def test_product_update_is_404(self, client, admin_a, product_b):
        resp = client.put(
            f"/api/products/{product_b.id}",
            json={"price": 0.01},
            headers=headers_for(admin_a),
        )
        assert resp.status_code == 404
        db.session.refresh(product_b)
        assert product_b.price == 3.0

    def test_product_delete_is_404(self, client, admin_a, product_b):
        resp = client.delete(f"/api/products/{product_b.id}", headers=headers_for(admin_a))
        assert resp.status_code == 404
        assert db.session.get(Product, product_b.id) is not None

    def test_lists_are_scoped(self, client, admin_a, rice, product_b):
        resp = client.get("/api/products", headers=headers_for(admin_a))
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["items"]] == [rice.id]

    def test_cannot_sell_foreign_product(self, client, admin_a, product_b):
        resp = client.post(
            "/api/pos/sale",
            json={"items": [{"product_id": product_b.id, "quantity": 1}], "payments": [{"method": "cash", "amount": 10}]},
            headers=headers_for(admin_a),
        )
        assert resp.status_code == 404
        db.session.refresh(product_b)
        assert product_b.stock_quantity == 10

    def test_cannot_adjust_foreign_stock(self, client, admin_a, product_b):
        resp = client.post(
            "/api/inventory/stock-out",
            json={"product_id": product_b.id, "quantity": 5},
            headers=headers_for(admin_a),
        )
        assert resp.status_code == 404

    def test_foreign_customer_is_404(self, client, admin_a, admin_b):
        created = client.post(
            "/api/customers",
            json={"first_name": "Leila", "last_name": "Ben Salah", "phone": "+21650111222"},
            headers=headers_for(admin_b),
        )
        assert created.status_code == 201
        customer_id = created.json["customer"]["id"]

        resp = client.get(f"/api/customers/{customer_id}", headers=headers_for(admin_a))
        assert resp.status_code == 404

    def test_foreign_staff_is_404(self, client, admin_a, admin_b):
        resp = client.put(f"/api/staff/{admin_b.id}", json={"first_name": "Hacked"}, headers=headers_for(admin_a))
        assert resp.status_code == 404
        db.session.refresh(admin_b)
        assert admin_b.first_name != "Hacked"

    def test_same_sku_in_two_tenants(self, client, admin_a, admin_b):
        payload = {"name": "Sugar", "sku": "SUGAR", "price": 1.5}
        assert client.post("/api/products", json=payload, headers=headers_for(admin_a)).status_code == 201
        assert client.post("/api/products", json=payload, headers=headers_for(admin_b)).status_code == 201
        assert client.post("/api/products", json=payload, headers=headers_for(admin_a)).status_code == 409


class TestSessions:
    def test_session_carries_tenant(self, admin_a):
        session, token = session_service.create_session(user_id=admin_a.id)
        assert session.tenant_id == admin_a.tenant_id

        context = session_service.validate_session(token)
        assert context.tenant_id == admin_a.tenant_id
        assert context.user.id == admin_a.id

    def test_token_stored_hashed(self, admin_a):
        session, token = session_service.create_session(user_id=admin_a.id)
        assert session.token_hash != token
        assert session.token_hash == session_service.hash_token(token)

    def test_login_refused_for_deactivated_tenant(self, client, admin_a, tenant_a):
        tenant_a.is_active = False
        db.session.commit()

        resp = client.post("/api/auth/login", json={"email": admin_a.email, "password": PASSWORD})
        assert resp.status_code == 403
        assert resp.json["code"] == "TENANT_UNAVAILABLE"
        assert db.session.query(SecurityEvent).filter_by(event_type="TENANT_INACTIVE").count() == 1

    def test_revoked_session_rejected(self, client, admin_a):
        _, token = session_service.create_session(user_id=admin_a.id)
        session_service.revoke_session(token)
        resp = client.get("/api/products", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestOwnTenantSettings:
    def test_read_own_tenant(self, client, cashier_a, tenant_a):
        resp = client.get("/api/tenant", headers=headers_for(cashier_a))
        assert resp.status_code == 200
        assert resp.json["tenant"]["id"] == tenant_a.id

    def test_super_admin_has_no_tenant(self, client, super_admin):
        resp = client.get("/api/tenant", headers=headers_for(super_admin))
        assert resp.status_code == 404

    def test_admin_updates_settings(self, client, admin_a, tenant_a):
        resp = client.put(
            "/api/tenant",
            json={"currency": "eur", "default_tax_rate": 7},
            headers=headers_for(admin_a),
        )
        assert resp.status_code == 200
        assert resp.json["tenant"]["currency"] == "EUR"
        assert resp.json["tenant"]["default_tax_rate"] == 7

    def test_subscription_not_editable(self, client, admin_a):
        resp = client.put("/api/tenant", json={"subscription_status": "active"}, headers=headers_for(admin_a))
        assert resp.status_code == 400

    def test_cashier_cannot_update(self, client, cashier_a):
        resp = client.put("/api/tenant", json={"currency": "EUR"}, headers=headers_for(cashier_a))
        assert resp.status_code == 403
