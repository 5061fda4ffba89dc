# Overview: Pytest coverage for Flask CLI commands and retention cleanup.

from datetime import timedelta

from retailpos.extensions import db
from retailpos.models import (
    Branch, Customer, Product, SecurityEvent, SessionToken, StockMovement, SubscriptionPlan, Tenant, User,
)
from retailpos.services import maintenance_service, permission_service, session_service
from retailpos.time_utils import utcnow


class TestSeed:
    def test_seed_creates_demo_tenant(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "seed"])
        assert result.exit_code == 0, result.output

        tenant = db.session.query(Tenant).one()
        assert tenant.subscription_status == "active"
        assert tenant.subscription_is_usable()

        roles = {u.role for u in db.session.query(User).filter_by(tenant_id=tenant.id)}
        assert roles == {"tenant_admin", "manager", "cashier", "stock_manager", "staff"}

        rice = db.session.query(Product).filter_by(sku="RICE-BAS").one()
        assert rice.allowed_units == ["kg", "g"]
        assert rice.stock_quantity == 120
        assert db.session.query(StockMovement).count() == 4
        assert db.session.query(Customer).count() == 2

        slugs = [p.slug for p in db.session.query(SubscriptionPlan).order_by(SubscriptionPlan.price)]
        assert slugs == ["starter", "professional", "enterprise"]
        assert tenant.plan.slug == "professional"
        branch = db.session.query(Branch).one()
        assert branch.code == "BR001"
        assert branch.is_main_branch is True

    def test_seed_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["system", "seed"])
        result = runner.invoke(args=["system", "seed"])

        assert result.exit_code == 0
        assert "skipping seed" in result.output
        assert db.session.query(Tenant).count() == 1
        assert db.session.query(SubscriptionPlan).count() == 3


class TestUserCommands:
    def test_create_superadmin(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["users", "create-superadmin", "--email", "root@platform.test", "--password", "Password123!"]
        )
        assert result.exit_code == 0, result.output

        user = db.session.query(User).filter_by(email="root@platform.test").one()
        assert user.role == "super_admin"
        assert user.tenant_id is None

    def test_create_superadmin_weak_password(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["users", "create-superadmin", "--email", "root@platform.test", "--password", "weak"]
        )
        assert result.exit_code == 1
        assert db.session.query(User).count() == 0

    def test_list_users(self, app, users):
        result = app.test_cli_runner().invoke(args=["users", "list"])
        assert result.exit_code == 0
        assert "cashier@a.test" in result.output


class TestRetentionCleanup:
    def test_security_events(self, db_session):
        old = permission_service.log_security_event(user_id=None, event_type="LOGIN_FAILED", success=False)
        old.occurred_at = utcnow() - timedelta(days=120)
        permission_service.log_security_event(user_id=None, event_type="LOGIN_FAILED", success=False)
        db.session.commit()

        assert maintenance_service.cleanup_security_events(retention_days=90) == 1
        assert db.session.query(SecurityEvent).count() == 1

    def test_sessions(self, admin_a):
        old, _ = session_service.create_session(user_id=admin_a.id)
        old.created_at = utcnow() - timedelta(days=45)
        old.expires_at = utcnow() - timedelta(days=44)
        session_service.create_session(user_id=admin_a.id)
        db.session.commit()

        assert maintenance_service.cleanup_sessions(retention_days=30) == 1
        assert db.session.query(SessionToken).count() == 1

    def test_cleanup_command(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["maintenance", "cleanup-security-events", "--retention-days", "30"]
        )
        assert result.exit_code == 0
        assert "Deleted 0 security events" in result.output
