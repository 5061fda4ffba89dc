# Overview: Flask CLI command groups for bootstrap, seeding, and maintenance.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create all tables (use `flask db upgrade` once migrations exist).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Plans, then a demo tenant with a main branch, staff for every role,
#   multi-unit products and customers.
#
# Users:
# - python -m flask users create-superadmin --email root@platform.local --password "Password123!"
#   Create a platform super admin (no tenant).
# - python -m flask users list [--tenant-id 1]
#   List users with role and active status.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked session tokens.
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import SubscriptionPlan, Tenant, User
from .permissions import Role
from .services import maintenance_service, plan_service
from .services.auth_service import create_user, register_tenant, PasswordValidationError
from .services.branch_service import create_branch
from .services.customer_service import create_customer
from .services.products_service import create_product
from .time_utils import utcnow
from .validation import ConflictError, ValidationError


DEMO_PASSWORD = "Password123!"

DEMO_STAFF = [
    ("manager@epicerie.tn", "Amira", "Trabelsi", Role.MANAGER.value),
    ("cashier@epicerie.tn", "Youssef", "Gharbi", Role.CASHIER.value),
    ("stock@epicerie.tn", "Salma", "Jaziri", Role.STOCK_MANAGER.value),
    ("staff@epicerie.tn", "Karim", "Mansour", Role.STAFF.value),
]

DEMO_PRODUCTS = [
    {
        "name": "Basmati Rice", "name_ar": "أرز بسمتي", "sku": "RICE-BAS",
        "barcode": "6191234500011", "category": "Grocery",
        "base_unit": "kg", "unit_type": "weight", "price": 2.5, "cost": 1.8,
        "stock_quantity": 120, "min_stock": 20,
        "unit_conversions": [{"unit": "g", "conversion_factor": 0.001}],
    },
    {
        "name": "Olive Oil", "name_ar": "زيت زيتون", "sku": "OIL-OLV",
        "barcode": "6191234500028", "category": "Grocery",
        "base_unit": "liter", "unit_type": "volume", "price": 14.0, "cost": 10.5,
        "stock_quantity": 60, "min_stock": 10,
        "unit_conversions": [{"unit": "ml", "conversion_factor": 0.001}],
    },
    {
        "name": "Mineral Water 1.5L", "name_ar": "ماء معدني", "sku": "WAT-150",
        "barcode": "6191234500035", "category": "Beverages",
        "base_unit": "piece", "unit_type": "piece", "price": 0.9, "cost": 0.55,
        "stock_quantity": 240, "min_stock": 48,
        "unit_conversions": [{"unit": "pack", "conversion_factor": 6}],
        "price_by_unit": [{"unit": "pack", "price": 4.8}],
    },
    {
        "name": "Harissa 380g", "name_ar": "هريسة", "sku": "HAR-380",
        "barcode": "6191234500042", "category": "Condiments",
        "base_unit": "piece", "unit_type": "piece", "price": 2.2, "cost": 1.4,
        "stock_quantity": 8, "min_stock": 10,
        "discount_type": "percentage", "discount_value": 10, "discount_is_active": True,
    },
]

DEMO_PLANS = [
    {
        "name": "Starter", "slug": "starter", "price": 49, "display_order": 1,
        "description": "Perfect for small businesses just getting started",
        "max_products": 100, "max_staff": 3, "max_branches": 1, "max_customers": 500,
        "features": {"analytics": True, "multi_unit": True, "branches": False, "customer_credit": False},
    },
    {
        "name": "Professional", "slug": "professional", "price": 99, "display_order": 2, "is_popular": True,
        "description": "For growing businesses with advanced needs",
        "max_products": 500, "max_staff": 10, "max_branches": 3, "max_customers": 2000,
        "features": {"analytics": True, "multi_unit": True, "branches": True, "customer_credit": True},
    },
    {
        "name": "Enterprise", "slug": "enterprise", "price": 199, "display_order": 3,
        "description": "Unlimited everything for large businesses",
        "max_products": -1, "max_staff": -1, "max_branches": -1, "max_customers": -1,
        "features": {"analytics": True, "multi_unit": True, "branches": True, "customer_credit": True},
    },
]

DEMO_CUSTOMERS = [
    {"first_name": "Hedi", "last_name": "Bouazizi", "phone": "+21620111222", "type": "retail"},
    {
        "first_name": "Nour", "last_name": "Hamdi", "phone": "+21620333444", "type": "wholesale",
        "allow_credit": True, "credit_limit": 500,
    },
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping all data')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@system_group.command('seed')
@click.option('--business-name', default='Epicerie Moderne', show_default=True)
@click.option('--admin-email', default='admin@epicerie.tn', show_default=True)
@with_appcontext
def seed_demo(business_name, admin_email):
    """
    Create the plan catalogue and a demo tenant on an active Professional
    subscription with a main branch, one user per tenant role, multi-unit
    products (with opening stock) and customers.

    All demo users share the password "Password123!".
    """
    db.create_all()
    if db.session.query(User).filter_by(email=admin_email).first():
        click.echo(f"WARN  {admin_email} already exists, skipping seed")
        return

    for payload in DEMO_PLANS:
        if db.session.query(SubscriptionPlan.id).filter_by(slug=payload["slug"]).first() is None:
            plan = plan_service.create_plan(dict(payload))
            click.echo(f"PASS Created plan: {plan.slug} ({plan.price} {plan.currency}/{plan.billing_cycle})")

    try:
        tenant, admin = register_tenant(
            business_name=business_name,
            email=admin_email,
            password=DEMO_PASSWORD,
            first_name="Mohamed",
            last_name="Ben Ali",
            phone="+21612345679",
            subdomain="epicerie",
            business_type="grocery",
        )
    except (ValidationError, ConflictError, PasswordValidationError) as e:
        click.echo(f"FAIL Could not create tenant: {e}")
        raise SystemExit(1)

    tenant.subscription_status = "active"
    tenant.current_period_end = utcnow() + timedelta(days=30)
    tenant.plan = db.session.query(SubscriptionPlan).filter_by(slug="professional").one()
    db.session.commit()
    click.echo(f"PASS Created tenant: {tenant.business_name} (ID: {tenant.id})")
    click.echo(f"PASS Created user: {admin.email} with role '{admin.role}'")

    branch = create_branch(
        tenant_id=tenant.id,
        payload={"name": "Main store", "city": "Tunis", "governorate": "Tunis", "is_main_branch": True},
        user_id=admin.id,
    )
    click.echo(f"PASS Created branch: {branch.code} {branch.name}")

    for email, first_name, last_name, role in DEMO_STAFF:
        try:
            user = create_user(
                email=email,
                password=DEMO_PASSWORD,
                first_name=first_name,
                last_name=last_name,
                role=role,
                tenant_id=tenant.id,
            )
            click.echo(f"PASS Created user: {user.email} with role '{role}'")
        except (ValidationError, ConflictError) as e:
            click.echo(f"WARN  Skipped {email}: {e}")

    for payload in DEMO_PRODUCTS:
        product = create_product(tenant_id=tenant.id, payload=dict(payload), user_id=admin.id)
        click.echo(f"PASS Created product: {product.sku} ({product.stock_quantity} {product.base_unit})")

    for payload in DEMO_CUSTOMERS:
        customer = create_customer(tenant_id=tenant.id, payload=dict(payload), user_id=admin.id)
        click.echo(f"PASS Created customer: {customer.customer_number} {customer.full_name}")

    click.echo("\nDONE Demo data seeded. Password for all demo users: Password123!")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-superadmin')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--first-name', default='Platform', show_default=True)
@click.option('--last-name', default='Admin', show_default=True)
@with_appcontext
def create_superadmin(email, password, first_name, last_name):
    """Create a platform super admin (no tenant)."""
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=Role.SUPER_ADMIN.value,
            tenant_id=None,
        )
    except (ValidationError, ConflictError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created super admin {user.email} (ID: {user.id})")


@users_group.command('list')
@click.option('--tenant-id', type=int, default=None)
@with_appcontext
def list_users(tenant_id):
    """List users with role and active status."""
    query = db.session.query(User)
    if tenant_id is not None:
        query = query.filter(User.tenant_id == tenant_id)
    users = query.order_by(User.tenant_id.asc(), User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        tenant = db.session.get(Tenant, user.tenant_id) if user.tenant_id else None
        status = "active" if user.is_active else "inactive"
        click.echo(
            f"{user.id:>4}  {user.email:<32} {user.role:<14} {status:<8} "
            f"{tenant.business_name if tenant else '(platform)'}"
        )


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked session tokens older than the retention window."""
    deleted = maintenance_service.cleanup_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
