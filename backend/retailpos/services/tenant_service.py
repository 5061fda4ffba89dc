"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to a tenant, and cross-tenant access must be
explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated tenant request has g.tenant_id set
2. Entity ids from client input are looked up under that tenant only
3. An id that exists under another tenant is reported as not found
4. Cross-tenant access attempts are logged as security events

USAGE:
    from retailpos.services.tenant_service import scoped_get

    product = scoped_get(Product, product_id, g.tenant_id)
"""

from datetime import timedelta

from flask import current_app, g, has_request_context, request
from sqlalchemy import func, select

from ..extensions import db
from ..models import (
    Branch, Customer, DocumentSequence, Product, ProductUnitConversion, ProductUnitPrice,
    Sale, SecurityEvent, SessionToken, StockMovement, SubscriptionPlan, Tenant, User,
)
from ..models.tenancy import SUBSCRIPTION_STATUSES
from ..permissions import Role
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload
from ..time_utils import day_bounds, utcnow
from . import auth_service
from .pagination import paginate
from .permission_service import log_security_event


TENANT_SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"business_name", "email", "phone", "business_type", "currency", "default_tax_rate"},
)

# Platform administration may also set identity, status and plan fields
PLATFORM_TENANT_POLICY = ModelValidationPolicy(
    writable_fields=TENANT_SETTINGS_POLICY.writable_fields | {
        "subdomain", "is_active", "subscription_status", "trial_ends_at", "current_period_end", "plan_id",
    },
    required_on_create={"business_name"},
)


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


class TenantUnavailableError(Exception):
    """Raised when a tenant is deactivated or its subscription is not usable."""
    pass


class TenantNotFoundError(Exception):
    """Raised when a tenant id does not exist (platform administration)."""
    pass


def get_current_tenant_id() -> int:
    """
    Get current tenant's id from Flask g context.

    SECURITY: Raises TenantAccessError if tenant_id not set.
    """
    if not hasattr(g, 'tenant_id') or g.tenant_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.tenant_id


def require_usable_tenant(tenant_id: int | None) -> Tenant:
    """
    Tenant must exist, be active and hold a usable (trial/active, unexpired)
    subscription. Raises TenantUnavailableError with a user-facing message.
    """
    tenant = db.session.get(Tenant, tenant_id) if tenant_id else None
    if not tenant:
        raise TenantUnavailableError("Tenant not found")
    if not tenant.is_active:
        raise TenantUnavailableError("Tenant account is deactivated. Please contact support.")
    if not tenant.subscription_is_usable():
        if tenant.subscription_status in ("trial", "active"):
            raise TenantUnavailableError("Subscription has expired. Please renew.")
        raise TenantUnavailableError("Subscription is not active. Please renew your subscription.")
    return tenant


def scoped_get(model, entity_id: int, tenant_id: int):
    """
    Fetch `model` row `entity_id` owned by `tenant_id`, or None.

    If the row exists under a different tenant the attempt is logged and None is
    returned, so callers answer 404 without revealing it exists.
    """
    entity = db.session.query(model).filter_by(id=entity_id, tenant_id=tenant_id).first()
    if entity is not None:
        return entity

    owner = db.session.query(model.tenant_id).filter_by(id=entity_id).scalar()
    if owner is not None and owner != tenant_id:
        _log_cross_tenant_attempt(
            f"{model.__tablename__} {entity_id} belongs to tenant {owner}, not {tenant_id}",
            tenant_id=tenant_id,
        )
    return None


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise TenantNotFoundError("Tenant not found")
    return tenant


def _enforce_rules_tenant(patch: dict) -> dict:
    rate = patch.get("default_tax_rate")
    if rate is not None and not 0 <= rate <= 100:
        raise ValidationError("default_tax_rate must be between 0 and 100")
    if patch.get("currency"):
        patch["currency"] = patch["currency"].upper()
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    return patch


def update_tenant_settings(*, tenant_id: int, payload: dict) -> Tenant:
    tenant = get_tenant(tenant_id)
    patch = validate_payload(model=Tenant, payload=payload, policy=TENANT_SETTINGS_POLICY, partial=True)
    _enforce_rules_tenant(patch)

    for key, value in patch.items():
        setattr(tenant, key, value)
    db.session.commit()
    return tenant


def tenant_dashboard(tenant_id: int) -> dict:
    """Today's completed sales plus catalogue counts for the tenant home screen."""
    start, end = day_bounds(utcnow())
    count, revenue = db.session.query(
        func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0.0)
    ).filter(
        Sale.tenant_id == tenant_id,
        Sale.status == "completed",
        Sale.sale_date >= start,
        Sale.sale_date < end,
    ).one()

    active = db.session.query(Product).filter(Product.tenant_id == tenant_id, Product.is_active.is_(True))
    return {
        "today_revenue": float(revenue or 0.0),
        "today_sales": count,
        "active_products": active.count(),
        "low_stock_products": active.filter(Product.is_low_stock.is_(True)).count(),
    }


# -- Platform administration (super admin) --

def list_tenants(
    *,
    page: int | None = None,
    per_page: int | None = None,
    status: str | None = None,
    search: str | None = None,
) -> dict:
    query = db.session.query(Tenant)
    if status:
        query = query.filter(Tenant.subscription_status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Tenant.business_name.ilike(pattern),
            Tenant.email.ilike(pattern),
            Tenant.subdomain.ilike(pattern),
        ))
    query = query.order_by(Tenant.created_at.desc(), Tenant.id.desc())
    return paginate(query, page=page, per_page=per_page)


def tenant_detail(tenant_id: int) -> dict:
    tenant = get_tenant(tenant_id)
    data = tenant.to_dict()
    data["stats"] = {
        "users": db.session.query(func.count(User.id)).filter(User.tenant_id == tenant.id).scalar(),
        "products": db.session.query(func.count(Product.id)).filter(Product.tenant_id == tenant.id).scalar(),
        "customers": db.session.query(func.count(Customer.id)).filter(Customer.tenant_id == tenant.id).scalar(),
        "sales": db.session.query(func.count(Sale.id)).filter(Sale.tenant_id == tenant.id).scalar(),
    }
    return data


def set_tenant_status(
    *,
    tenant_id: int,
    is_active: bool | None = None,
    subscription_status: str | None = None,
    current_period_end=None,
) -> Tenant:
    tenant = get_tenant(tenant_id)

    if subscription_status is not None:
        if subscription_status not in SUBSCRIPTION_STATUSES:
            raise ValidationError(f"subscription_status must be one of: {', '.join(SUBSCRIPTION_STATUSES)}")
        tenant.subscription_status = subscription_status
    if is_active is not None:
        tenant.is_active = bool(is_active)
    if current_period_end is not None:
        tenant.current_period_end = current_period_end

    db.session.commit()
    current_app.logger.info(
        "Tenant %s status changed: is_active=%s subscription_status=%s",
        tenant.id, tenant.is_active, tenant.subscription_status,
    )
    return tenant


def _clean_platform_patch(patch: dict, tenant: Tenant | None = None) -> dict:
    _enforce_rules_tenant(patch)
    if "subdomain" in patch:
        patch["subdomain"] = auth_service.normalize_subdomain(
            patch["subdomain"], exclude_tenant_id=tenant.id if tenant else None
        )
    status = patch.get("subscription_status")
    if status is not None and status not in SUBSCRIPTION_STATUSES:
        raise ValidationError(f"subscription_status must be one of: {', '.join(SUBSCRIPTION_STATUSES)}")
    if patch.get("plan_id") is not None and db.session.get(SubscriptionPlan, patch["plan_id"]) is None:
        raise ValidationError("plan_id does not match a subscription plan")
    return patch


def create_tenant(payload: dict) -> tuple[Tenant, User | None]:
    """
    Create a tenant on behalf of a business.

    An optional "admin" object ({email, password, first_name, last_name,
    phone?}) creates the first tenant_admin in the same transaction. A trial
    without trial_ends_at gets the plan's trial length, or TRIAL_DAYS.

    Raises:
        ValidationError / PasswordValidationError: invalid tenant or admin fields
        ConflictError: subdomain or admin email already taken
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    admin = payload.pop("admin", None)
    if admin is not None and not isinstance(admin, dict):
        raise ValidationError("admin must be an object")

    patch = validate_payload(model=Tenant, payload=payload, policy=PLATFORM_TENANT_POLICY, partial=False)
    _clean_platform_patch(patch)

    tenant = Tenant(
        currency=current_app.config.get("DEFAULT_CURRENCY", "TND"),
        default_tax_rate=current_app.config.get("DEFAULT_TAX_RATE", 19.0),
        is_active=True,
        subscription_status="trial",
    )
    for key, value in patch.items():
        setattr(tenant, key, value)

    if tenant.subscription_status == "trial" and tenant.trial_ends_at is None:
        plan = db.session.get(SubscriptionPlan, tenant.plan_id) if tenant.plan_id else None
        trial_days = plan.trial_days if plan else current_app.config.get("TRIAL_DAYS", 14)
        tenant.trial_ends_at = utcnow() + timedelta(days=trial_days)

    db.session.add(tenant)
    db.session.flush()

    user = None
    if admin is not None:
        try:
            user = auth_service.create_user(
                email=admin.get("email"),
                password=admin.get("password"),
                first_name=admin.get("first_name"),
                last_name=admin.get("last_name"),
                phone=admin.get("phone"),
                role=Role.TENANT_ADMIN.value,
                tenant_id=tenant.id,
                commit=False,
            )
        except (ValidationError, ConflictError, auth_service.PasswordValidationError):
            db.session.rollback()
            raise

    db.session.commit()
    current_app.logger.info("Created tenant %s (%s) from platform admin", tenant.id, tenant.business_name)
    return tenant, user


def update_tenant(*, tenant_id: int, payload: dict) -> Tenant:
    tenant = get_tenant(tenant_id)
    patch = validate_payload(model=Tenant, payload=payload, policy=PLATFORM_TENANT_POLICY, partial=True)
    _clean_platform_patch(patch, tenant)

    for key, value in patch.items():
        setattr(tenant, key, value)
    db.session.commit()
    current_app.logger.info("Updated tenant %s fields=%s", tenant.id, sorted(patch))
    return tenant


def delete_tenant(tenant_id: int) -> None:
    """
    Remove a tenant with its users, catalogue, customers and branches.

    Tenants with any sale are refused (ConflictError): sales are the
    accounting record, so such tenants are deactivated instead. Security
    events are kept with their tenant and user links cleared.
    """
    tenant = get_tenant(tenant_id)
    if db.session.query(Sale.id).filter(Sale.tenant_id == tenant.id).first() is not None:
        raise ConflictError("Tenant has sales history; deactivate it instead")

    user_ids = select(User.id).where(User.tenant_id == tenant.id)
    product_ids = select(Product.id).where(Product.tenant_id == tenant.id)
    owned = (StockMovement, Product, Customer, Branch, DocumentSequence)

    for model in (ProductUnitConversion, ProductUnitPrice):
        db.session.query(model).filter(model.product_id.in_(product_ids)).delete(synchronize_session=False)
    for model in owned:
        db.session.query(model).filter(model.tenant_id == tenant.id).delete(synchronize_session=False)
    db.session.query(SessionToken).filter(db.or_(
        SessionToken.tenant_id == tenant.id, SessionToken.user_id.in_(user_ids)
    )).delete(synchronize_session=False)
    db.session.query(SecurityEvent).filter(db.or_(
        SecurityEvent.tenant_id == tenant.id, SecurityEvent.user_id.in_(user_ids)
    )).update({SecurityEvent.tenant_id: None, SecurityEvent.user_id: None}, synchronize_session=False)
    db.session.query(User).filter(User.tenant_id == tenant.id).delete(synchronize_session=False)
    db.session.query(Tenant).filter(Tenant.id == tenant.id).delete(synchronize_session=False)

    db.session.commit()
    current_app.logger.info("Deleted tenant %s", tenant_id)


def platform_stats() -> dict:
    by_status = dict(
        db.session.query(Tenant.subscription_status, func.count(Tenant.id))
        .group_by(Tenant.subscription_status)
        .all()
    )
    completed = db.session.query(
        func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0.0)
    ).filter(Sale.status == "completed").one()

    return {
        "tenants": {
            "total": db.session.query(func.count(Tenant.id)).scalar(),
            "active": db.session.query(func.count(Tenant.id)).filter(Tenant.is_active.is_(True)).scalar(),
            "by_subscription_status": {s: by_status.get(s, 0) for s in SUBSCRIPTION_STATUSES},
        },
        "users": db.session.query(func.count(User.id)).scalar(),
        "sales": {"count": completed[0], "revenue": float(completed[1] or 0.0)},
        "generated_at": utcnow().isoformat() + "Z",
    }


def _log_cross_tenant_attempt(reason: str, tenant_id: int | None = None) -> None:
    """
    Log a cross-tenant access attempt as a security event.

    SECURITY: Critical audit trail for detecting unauthorized access attempts.
    """
    user = getattr(g, 'current_user', None) if has_request_context() else None

    log_security_event(
        user_id=user.id if user is not None else None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=request.path if has_request_context() else None,
        action=request.method if has_request_context() else None,
        reason=reason,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=request.headers.get("User-Agent") if has_request_context() else None,
        tenant_id=tenant_id,
    )
