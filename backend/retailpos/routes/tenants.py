# Overview: Flask API routes for tenant settings and platform administration; parses input and returns JSON responses.

# backend/retailpos/routes/tenants.py
"""
Tenant routes.

/api/tenant: the caller's own tenant. Any tenant user may read it; editing
requires MANAGE_TENANT_SETTINGS.
GET /api/tenant/dashboard summarizes today's sales and the catalogue.

/api/superadmin: platform administration for super_admin users
(MANAGE_TENANTS, VIEW_PLATFORM_STATS): tenants and subscription plans.
Super admins have no tenant context and do not reach tenant data through
the tenant APIs.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..services import plan_service, tenant_service
from ..services.auth_service import PasswordValidationError
from ..services.tenant_service import TenantAccessError, TenantNotFoundError
from ..time_utils import parse_iso_datetime
from ..validation import ConflictError, ValidationError


tenant_bp = Blueprint("tenant", __name__, url_prefix="/api/tenant")
superadmin_bp = Blueprint("superadmin", __name__, url_prefix="/api/superadmin")


@tenant_bp.get("")
@require_auth
def get_own_tenant():
    try:
        tenant = tenant_service.get_tenant(tenant_service.get_current_tenant_id())
    except TenantAccessError:
        return jsonify({"error": "No tenant context"}), 404
    except TenantNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"tenant": tenant.to_dict()}), 200


@tenant_bp.put("")
@require_auth
@require_permission("MANAGE_TENANT_SETTINGS")
def update_own_tenant():
    """
    Update business profile and defaults (name, contact, currency,
    default_tax_rate). Subscription fields are not editable here.
    """
    payload = request.get_json(silent=True) or {}
    try:
        tenant = tenant_service.update_tenant_settings(tenant_id=g.tenant_id, payload=payload)
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except TenantNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"tenant": tenant.to_dict()}), 200


@tenant_bp.get("/dashboard")
@require_auth
def tenant_dashboard():
    try:
        tenant_id = tenant_service.get_current_tenant_id()
    except TenantAccessError:
        return jsonify({"error": "No tenant context"}), 404
    return jsonify({"stats": tenant_service.tenant_dashboard(tenant_id)}), 200


@superadmin_bp.get("/tenants")
@require_auth
@require_permission("MANAGE_TENANTS")
def list_tenants():
    """
    Query params:
    - status: subscription status filter
    - search: business name, email or subdomain
    - page, per_page
    """
    return tenant_service.list_tenants(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        status=request.args.get("status"),
        search=request.args.get("search"),
    )


@superadmin_bp.get("/tenants/<int:tenant_id>")
@require_auth
@require_permission("MANAGE_TENANTS")
def get_tenant(tenant_id: int):
    try:
        return jsonify({"tenant": tenant_service.tenant_detail(tenant_id)}), 200
    except TenantNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@superadmin_bp.post("/tenants")
@require_auth
@require_permission("MANAGE_TENANTS")
def create_tenant():
    """
    Request body:
    {
        "business_name": "Epicerie Centrale",
        "subdomain": "centrale",
        "plan_id": 1,
        "subscription_status": "active",
        "admin": {"email": "...", "password": "...", "first_name": "...", "last_name": "..."}
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        tenant, admin = tenant_service.create_tenant(payload)
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except Exception:
        current_app.logger.exception("Failed to create tenant")
        return jsonify({"error": "Internal server error"}), 500

    body = {"tenant": tenant.to_dict()}
    if admin is not None:
        body["admin"] = admin.to_dict()
    return jsonify(body), 201


@superadmin_bp.put("/tenants/<int:tenant_id>")
@require_auth
@require_permission("MANAGE_TENANTS")
def update_tenant(tenant_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        tenant = tenant_service.update_tenant(tenant_id=tenant_id, payload=payload)
    except TenantNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    return jsonify({"tenant": tenant.to_dict()}), 200


@superadmin_bp.delete("/tenants/<int:tenant_id>")
@require_auth
@require_permission("MANAGE_TENANTS")
def delete_tenant(tenant_id: int):
    try:
        tenant_service.delete_tenant(tenant_id)
    except TenantNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except Exception:
        current_app.logger.exception("Failed to delete tenant")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"message": "Tenant deleted"}), 200


@superadmin_bp.patch("/tenants/<int:tenant_id>/status")
@require_auth
@require_permission("MANAGE_TENANTS")
def set_tenant_status(tenant_id: int):
    """
    Activate/deactivate a tenant or change its subscription.

    Request body (all optional):
    {
        "is_active": false,
        "subscription_status": "suspended",
        "current_period_end": "2026-12-31T23:59:59Z"
    }
    """
    data = request.get_json(silent=True) or {}

    is_active = data.get("is_active")
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean", "code": "VALIDATION_ERROR"}), 400

    try:
        period_end = parse_iso_datetime(data["current_period_end"]) if data.get("current_period_end") else None
    except ValueError:
        return jsonify({"error": "current_period_end must be an ISO-8601 datetime", "code": "VALIDATION_ERROR"}), 400

    try:
        tenant = tenant_service.set_tenant_status(
            tenant_id=tenant_id,
            is_active=is_active,
            subscription_status=data.get("subscription_status"),
            current_period_end=period_end,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except TenantNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update tenant status")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"tenant": tenant.to_dict()}), 200


@superadmin_bp.get("/stats")
@require_auth
@require_permission("VIEW_PLATFORM_STATS")
def platform_stats():
    return jsonify(tenant_service.platform_stats()), 200


@superadmin_bp.get("/plans")
@require_auth
@require_permission("MANAGE_TENANTS")
def list_plans():
    plans = plan_service.list_plans()
    return jsonify({"plans": [plan.to_dict() for plan in plans], "count": len(plans)}), 200


@superadmin_bp.post("/plans")
@require_auth
@require_permission("MANAGE_TENANTS")
def create_plan():
    """
    Request body:
    {
        "name": "Pro", "description": "...", "price": 290, "billing_cycle": "yearly",
        "max_products": -1, "features": {"branches": true}
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        plan = plan_service.create_plan(payload)
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    return jsonify({"plan": plan.to_dict()}), 201
