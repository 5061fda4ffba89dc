# Overview: Flask API routes for staff operations; parses input and returns JSON responses.

# backend/retailpos/routes/staff.py
"""
Staff management routes.

MULTI-TENANT: tenant admins manage users of their own tenant only; the
tenant comes from g.tenant_id (set by @require_auth).

SECURITY: every route requires MANAGE_STAFF. DELETE deactivates the account
and revokes its sessions.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..services import staff_service
from ..services.auth_service import PasswordValidationError
from ..services.staff_service import StaffNotFoundError
from ..validation import ConflictError, ValidationError


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


@staff_bp.get("")
@require_auth
@require_permission("MANAGE_STAFF")
def list_staff():
    """
    Query params:
    - role: filter by role
    - is_active: true/false
    - page, per_page
    """
    return staff_service.list_staff(
        tenant_id=g.tenant_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        role=request.args.get("role"),
        is_active=request.args.get("is_active", type=lambda v: v.lower() == "true"),
    )


@staff_bp.post("")
@require_auth
@require_permission("MANAGE_STAFF")
def create_staff():
    payload = request.get_json(silent=True) or {}
    try:
        user = staff_service.create_staff(tenant_id=g.tenant_id, payload=payload)
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except Exception:
        current_app.logger.exception("Failed to create staff user")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"user": user.to_dict()}), 201


@staff_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_STAFF")
def update_staff(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        user = staff_service.update_staff(
            tenant_id=g.tenant_id,
            user_id=user_id,
            payload=payload,
            acting_user=g.current_user,
        )
    except StaffNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    return jsonify({"user": user.to_dict()}), 200


@staff_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_STAFF")
def delete_staff(user_id: int):
    try:
        user = staff_service.deactivate_staff(
            tenant_id=g.tenant_id,
            user_id=user_id,
            acting_user=g.current_user,
        )
    except StaffNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    return jsonify({"user": user.to_dict(), "message": "User deactivated"}), 200
