# Overview: Flask API routes for store branches; parses input and returns JSON responses.

# backend/retailpos/routes/branches.py
"""
Branch routes.

MULTI-TENANT: branches of the caller's tenant only (g.tenant_id).
SECURITY: every route requires MANAGE_BRANCHES.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..services import branch_service
from ..services.branch_service import BranchNotFoundError
from ..validation import ConflictError, ValidationError


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
@require_permission("MANAGE_BRANCHES")
def list_branches():
    """Query params: is_active (true/false)."""
    branches = branch_service.list_branches(
        tenant_id=g.tenant_id,
        is_active=request.args.get("is_active", type=lambda v: v.lower() == "true"),
    )
    return jsonify({"branches": [b.to_dict() for b in branches], "count": len(branches)}), 200


@branches_bp.get("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def get_branch(branch_id: int):
    try:
        branch = branch_service.get_branch(tenant_id=g.tenant_id, branch_id=branch_id)
    except BranchNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"branch": branch.to_dict()}), 200


@branches_bp.post("")
@require_auth
@require_permission("MANAGE_BRANCHES")
def create_branch():
    payload = request.get_json(silent=True) or {}
    try:
        branch = branch_service.create_branch(
            tenant_id=g.tenant_id, payload=payload, user_id=g.current_user.id
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except Exception:
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"branch": branch.to_dict()}), 201


@branches_bp.put("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def update_branch(branch_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        branch = branch_service.update_branch(tenant_id=g.tenant_id, branch_id=branch_id, payload=payload)
    except BranchNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    return jsonify({"branch": branch.to_dict()}), 200


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_permission("MANAGE_BRANCHES")
def delete_branch(branch_id: int):
    try:
        branch_service.delete_branch(tenant_id=g.tenant_id, branch_id=branch_id)
    except BranchNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Branch deleted"}), 200
