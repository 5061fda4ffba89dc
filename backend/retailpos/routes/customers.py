# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/retailpos/routes/customers.py
"""
Customer routes with multi-tenant support.

SECURITY:
- Read operations require VIEW_CUSTOMERS
- Create / update / delete require MANAGE_CUSTOMERS
- Credit collection requires COLLECT_CREDIT
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..services import customer_service
from ..validation import ConflictError, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    """
    Query params:
    - search: name, phone, email or customer number
    - type: retail | wholesale | vip
    - is_active: true/false
    - page, per_page
    """
    return customer_service.list_customers(
        tenant_id=g.tenant_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        customer_type=request.args.get("type"),
        is_active=request.args.get("is_active", type=lambda v: v.lower() == "true"),
    )


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(tenant_id=g.tenant_id, customer_id=customer_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(
            tenant_id=g.tenant_id,
            payload=payload,
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.update_customer(
            tenant_id=g.tenant_id,
            customer_id=customer_id,
            payload=payload,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def delete_customer_route(customer_id: int):
    """Refused with 409 while the customer has outstanding credit."""
    try:
        customer_service.delete_customer(tenant_id=g.tenant_id, customer_id=customer_id)
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"ok": True}), 200


@customers_bp.post("/<int:customer_id>/pay-credit")
@require_auth
@require_permission("COLLECT_CREDIT")
def pay_credit_route(customer_id: int):
    """
    Record a payment against the customer's credit balance.

    Request body: {"amount": 25.0}
    Overpayment is not carried forward: the balance floors at 0 and the
    response reports the amount actually applied.
    """
    data = request.get_json(silent=True) or {}
    try:
        customer, applied = customer_service.pay_credit(
            tenant_id=g.tenant_id,
            customer_id=customer_id,
            amount=data.get("amount"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record credit payment")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"customer": customer.to_dict(), "applied": applied}), 200
