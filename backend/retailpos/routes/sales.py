# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/retailpos/routes/sales.py
"""
Sales history routes with permission enforcement.

- GET  /api/sales              VIEW_SALES
- GET  /api/sales/<id>         VIEW_SALES
- POST /api/sales/<id>/cancel  CANCEL_SALE (pending sales only)
- POST /api/sales/<id>/refund  REFUND_SALE (completed sales only)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..services import sales_service
from ..time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Query params:
    - status: pending | completed | cancelled | refunded
    - start, end: ISO-8601 datetimes (sale_date range)
    - customer_id, cashier_id: int
    - search: sale number fragment
    - page, per_page
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes", "code": "VALIDATION_ERROR"}), 400

    return sales_service.list_sales(
        tenant_id=g.tenant_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        status=request.args.get("status"),
        start=start,
        end=end,
        customer_id=request.args.get("customer_id", type=int),
        cashier_id=request.args.get("cashier_id", type=int),
        search=request.args.get("search"),
    )


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    """Sale with items and payments."""
    try:
        sale = sales_service.get_sale(tenant_id=g.tenant_id, sale_id=sale_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.cancel_sale(
            tenant_id=g.tenant_id,
            sale_id=sale_id,
            user=g.current_user,
            reason=data.get("reason"),
        )
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
@require_permission("REFUND_SALE")
def refund_sale_route(sale_id: int):
    """
    Full refund: restocks every line, reverses product analytics and the
    customer's stats, loyalty points and credit from this sale.
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.refund_sale(
            tenant_id=g.tenant_id,
            sale_id=sale_id,
            user=g.current_user,
            reason=data.get("reason"),
        )
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"sale": sale.to_dict()}), 200
