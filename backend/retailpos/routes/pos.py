# Overview: Flask API routes for POS operations; parses input and returns JSON responses.

# backend/retailpos/routes/pos.py
"""
Point-of-sale routes: checkout, held orders, product lookup, daily summary.

Cart body (sale and hold-order):
{
    "items": [{"product_id": 1, "quantity": 500, "unit": "g", "notes": "..."}],
    "customer_id": 3,                                   // optional
    "discount": {"type": "percentage", "value": 10, "reason": "..."},   // optional
    "payments": [{"method": "cash", "amount": 20.0, "reference": "..."}],
    "notes": "...",                                     // optional
    "held_sale_id": 12                                  // optional, completes a retrieved order
}

Errors are returned as {"error", "code", "details"}; see retailpos.errors.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..services import pos_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_cart


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.post("/sale")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Complete a sale in one transaction: sale, items, payments, stock
    deductions, stock movements, product analytics and customer updates.

    Returns 201 with the sale. Nothing is written on any error.
    """
    try:
        cart = parse_cart(request.get_json(silent=True))
        sale = pos_service.create_sale(tenant_id=g.tenant_id, cashier=g.current_user, cart=cart)
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR", "details": {}}), 400
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@pos_bp.get("/products/search")
@require_auth
@require_permission("VIEW_PRODUCTS")
def search_products_route():
    """
    Query params:
    - q: name, Arabic name or SKU fragment
    - barcode: exact barcode (takes precedence over q)
    """
    products = pos_service.search_products(
        tenant_id=g.tenant_id,
        q=request.args.get("q"),
        barcode=request.args.get("barcode"),
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@pos_bp.post("/hold-order")
@require_auth
@require_permission("HOLD_SALE")
def hold_order_route():
    """
    Park a cart as a pending sale. No stock or customer effect; prices are
    re-computed when the order is completed.
    """
    try:
        cart = parse_cart(request.get_json(silent=True))
        sale = pos_service.hold_order(tenant_id=g.tenant_id, cashier=g.current_user, cart=cart)
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR", "details": {}}), 400
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to hold order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@pos_bp.get("/held-orders")
@require_auth
@require_permission("HOLD_SALE")
def held_orders_route():
    sales = pos_service.list_held_orders(tenant_id=g.tenant_id)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@pos_bp.post("/retrieve-order/<int:sale_id>")
@require_auth
@require_permission("HOLD_SALE")
def retrieve_order_route(sale_id: int):
    """
    Take a held order back to the register. The order stays pending and can
    be completed with POST /sale {"held_sale_id": id, ...} or cancelled.
    """
    try:
        sale = pos_service.retrieve_held_order(tenant_id=g.tenant_id, sale_id=sale_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sale": sale.to_dict()}), 200


@pos_bp.get("/daily-summary")
@require_auth
@require_permission("VIEW_DAILY_SUMMARY")
def daily_summary_route():
    """
    Query params:
    - date: YYYY-MM-DD (UTC, default today)
    """
    try:
        day = parse_iso_datetime(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD", "code": "VALIDATION_ERROR"}), 400
    return jsonify(pos_service.daily_summary(tenant_id=g.tenant_id, day=day)), 200
