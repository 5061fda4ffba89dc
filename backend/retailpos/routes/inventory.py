# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/retailpos/routes/inventory.py
"""
Stock ledger routes.

Stock changes outside of sales and refunds go through stock-in (purchase)
and stock-out (adjustment). Each produces one StockMovement with before and
after snapshots.

SECURITY:
- stock-in / stock-out require ADJUST_INVENTORY
- movement history requires VIEW_INVENTORY
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..services import stock_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/stock-in")
@require_auth
@require_permission("ADJUST_INVENTORY")
def stock_in_route():
    """
    Receive stock.

    Request body:
    {
        "product_id": 1,        // required
        "quantity": 12,         // required, > 0
        "unit": "box",          // optional, defaults to the base unit
        "unit_cost": 4.5,       // optional, cost per unit
        "reference": "PO-118",  // optional
        "notes": "..."          // optional
    }
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int):
        return jsonify({"error": "product_id required", "code": "VALIDATION_ERROR"}), 400

    try:
        product, movement = stock_service.stock_in(
            tenant_id=g.tenant_id,
            product_id=product_id,
            quantity=data.get("quantity"),
            unit=data.get("unit"),
            unit_cost=data.get("unit_cost"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock in")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict(), "movement": movement.to_dict()}), 201


@inventory_bp.post("/stock-out")
@require_auth
@require_permission("ADJUST_INVENTORY")
def stock_out_route():
    """
    Remove stock (damage, expiry, theft, loss, correction, ...).

    Request body:
    {
        "product_id": 1,          // required
        "quantity": 2,            // required, > 0
        "unit": "piece",          // optional, defaults to the base unit
        "reason": "damage",       // optional, defaults to "adjustment"
        "notes": "..."            // optional
    }

    Returns 409 INSUFFICIENT_STOCK when the quantity exceeds stock on hand
    (unless STOCK_CLAMP_ON_OVERDRAW is enabled).
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int):
        return jsonify({"error": "product_id required", "code": "VALIDATION_ERROR"}), 400

    try:
        product, movement = stock_service.stock_out(
            tenant_id=g.tenant_id,
            product_id=product_id,
            quantity=data.get("quantity"),
            unit=data.get("unit"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            reference=data.get("reference"),
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock out")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict(), "movement": movement.to_dict()}), 201


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    """
    Query params:
    - product_id: int
    - type: purchase | sale | return | adjustment
    - start, end: ISO-8601 datetimes
    - limit: int (default and max 100)
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes", "code": "VALIDATION_ERROR"}), 400

    movements = stock_service.list_movements(
        tenant_id=g.tenant_id,
        product_id=request.args.get("product_id", type=int),
        movement_type=request.args.get("type"),
        start=start,
        end=end,
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
