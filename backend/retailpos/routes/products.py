# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/retailpos/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's tenant.
The tenant_id is derived from g.tenant_id (set by @require_auth).

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS permission
- Write operations require MANAGE_PRODUCTS permission
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..services import products_service
from ..validation import ConflictError, ValidationError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    List products with pagination.

    Query params:
    - search: name, Arabic name, SKU or barcode
    - category: exact category
    - is_active: true/false
    - page: int (default 1)
    - per_page: int (default 20, max 100)
    """
    return products_service.list_products(
        tenant_id=g.tenant_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        category=request.args.get("category"),
        is_active=request.args.get("is_active", type=lambda v: v.lower() == "true"),
    )


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_low_stock():
    products = products_service.list_low_stock(tenant_id=g.tenant_id)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/out-of-stock")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_out_of_stock():
    products = products_service.list_out_of_stock(tenant_id=g.tenant_id)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product(product_id: int):
    try:
        product = products_service.get_product(tenant_id=g.tenant_id, product_id=product_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product():
    """
    Create a new product.

    Accepts unit_conversions ([{unit, conversion_factor}] or {unit: factor})
    and price_by_unit ([{unit, price}] or {unit: price}). An initial
    stock_quantity is recorded as an opening-stock movement.
    """
    payload = request.get_json(silent=True)
    try:
        product = products_service.create_product(
            tenant_id=g.tenant_id,
            payload=payload,
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product(product_id: int):
    """Partial update; stock_quantity is rejected (use the inventory routes)."""
    payload = request.get_json(silent=True)
    try:
        product = products_service.update_product(
            tenant_id=g.tenant_id,
            product_id=product_id,
            payload=payload,
            user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "code": "CONFLICT"}), 409
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product(product_id: int):
    try:
        products_service.delete_product(tenant_id=g.tenant_id, product_id=product_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"ok": True}), 200
